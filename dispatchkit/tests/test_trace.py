import pytest

from dispatchkit.core.trace import TraceParent


def test_generate_creates_random_trace_id():
    first = TraceParent.generate()
    second = TraceParent.generate()

    assert len(first.trace_id) == 32
    assert first.trace_id != second.trace_id
    assert first.sampled is True


def test_parse_valid_header():
    trace = TraceParent.parse("00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-00")

    assert trace.trace_id == "0af7651916cd43dd8448eb211c80319c"
    assert trace.parent_id == "b7ad6b7169203331"
    assert trace.sampled is False


def test_parse_is_case_insensitive():
    trace = TraceParent.parse("00-0AF7651916CD43DD8448EB211C80319C-B7AD6B7169203331-01")

    assert trace.trace_id == "0af7651916cd43dd8448eb211c80319c"


@pytest.mark.parametrize(
    "header",
    [
        "garbage",
        "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331",
        "ff-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01",
        "00-00000000000000000000000000000000-b7ad6b7169203331-01",
        "00-0af7651916cd43dd8448eb211c80319c-0000000000000000-01",
    ],
)
def test_parse_rejects_invalid_headers(header):
    with pytest.raises(ValueError):
        TraceParent.parse(header)


def test_header_for_span():
    trace = TraceParent.parse("00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01")

    assert trace.header_for("00f067aa0ba902b7") == (
        "00-0af7651916cd43dd8448eb211c80319c-00f067aa0ba902b7-01"
    )
    assert str(trace) == "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"

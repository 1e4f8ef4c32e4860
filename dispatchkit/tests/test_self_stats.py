"""
Where: dispatchkit/tests/test_self_stats.py
What: Per-request self stats records.
Why: Every finished request reports one record unless the route opts out.
"""

import logging

import pytest


def handler(req, res):
    res.status(200)
    res.send({"status": "ok"})


ROUTES = {
    "GET /ping-self-stats": {"handler": handler},
    "GET /ping-no-self-stats": {"handler": handler, "disable_self_stats": True},
    "POST /fail": lambda req, res: res.status(503).send("down"),
}


@pytest.fixture
def stats():
    return []


@pytest.fixture
def client(make_client, make_config, stats):
    config = make_config(APP_TELEMETRY_ENABLE_SELF_STATS=True)
    return make_client(ROUTES, config=config, stats_sink=stats.append)


def test_self_stats_sent(client, stats):
    response = client.get("/ping-self-stats", headers={"x-request-id": "req-42"})

    assert response.status_code == 200
    assert len(stats) == 1
    record = stats[0]
    assert {key: record[key] for key in (
        "service", "action", "response_status", "request_id", "request_method", "request_url"
    )} == {
        "service": "self",
        "action": "handler",
        "response_status": 200,
        "request_id": "req-42",
        "request_method": "GET",
        "request_url": "/ping-self-stats",
    }
    assert record["trace_id"] == response.headers["x-trace-id"]
    assert record["request_time"] >= 0


def test_self_stats_skipped(client, stats):
    response = client.get("/ping-no-self-stats", headers={"x-request-id": "req-43"})

    assert response.status_code == 200
    assert stats == []


def test_query_string_is_part_of_url(client, stats):
    client.get("/ping-self-stats?verbose=1")

    assert stats[0]["request_url"] == "/ping-self-stats?verbose=1"


def test_unnamed_handler_and_status(client, stats):
    response = client.post("/fail")

    assert response.status_code == 503
    assert stats[0]["action"] == "unnamedController"
    assert stats[0]["response_status"] == 503


def test_self_stats_disabled_by_default(make_client, stats):
    client = make_client(ROUTES, stats_sink=stats.append)

    client.get("/ping-self-stats")

    assert stats == []


def test_default_sink_logs_record(make_client, make_config, caplog):
    client = make_client(ROUTES, config=make_config(APP_TELEMETRY_ENABLE_SELF_STATS=True))

    with caplog.at_level(logging.INFO, logger="dispatchkit.stats"):
        client.get("/ping-self-stats")

    records = [r for r in caplog.records if r.name == "dispatchkit.stats"]
    assert len(records) == 1
    assert records[0].stats["action"] == "handler"

"""
Where: dispatchkit/tests/test_logging_config.py
What: Unit tests for the JSON formatter and the YAML logging loader.
Why: Log lines must carry trace and request ids; LOG_LEVEL must reach dictConfig.
"""

import json
import logging
import sys

from dispatchkit.core import logging_config
from dispatchkit.core.context import (
    REQUEST_ID_PARAM_NAME,
    RequestContext,
    bind_context,
    reset_context,
)


def _record(message="hello", **extra):
    record = logging.LogRecord(
        name="dispatchkit.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_basic_fields():
    data = json.loads(logging_config.JsonFormatter().format(_record("hello %s", user="ann")))

    assert data["level"] == "INFO"
    assert data["logger"] == "dispatchkit.test"
    assert data["message"] == "hello %s"
    assert data["user"] == "ann"
    assert data["_time"].endswith("+00:00")
    assert "trace_id" not in data


def test_json_formatter_uses_active_context():
    root = RequestContext("HTTP GET")
    root.set(REQUEST_ID_PARAM_NAME, "req-7")
    child = root.create_child("get_item handler")
    token = bind_context(child)
    try:
        data = json.loads(logging_config.JsonFormatter().format(_record()))
    finally:
        reset_context(token)

    assert data["trace_id"] == root.trace_id
    assert data["span"] == "get_item handler"
    assert data["request_id"] == "req-7"


def test_json_formatter_includes_exception():
    try:
        raise ValueError("bad value")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()

    data = json.loads(logging_config.JsonFormatter().format(record))

    assert "ValueError: bad value" in data["exception"]


def test_json_formatter_stringifies_unknown_values():
    data = json.loads(logging_config.JsonFormatter().format(_record(payload={1, 2})))

    assert data["payload"] in ("{1, 2}", "{2, 1}")


def test_setup_logging_substitutes_level(monkeypatch):
    captured = {}
    monkeypatch.setattr(logging.config, "dictConfig", lambda cfg: captured.setdefault("cfg", cfg))
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    logging_config.setup_logging(level="DEBUG")

    cfg = captured["cfg"]
    assert cfg["loggers"]["dispatchkit"]["level"] == "DEBUG"
    assert cfg["root"]["level"] == "DEBUG"
    assert cfg["formatters"]["json"]["()"] == "dispatchkit.core.logging_config.JsonFormatter"


def test_setup_logging_reads_level_from_env(monkeypatch):
    captured = {}
    monkeypatch.setattr(logging.config, "dictConfig", lambda cfg: captured.setdefault("cfg", cfg))
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    logging_config.setup_logging()

    assert captured["cfg"]["loggers"]["dispatchkit"]["level"] == "WARNING"


def test_setup_logging_defaults_to_info(monkeypatch):
    captured = {}
    monkeypatch.setattr(logging.config, "dictConfig", lambda cfg: captured.setdefault("cfg", cfg))
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    logging_config.setup_logging()

    assert captured["cfg"]["root"]["level"] == "INFO"


def test_setup_logging_custom_file(monkeypatch, tmp_path):
    captured = {}
    monkeypatch.setattr(logging.config, "dictConfig", lambda cfg: captured.setdefault("cfg", cfg))
    config_file = tmp_path / "logging.yml"
    config_file.write_text("version: 1\nroot:\n  level: ${LOG_LEVEL}\n", encoding="utf-8")

    logging_config.setup_logging(str(config_file), level="ERROR")

    assert captured["cfg"] == {"version": 1, "root": {"level": "ERROR"}}


def test_setup_logging_missing_file_falls_back(monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    monkeypatch.setattr(logging.config, "dictConfig", lambda cfg: calls.append("dictConfig"))

    logging_config.setup_logging(str(tmp_path / "missing.yml"), level="DEBUG")

    assert calls == [{"level": "DEBUG"}]

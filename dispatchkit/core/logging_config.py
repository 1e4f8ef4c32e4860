"""
Logging Configuration
JSON log formatter aware of the active RequestContext.

Provides:
- JsonFormatter: one JSON object per record with trace/request/span fields
- setup_logging: YAML dictConfig loader with ${VAR} substitution
"""

import json
import logging
import logging.config
import os
import string
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

from .context import REQUEST_ID_PARAM_NAME, get_current_context

DEFAULT_LOG_CONFIG_PATH = Path(__file__).resolve().parent.parent / "logging.yml"

_STANDARD_ATTRS = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


class JsonFormatter(logging.Formatter):
    """
    JSON Formatter.

    Fields:
      - _time: ISO8601 timestamp (millisecond precision)
      - level: Log level
      - logger: Logger name (e.g. dispatchkit.core.pipeline)
      - message: Log message
      - trace_id / request_id / span: taken from the record, else from the active context
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "_time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        ctx = get_current_context()
        if ctx is not None:
            log_data["trace_id"] = ctx.trace_id
            log_data["span"] = ctx.name
            request_id = ctx.get(REQUEST_ID_PARAM_NAME)
            if request_id:
                log_data["request_id"] = request_id

        # Include extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(config_path: Optional[str] = None, level: Optional[str] = None) -> None:
    """
    Load the YAML config, substitute environment variables, and initialize logging.
    """
    path = Path(config_path) if config_path else DEFAULT_LOG_CONFIG_PATH
    if not path.exists():
        logging.basicConfig(level=level or logging.INFO)
        return

    with open(path, "r", encoding="utf-8") as f:
        # Supports ${LOG_LEVEL} format.
        template = string.Template(f.read())

    mapping = os.environ.copy()
    if level:
        mapping["LOG_LEVEL"] = level
    mapping.setdefault("LOG_LEVEL", "INFO")

    content = template.safe_substitute(mapping)
    logging.config.dictConfig(yaml.safe_load(content))

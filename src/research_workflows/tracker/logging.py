"""Structured logging for the tracker and the local service.

One JSON object per line. Tracker, runner and API logs all carry the
workflow they concern; `workflow_id` and `report_id` passed via `extra=` are
lifted to the top level so lines can be grepped or joined per workflow.
Other `extra=` fields stay under `"extra"`.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO, Any

CORRELATION_FIELDS: tuple[str, ...] = ("workflow_id", "report_id")

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        extra = _extra_fields(record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
        }
        for field in CORRELATION_FIELDS:
            if field in extra:
                payload[field] = extra.pop(field)
        payload["message"] = record.getMessage()
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # Enum statuses and paths end up in extras; str() them.
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str, *, stream: IO[str] | None = None) -> None:
    """Send root logging through `JsonFormatter`. Replaces existing root handlers."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Connection-pool chatter from requests and per-request lines from uvicorn.
    floor = max(root.level, logging.INFO)
    for name in ("urllib3", "uvicorn.access"):
        logging.getLogger(name).setLevel(floor)

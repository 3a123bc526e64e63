from __future__ import annotations

import json
import logging
import os
import traceback
from datetime import datetime, timezone
from typing import Any

from .context import get_log_context

REDACTED = "***"
# matched case-insensitively against extra field names
SENSITIVE_KEYS = frozenset({"api_key", "authorization", "token", "password"})


def _max_field_chars() -> int:
    try:
        return max(64, int(os.getenv("GEOASK_LOG_MAX_FIELD_CHARS", "2000")))
    except ValueError:
        return 2000


def _scrub(value: Any, limit: int) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return f"{value[:limit]}...(+{len(value) - limit} chars)"
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).casefold() in SENSITIVE_KEYS else _scrub(item, limit)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_scrub(item, limit) for item in value]
    return value


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, log context and ``extra_fields``."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, object] = {
            "ts_iso_utc": timestamp.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(get_log_context())

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(_scrub(extra_fields, _max_field_chars()))

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exc_type"] = exc_type.__name__ if exc_type else "Exception"
            payload["exc_msg"] = str(exc_value) if exc_value else ""
            payload["stack"] = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)

"""Per-request fields stamped onto every JSON log line.

The fields live in a single ``ContextVar`` holding an immutable mapping.
Nested ``log_context`` blocks layer on top of each other; leaving a block
restores the enclosing fields.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType

CONTEXT_FIELDS = ("correlation_id", "session_id", "request_id", "intent")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_fields: ContextVar[Mapping[str, str]] = ContextVar("geoask_log_fields", default=_EMPTY)


@contextmanager
def log_context(
    correlation_id: str | None = None,
    session_id: str | None = None,
    request_id: str | None = None,
    intent: str | None = None,
) -> Iterator[None]:
    updates = {
        "correlation_id": correlation_id,
        "session_id": session_id,
        "request_id": request_id,
        "intent": intent,
    }
    merged = dict(_fields.get())
    # unset arguments keep the enclosing value
    merged.update({key: value for key, value in updates.items() if value is not None})
    token = _fields.set(MappingProxyType(merged))
    try:
        yield
    finally:
        _fields.reset(token)


def get_log_context() -> dict[str, str]:
    current = _fields.get()
    return {key: current[key] for key in CONTEXT_FIELDS if key in current}

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel

from geoask.core.capabilities.base import Capability, CapabilityDescriptor, CapabilityId
from geoask.core.orchestration.errors import ErrorKind
from geoask.core.orchestration.schemas import (
    STATUS_ERROR,
    STATUS_NEEDS_CLARIFICATION,
    STATUS_NEEDS_USER_CHOICE,
    STATUS_OK,
    Result,
)

_STATUS_ALIASES = {"success": STATUS_OK, "succeeded": STATUS_OK}
CAPABILITY_STATUSES = frozenset({STATUS_OK, STATUS_NEEDS_USER_CHOICE, STATUS_NEEDS_CLARIFICATION, STATUS_ERROR})


def normalize_status(raw: Any) -> str:
    if isinstance(raw, Enum):
        raw = raw.value if isinstance(raw.value, str) else raw.name
    text = str(raw or "").strip().casefold()
    status = _STATUS_ALIASES.get(text, text)
    # anything unrecognised fails the call so the step halts
    return status if status in CAPABILITY_STATUSES else STATUS_ERROR


def _normalize_items(raw: Any) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
        raise TypeError(f"items must be a sequence, got {type(raw).__name__}")
    items: list[dict[str, Any]] = []
    for entry in raw:
        if isinstance(entry, BaseModel):
            items.append(entry.model_dump())
        elif isinstance(entry, Mapping):
            items.append({str(key): value for key, value in entry.items()})
        else:
            raise TypeError(f"unsupported item type: {type(entry).__name__}")
    return items


def normalize_result(raw: Any) -> Result:
    """Convert whatever a capability returned into a ``Result``."""
    if raw is None:
        return Result.error("capability returned no result")
    if isinstance(raw, Result):
        result = raw.model_copy(deep=True)
        result.status = normalize_status(result.status)
        return result
    if isinstance(raw, Mapping):
        if "status" not in raw:
            return Result.error("capability result has no status")
        status, items, message = raw.get("status"), raw.get("items"), raw.get("message")
    elif hasattr(raw, "status") and hasattr(raw, "items"):
        status, items, message = raw.status, raw.items, getattr(raw, "message", None)
    else:
        return Result.error(f"unsupported capability result type: {type(raw).__name__}")
    return Result(
        status=normalize_status(status),
        items=_normalize_items(items),
        message=None if message is None else str(message),
    )


class CapabilityRegistry:
    def __init__(self) -> None:
        self._capabilities: dict[CapabilityId, Capability] = {}
        self.logger = logging.getLogger("geoask.capabilities")

    def register(self, capability: Capability) -> None:
        capability_id = CapabilityId.from_id(capability.capability_id)
        if capability_id in self._capabilities:
            raise ValueError(f"capability already registered: {capability_id.value}")
        if not hasattr(capability, "description"):
            setattr(capability, "description", "")
        if not hasattr(capability, "params"):
            setattr(capability, "params", [])
        self._capabilities[capability_id] = capability
        self.logger.info("capability_registered", extra={"extra_fields": {"capability_id": capability_id.value}})

    def get(self, capability_id: CapabilityId | str) -> Capability | None:
        try:
            key = CapabilityId.from_id(capability_id)
        except ValueError:
            return None
        return self._capabilities.get(key)

    def execute(self, capability_id: CapabilityId | str, args: Mapping[str, Any] | None = None) -> Result:
        label = capability_id.value if isinstance(capability_id, CapabilityId) else str(capability_id)
        capability = self.get(capability_id)
        if capability is None:
            self.logger.warning(
                "capability_unknown",
                extra={"extra_fields": {"capability_id": label, "error_kind": ErrorKind.UNKNOWN_CAPABILITY.value}},
            )
            return Result.error(f"unknown capability: {label}")

        started_at = time.perf_counter()
        try:
            result = normalize_result(capability.invoke(dict(args or {})))
        except Exception as exc:
            self.logger.exception(
                "capability_failed",
                extra={"extra_fields": {"capability_id": label, "error_kind": ErrorKind.CAPABILITY_FAILURE.value}},
            )
            return Result.error(f"capability {label} failed: {exc}")

        self.logger.info(
            "capability_executed",
            extra={
                "extra_fields": {
                    "capability_id": label,
                    "status": result.status,
                    "item_count": len(result.items),
                    "duration_ms": int((time.perf_counter() - started_at) * 1000),
                }
            },
        )
        return result

    def list_capabilities(self) -> dict[CapabilityId, CapabilityDescriptor]:
        return {
            capability_id: CapabilityDescriptor(
                capability_id=capability_id,
                description=str(getattr(capability, "description", "") or ""),
                params=list(getattr(capability, "params", []) or []),
            )
            for capability_id, capability in sorted(self._capabilities.items(), key=lambda entry: entry[0].value)
        }

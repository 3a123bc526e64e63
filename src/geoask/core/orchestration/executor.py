from __future__ import annotations

import json
import logging
from typing import Any

from geoask.core.actions.templater import MESSAGE_CHOOSE
from geoask.core.capabilities.items import item_coord, item_field
from geoask.core.capabilities.registry import CapabilityRegistry
from geoask.core.sessions.base import ChatMessage, SessionStores

from .errors import ErrorKind
from .schemas import (
    STATUS_ERROR,
    STATUS_NEEDS_CLARIFICATION,
    STATUS_NEEDS_USER_CHOICE,
    PendingChoiceContext,
    PlanStep,
    Result,
)

# these statuses end the step; no later call runs after a clarification request
HALTING_STATUSES = frozenset({STATUS_ERROR, STATUS_NEEDS_CLARIFICATION})


def inject_selection(args: dict[str, Any], selection: dict[str, Any] | None) -> dict[str, Any]:
    """Return a copy of ``args`` with the carried selection and its common identifiers merged in."""
    merged = dict(args)
    if not selection:
        return merged

    merged["selection"] = selection
    selection_id = item_field(selection, "id")
    if selection_id is not None:
        merged["id"] = selection_id
    egrid = item_field(selection, "egrid")
    if egrid is None:
        egrid = selection_id
    if egrid is not None:
        merged["egrid"] = egrid
    coord = item_coord(selection)
    if coord is not None:
        merged["coord"] = coord
        merged["x"], merged["y"] = coord[0], coord[1]
        crs = item_field(selection, "crs")
        if crs:
            merged["crs"] = crs
    return merged


def tool_result_message(capability_id: str, result: Result) -> ChatMessage:
    payload = json.dumps(result.model_dump(mode="json", by_alias=True), ensure_ascii=False, default=str)
    return ChatMessage(role="assistant", content=f"Tool {capability_id} result: {payload}")


class StepExecutor:
    def __init__(self, registry: CapabilityRegistry, stores: SessionStores) -> None:
        self.registry = registry
        self.stores = stores
        self.logger = logging.getLogger("geoask.executor")

    def run_step(
        self,
        session_id: str,
        request_id: str,
        step: PlanStep,
        *,
        start_index: int = 0,
        selection: dict[str, Any] | None = None,
    ) -> Result:
        if not step.tool_calls:
            return step.result

        last = step.result
        tool_calls = step.tool_calls
        for index in range(max(0, start_index), len(tool_calls)):
            tool_call = tool_calls[index]
            args = inject_selection(tool_call.args, selection)
            self.logger.info(
                "tool_call_started",
                extra={
                    "extra_fields": {
                        "capability_id": tool_call.capability_id,
                        "tool_call_index": index,
                        "has_selection": selection is not None,
                    }
                },
            )

            last = self.registry.execute(tool_call.capability_id, args)
            self.stores.chat_memory.append_message(session_id, tool_result_message(tool_call.capability_id, last))
            self.logger.info(
                "tool_call_completed",
                extra={
                    "extra_fields": {
                        "capability_id": tool_call.capability_id,
                        "tool_call_index": index,
                        "status": last.status,
                        "item_count": len(last.items),
                    }
                },
            )

            if last.status in HALTING_STATUSES:
                if last.status == STATUS_ERROR:
                    self._log_step_failed(tool_call.capability_id, index, last)
                return last

            has_next = index < len(tool_calls) - 1
            if has_next and len(last.items) > 1:
                context = PendingChoiceContext(
                    request_id=request_id,
                    step=step,
                    next_tool_call_index=index + 1,
                    choice_items=last.items,
                )
                self.stores.pending_choices.save(session_id, context)
                self.logger.info(
                    "choice_required",
                    extra={
                        "extra_fields": {
                            "capability_id": tool_call.capability_id,
                            "next_tool_call_index": index + 1,
                            "choice_count": len(last.items),
                        }
                    },
                )
                return Result(
                    status=STATUS_NEEDS_USER_CHOICE,
                    items=last.items,
                    message=last.message or MESSAGE_CHOOSE,
                )

            if len(last.items) == 1:
                selection = last.items[0]
                self.stores.selections.save(session_id, selection)
            else:
                selection = None
        return last

    def _log_step_failed(self, capability_id: str, index: int, result: Result) -> None:
        kind = ErrorKind.CAPABILITY_FAILURE
        if self.registry.get(capability_id) is None:
            kind = ErrorKind.UNKNOWN_CAPABILITY
        self.logger.warning(
            "step_failed",
            extra={
                "extra_fields": {
                    "capability_id": capability_id,
                    "tool_call_index": index,
                    "error_kind": kind.value,
                    "error": result.message,
                }
            },
        )

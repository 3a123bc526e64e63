from __future__ import annotations

import logging
from typing import Any, Protocol
from uuid import uuid4

from geoask.core.actions.templater import ActionTemplater
from geoask.core.capabilities.items import item_id
from geoask.core.capabilities.registry import CapabilityRegistry
from geoask.core.logging.context import log_context
from geoask.core.sessions.base import ChatMessage, SessionStores

from .errors import ErrorKind, PlannerError
from .executor import StepExecutor
from .schemas import (
    STATUS_ERROR,
    STATUS_OK,
    STATUS_PRIORITY,
    ChatRequest,
    ChatResponse,
    Plan,
    PlanStep,
    Result,
    StepResponse,
)

MESSAGE_NO_PENDING_CHOICE = "There is no open choice for this session."
MESSAGE_CHOICE_NOT_FOUND = "The selected option could not be found."
MESSAGE_STEP_FAILED = "The step could not be completed."
MESSAGE_PLAN_FAILED = "The request could not be planned."


class PlanSource(Protocol):
    def plan(self, session_id: str, user_message: str) -> Plan: ...


def aggregate_status(steps: list[StepResponse]) -> str:
    statuses = {step.status for step in steps}
    for status in STATUS_PRIORITY:
        if status in statuses:
            return status
    return STATUS_OK


def error_step(intent: str | None, message: str) -> StepResponse:
    return StepResponse(intent=intent, status=STATUS_ERROR, message=message)


def resolve_choice(choice_items: list[dict[str, Any]], choice_id: str) -> dict[str, Any] | None:
    for item in choice_items:
        if item_id(item) == choice_id:
            return item
    return None


class Orchestrator:
    def __init__(
        self,
        registry: CapabilityRegistry,
        planner: PlanSource,
        stores: SessionStores,
        templater: ActionTemplater | None = None,
    ) -> None:
        self.registry = registry
        self.planner = planner
        self.stores = stores
        self.templater = templater or ActionTemplater()
        self.executor = StepExecutor(registry, stores)
        self.logger = logging.getLogger("geoask.orchestrator")

    def handle(self, request: ChatRequest) -> ChatResponse:
        return self.handle_prompt(request.session_id, user_message=request.user_message, choice_id=request.choice_id)

    def handle_prompt(
        self,
        session_id: str,
        user_message: str | None = None,
        choice_id: str | None = None,
    ) -> ChatResponse:
        with log_context(session_id=session_id):
            if choice_id and choice_id.strip():
                return self._safe_resume(session_id, choice_id.strip())
            return self._run_plan(session_id, user_message or "")

    def clear_session(self, session_id: str) -> None:
        self.stores.clear(session_id)
        self.logger.info("session_cleared", extra={"extra_fields": {"session_id": session_id}})

    def _run_plan(self, session_id: str, user_message: str) -> ChatResponse:
        try:
            plan = self.planner.plan(session_id, user_message)
        except PlannerError as exc:
            self.logger.warning(
                "plan_failed",
                extra={"extra_fields": {"error_kind": exc.kind.value, "error": str(exc)}},
            )
            steps = [error_step(None, str(exc) or MESSAGE_PLAN_FAILED)]
            return ChatResponse(request_id=str(uuid4()), steps=steps, overall_status=aggregate_status(steps))
        except Exception:
            self.logger.exception(
                "plan_failed",
                extra={"extra_fields": {"error_kind": ErrorKind.MALFORMED_PLAN.value}},
            )
            steps = [error_step(None, MESSAGE_PLAN_FAILED)]
            return ChatResponse(request_id=str(uuid4()), steps=steps, overall_status=aggregate_status(steps))

        with log_context(request_id=plan.request_id):
            self.logger.info("plan_received", extra={"extra_fields": {"step_count": len(plan.steps)}})
            steps = [self._run_step(session_id, plan.request_id, step) for step in plan.steps]
            return ChatResponse(request_id=plan.request_id, steps=steps, overall_status=aggregate_status(steps))

    def _safe_resume(self, session_id: str, choice_id: str) -> ChatResponse:
        try:
            return self._resume(session_id, choice_id)
        except Exception:
            self.logger.exception(
                "resume_failed",
                extra={"extra_fields": {"choice_id": choice_id, "error_kind": ErrorKind.SESSION_STORE_FAILURE.value}},
            )
            steps = [error_step(None, MESSAGE_STEP_FAILED)]
            return ChatResponse(request_id=str(uuid4()), steps=steps, overall_status=aggregate_status(steps))

    def _resume(self, session_id: str, choice_id: str) -> ChatResponse:
        context = self.stores.pending_choices.consume(session_id)
        if context is None:
            self.logger.warning(
                "choice_rejected",
                extra={"extra_fields": {"choice_id": choice_id, "error_kind": ErrorKind.NO_PENDING_CHOICE.value}},
            )
            steps = [error_step(None, MESSAGE_NO_PENDING_CHOICE)]
            return ChatResponse(request_id=str(uuid4()), steps=steps, overall_status=aggregate_status(steps))

        with log_context(request_id=context.request_id):
            self.stores.chat_memory.append_message(
                session_id, ChatMessage(role="user", content=f"User choice: {choice_id}")
            )
            selection = resolve_choice(context.choice_items, choice_id)
            if selection is None:
                self.logger.warning(
                    "choice_rejected",
                    extra={
                        "extra_fields": {
                            "choice_id": choice_id,
                            "candidate_count": len(context.choice_items),
                            "error_kind": ErrorKind.CHOICE_NOT_FOUND.value,
                        }
                    },
                )
                steps = [error_step(context.step.intent, MESSAGE_CHOICE_NOT_FOUND)]
                return ChatResponse(
                    request_id=context.request_id, steps=steps, overall_status=aggregate_status(steps)
                )

            self.stores.selections.save(session_id, selection)
            self.logger.info(
                "choice_resumed",
                extra={
                    "extra_fields": {
                        "choice_id": choice_id,
                        "next_tool_call_index": context.next_tool_call_index,
                    }
                },
            )
            steps = [
                self._run_step(
                    session_id,
                    context.request_id,
                    context.step,
                    start_index=context.next_tool_call_index,
                    selection=selection,
                )
            ]
            return ChatResponse(request_id=context.request_id, steps=steps, overall_status=aggregate_status(steps))

    def _run_step(
        self,
        session_id: str,
        request_id: str,
        step: PlanStep,
        *,
        start_index: int = 0,
        selection: dict[str, Any] | None = None,
    ) -> StepResponse:
        try:
            with log_context(intent=step.intent):
                result = self.executor.run_step(
                    session_id, request_id, step, start_index=start_index, selection=selection
                )
            return self._to_step_response(step.intent, result)
        except Exception:
            self.logger.exception(
                "step_failed",
                extra={"extra_fields": {"intent": step.intent, "error_kind": ErrorKind.CAPABILITY_FAILURE.value}},
            )
            return error_step(step.intent, MESSAGE_STEP_FAILED)

    def _to_step_response(self, intent: str | None, result: Result) -> StepResponse:
        action_plan = self.templater.to_action_plan(intent, result)
        message = result.message if result.message is not None else action_plan.message
        return StepResponse(
            intent=intent,
            status=action_plan.status,
            message=message,
            map_actions=action_plan.map_actions,
            choices=action_plan.choices,
        )

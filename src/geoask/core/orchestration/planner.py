from __future__ import annotations

import logging

from pydantic import ValidationError

from geoask.core.capabilities.registry import CapabilityRegistry
from geoask.core.models.llm_provider import GeoAskLLM, LLMOutputError, LLMUnavailable, parse_json_object
from geoask.core.models.prompts import planner_system_prompt
from geoask.core.sessions.base import ChatMemoryStore, ChatMessage

from .errors import MalformedPlanError, PlannerUnavailable
from .schemas import Plan


class Planner:
    """Turns a user message into a ``Plan`` with the help of the chat-completion backend."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        chat_memory: ChatMemoryStore,
        llm: GeoAskLLM | None = None,
    ) -> None:
        self.registry = registry
        self.chat_memory = chat_memory
        self.llm = llm or GeoAskLLM()
        self.logger = logging.getLogger("geoask.planner")

    def plan(self, session_id: str, user_message: str) -> Plan:
        user_text = user_message or ""
        system = planner_system_prompt(list(self.registry.list_capabilities().values()))
        history = self.chat_memory.get_messages(session_id)
        messages = [{"role": "system", "content": system}]
        messages.extend({"role": message.role, "content": message.content} for message in history)
        messages.append({"role": "user", "content": user_text})

        try:
            raw = self.llm.complete(messages)
        except LLMUnavailable as exc:
            raise PlannerUnavailable(str(exc)) from exc

        self.chat_memory.append_messages(
            session_id,
            [ChatMessage(role="user", content=user_text), ChatMessage(role="assistant", content=raw)],
        )

        try:
            plan = Plan.model_validate(parse_json_object(raw))
        except (LLMOutputError, ValidationError) as exc:
            raise MalformedPlanError(f"planner returned an invalid plan: {exc}") from exc

        self.logger.info(
            "plan_created",
            extra={
                "extra_fields": {
                    "request_id": plan.request_id,
                    "step_count": len(plan.steps),
                    "history_len": len(history),
                }
            },
        )
        return plan

from __future__ import annotations

from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

STATUS_OK = "ok"
STATUS_NEEDS_USER_CHOICE = "needs_user_choice"
STATUS_NEEDS_CLARIFICATION = "needs_clarification"
STATUS_ERROR = "error"
STATUS_PENDING = "pending"

# first match wins when several steps disagree
STATUS_PRIORITY = (STATUS_ERROR, STATUS_NEEDS_CLARIFICATION, STATUS_NEEDS_USER_CHOICE)


class IntentType(str, Enum):
    GOTO_ADDRESS = "goto_address"
    LOAD_LAYER = "load_layer"
    SEARCH_PLACE = "search_place"
    OEREB_EXTRACT = "oereb_extract"
    GEOTHERMAL_PROBE_ASSESSMENT = "geothermal_probe_assessment"
    CADASTRAL_PLAN = "cadastral_plan"

    @classmethod
    def from_id(cls, value: str | None) -> IntentType | None:
        if not value:
            return None
        normalized = str(value).strip().casefold()
        for intent in cls:
            if intent.value == normalized:
                return intent
        return None


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Result(WireModel):
    status: str = STATUS_PENDING
    items: list[dict[str, Any]] = Field(default_factory=list)
    message: str | None = None

    @field_validator("items", mode="before")
    @classmethod
    def _none_items(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def error(cls, message: str) -> Result:
        return cls(status=STATUS_ERROR, items=[], message=message)


class ToolCall(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    capability_id: str
    args: dict[str, Any] = Field(default_factory=dict)

    @field_validator("args", mode="before")
    @classmethod
    def _none_args(cls, value: Any) -> Any:
        return {} if value is None else value


class PlanStep(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    intent: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    result: Result = Field(default_factory=Result)

    @field_validator("tool_calls", mode="before")
    @classmethod
    def _none_tool_calls(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("result", mode="before")
    @classmethod
    def _none_result(cls, value: Any) -> Any:
        return Result() if value is None else value


class Plan(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    request_id: str = Field(default_factory=lambda: str(uuid4()))
    steps: list[PlanStep] = Field(default_factory=list)

    @field_validator("request_id", mode="before")
    @classmethod
    def _blank_request_id(cls, value: Any) -> Any:
        if value is None or not str(value).strip():
            return str(uuid4())
        return str(value)

    @field_validator("steps", mode="before")
    @classmethod
    def _none_steps(cls, value: Any) -> Any:
        return [] if value is None else value


class MapAction(WireModel):
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class Choice(WireModel):
    id: str
    label: str
    confidence: float | None = None
    map_actions: list[MapAction] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class StepResponse(WireModel):
    intent: str | None = None
    status: str
    message: str | None = None
    map_actions: list[MapAction] = Field(default_factory=list)
    choices: list[Choice] = Field(default_factory=list)


class ChatResponse(WireModel):
    request_id: str
    steps: list[StepResponse] = Field(default_factory=list)
    overall_status: str = STATUS_OK


class ChatRequest(WireModel):
    session_id: str
    user_message: str | None = None
    choice_id: str | None = None

    @model_validator(mode="after")
    def _message_or_choice(self) -> ChatRequest:
        if not (self.user_message or "").strip() and not (self.choice_id or "").strip():
            raise ValueError("either userMessage or choiceId is required")
        return self


class SessionRequest(WireModel):
    session_id: str


class PendingChoiceContext(WireModel):
    request_id: str
    step: PlanStep
    next_tool_call_index: int
    choice_items: list[dict[str, Any]] = Field(default_factory=list)

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNKNOWN_CAPABILITY = "unknown_capability"
    CAPABILITY_FAILURE = "capability_failure"
    NO_PENDING_CHOICE = "no_pending_choice"
    CHOICE_NOT_FOUND = "choice_not_found"
    MALFORMED_PLAN = "malformed_plan"
    SESSION_STORE_FAILURE = "session_store_failure"


class PlannerError(RuntimeError):
    kind = ErrorKind.CAPABILITY_FAILURE


class PlannerUnavailable(PlannerError):
    """The planner backend is switched off or could not be reached."""


class MalformedPlanError(PlannerError):
    kind = ErrorKind.MALFORMED_PLAN

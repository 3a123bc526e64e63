from __future__ import annotations

from typing import Any

import pytest

from geoask.core.capabilities.base import CapabilityId
from geoask.core.capabilities.registry import CapabilityRegistry
from geoask.core.orchestration.orchestrator import Orchestrator
from geoask.core.orchestration.schemas import Plan
from geoask.core.sessions import SessionStores, in_memory_session_stores


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("GEOASK_STATE_DIR", str(tmp_path))
    monkeypatch.setenv("GEOASK_LOG_TO_FILE", "off")
    monkeypatch.setenv("GEOASK_LLM_PROVIDER", "off")
    monkeypatch.setenv("GEOASK_SESSION_STORE", "memory")
    monkeypatch.delenv("GEOASK_HTTP_RETRIES", raising=False)


class RecordingCapability:
    """Returns scripted results in order (the last one repeats) and records every args dict."""

    def __init__(self, capability_id: CapabilityId | str, *results: Any) -> None:
        self.capability_id = CapabilityId.from_id(capability_id)
        self.description = f"test double for {self.capability_id.value}"
        self.params = []
        self.calls: list[dict[str, Any]] = []
        self._results = list(results)

    def invoke(self, args: dict[str, Any]) -> Any:
        self.calls.append(args)
        result = self._results.pop(0) if len(self._results) > 1 else self._results[0]
        if isinstance(result, Exception):
            raise result
        return result


class ScriptedPlanner:
    def __init__(self, *plans: Any) -> None:
        self.plans = list(plans)
        self.calls: list[tuple[str, str]] = []

    def plan(self, session_id: str, user_message: str) -> Plan:
        self.calls.append((session_id, user_message))
        plan = self.plans.pop(0)
        if isinstance(plan, Exception):
            raise plan
        return plan if isinstance(plan, Plan) else Plan.model_validate(plan)


@pytest.fixture
def stores() -> SessionStores:
    return in_memory_session_stores()


@pytest.fixture
def registry() -> CapabilityRegistry:
    return CapabilityRegistry()


@pytest.fixture
def make_capability(registry: CapabilityRegistry):
    def factory(capability_id: CapabilityId | str, *results: Any) -> RecordingCapability:
        capability = RecordingCapability(capability_id, *results)
        registry.register(capability)
        return capability

    return factory


@pytest.fixture
def make_orchestrator(registry: CapabilityRegistry, stores: SessionStores):
    def factory(*plans: Any) -> tuple[Orchestrator, ScriptedPlanner]:
        planner = ScriptedPlanner(*plans)
        return Orchestrator(registry=registry, planner=planner, stores=stores), planner

    return factory

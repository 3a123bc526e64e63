from __future__ import annotations

import os
from functools import lru_cache

from geoask.core.capabilities.builtin import register_builtin_capabilities
from geoask.core.capabilities.registry import CapabilityRegistry
from geoask.core.orchestration.orchestrator import Orchestrator
from geoask.core.orchestration.planner import Planner
from geoask.core.sessions import SessionStores, build_session_stores


def _capability_timeout_s() -> float | None:
    raw = os.getenv("GEOASK_CAPABILITY_TIMEOUT_S")
    return float(raw) if raw else None


@lru_cache(maxsize=1)
def get_registry() -> CapabilityRegistry:
    return register_builtin_capabilities(CapabilityRegistry(), timeout_s=_capability_timeout_s())


@lru_cache(maxsize=1)
def get_session_stores() -> SessionStores:
    return build_session_stores()


@lru_cache(maxsize=1)
def get_planner() -> Planner:
    return Planner(registry=get_registry(), chat_memory=get_session_stores().chat_memory)


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    return Orchestrator(registry=get_registry(), planner=get_planner(), stores=get_session_stores())

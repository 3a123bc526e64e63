from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import pytest

from geoask.core.capabilities.base import CapabilityId, FunctionCapability
from geoask.core.capabilities.registry import CapabilityRegistry, normalize_result
from geoask.core.orchestration.schemas import Result


class ToolStatus(Enum):
    SUCCESS = "success"
    NEEDS_USER_CHOICE = "needs_user_choice"


@dataclass
class ToolResult:
    status: ToolStatus
    items: list = field(default_factory=list)
    message: str | None = None


def test_execute_unknown_capability_returns_error_result(registry: CapabilityRegistry) -> None:
    result = registry.execute("nope.nothing", {"q": "x"})

    assert result.status == "error"
    assert result.items == []
    assert "unknown capability" in (result.message or "")


def test_execute_declared_but_unregistered_capability_is_unknown(registry: CapabilityRegistry) -> None:
    result = registry.execute(CapabilityId.PROCESSING_CADASTRAL_PLAN_BY_GEOMETRY, {})

    assert result.status == "error"
    assert "processing.getCadastralPlanByGeometry" in (result.message or "")


def test_execute_converts_capability_exception_into_error(registry: CapabilityRegistry) -> None:
    def boom(args: dict) -> Result:
        raise TimeoutError("read timed out")

    registry.register(FunctionCapability(CapabilityId.LAYERS_SEARCH, boom))

    result = registry.execute("layers.search", {"query": "Gewässerschutz"})

    assert result.status == "error"
    assert "read timed out" in (result.message or "")


def test_execute_passes_args_and_normalizes_mapping(registry: CapabilityRegistry) -> None:
    seen: list[dict] = []

    def geocode(args: dict) -> dict:
        seen.append(args)
        return {"status": "SUCCESS", "items": [{"id": "1", "label": "Main Street 1"}], "message": "found"}

    registry.register(FunctionCapability("geolocation.geocode", geocode))

    result = registry.execute("GEOLOCATION.GEOCODE", {"q": "Main Street 1"})

    assert seen == [{"q": "Main Street 1"}]
    assert result == Result(status="ok", items=[{"id": "1", "label": "Main Street 1"}], message="found")


def test_normalize_result_accepts_objects_with_enum_status() -> None:
    raw = ToolResult(status=ToolStatus.NEEDS_USER_CHOICE, items=[{"id": "a"}, {"id": "b"}], message="pick")

    result = normalize_result(raw)

    assert result.status == "needs_user_choice"
    assert [item["id"] for item in result.items] == ["a", "b"]
    assert result.message == "pick"


def test_normalize_result_maps_success_enum_to_ok() -> None:
    assert normalize_result(ToolResult(status=ToolStatus.SUCCESS)).status == "ok"


@pytest.mark.parametrize("status", ["failed", "pending", "done", ""])
def test_normalize_result_maps_unrecognised_status_to_error(status) -> None:
    assert normalize_result({"status": status, "items": []}).status == "error"
    assert normalize_result(Result(status=status)).status == "error"


@pytest.mark.parametrize("raw", [None, "ok", 42, {"items": []}])
def test_normalize_result_rejects_unusable_shapes(raw) -> None:
    assert normalize_result(raw).status == "error"


def test_normalize_result_rejects_non_mapping_items() -> None:
    with pytest.raises(TypeError):
        normalize_result({"status": "ok", "items": ["not-a-record"]})


def test_execute_turns_bad_items_into_error(registry: CapabilityRegistry) -> None:
    registry.register(FunctionCapability("layers.search", lambda args: {"status": "ok", "items": "oops"}))

    assert registry.execute("layers.search", {}).status == "error"


def test_register_rejects_duplicates_and_unknown_ids(registry: CapabilityRegistry) -> None:
    registry.register(FunctionCapability("layers.search", lambda args: None))

    with pytest.raises(ValueError):
        registry.register(FunctionCapability("layers.search", lambda args: None))
    with pytest.raises(ValueError):
        FunctionCapability("weather.forecast", lambda args: None)


def test_list_capabilities_is_sorted_by_id(registry: CapabilityRegistry) -> None:
    registry.register(FunctionCapability("oereb.extractById", lambda args: None, description="extract"))
    registry.register(FunctionCapability("geolocation.geocode", lambda args: None, description="geocode"))

    descriptors = registry.list_capabilities()

    assert list(descriptors) == [CapabilityId.GEOLOCATION_GEOCODE, CapabilityId.OEREB_EXTRACT_BY_ID]
    assert descriptors[CapabilityId.OEREB_EXTRACT_BY_ID].description == "extract"

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol

from pydantic import Field

from geoask.core.orchestration.schemas import WireModel


class CapabilityId(str, Enum):
    GEOLOCATION_GEOCODE = "geolocation.geocode"
    LAYERS_SEARCH = "layers.search"
    OEREB_EGRID_BY_XY = "oereb.egridByXY"
    OEREB_EXTRACT_BY_ID = "oereb.extractById"
    FEATURE_SEARCH_EGRID_BY_NUMBER_AND_MUNICIPALITY = "featureSearch.getEgridByNumberAndMunicipality"
    PROCESSING_GEOTHERMAL_BORE_INFO_BY_XY = "processing.getGeothermalBoreInfoByXY"
    PROCESSING_CADASTRAL_PLAN_BY_GEOMETRY = "processing.getCadastralPlanByGeometry"

    @classmethod
    def from_id(cls, value: CapabilityId | str) -> CapabilityId:
        if isinstance(value, CapabilityId):
            return value
        normalized = str(value).strip().casefold()
        for capability in cls:
            if capability.value.casefold() == normalized:
                return capability
        raise ValueError(f"unknown capability: {value}")


class CapabilityParam(WireModel):
    name: str
    description: str = ""
    required: bool = False
    schema_hint: str | None = Field(default=None, serialization_alias="schema")


class CapabilityDescriptor(WireModel):
    capability_id: CapabilityId
    description: str = ""
    params: list[CapabilityParam] = Field(default_factory=list)


class Capability(Protocol):
    capability_id: CapabilityId
    description: str
    params: list[CapabilityParam]

    def invoke(self, args: dict[str, Any]) -> Any: ...


@dataclass
class FunctionCapability:
    """Adapts a plain callable ``fn(args) -> result`` to the capability protocol."""

    capability_id: CapabilityId
    fn: Callable[[dict[str, Any]], Any]
    description: str = ""
    params: list[CapabilityParam] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.capability_id = CapabilityId.from_id(self.capability_id)

    def invoke(self, args: dict[str, Any]) -> Any:
        return self.fn(args)

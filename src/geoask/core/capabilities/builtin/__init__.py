from __future__ import annotations

from geoask.core.capabilities.registry import CapabilityRegistry

from .feature_search import EgridByNumberAndMunicipalityCapability
from .geolocation import GeocodeCapability
from .geothermal import GeothermalBoreInfoCapability
from .layers import LayerSearchCapability
from .oereb import EgridByXYCapability, ExtractByIdCapability


def register_builtin_capabilities(registry: CapabilityRegistry, timeout_s: float | None = None) -> CapabilityRegistry:
    registry.register(GeocodeCapability(timeout_s=timeout_s))
    registry.register(LayerSearchCapability(timeout_s=timeout_s))
    registry.register(EgridByXYCapability(timeout_s=timeout_s))
    registry.register(ExtractByIdCapability())
    registry.register(EgridByNumberAndMunicipalityCapability(timeout_s=timeout_s))
    registry.register(GeothermalBoreInfoCapability(timeout_s=timeout_s))
    return registry


__all__ = [
    "EgridByNumberAndMunicipalityCapability",
    "EgridByXYCapability",
    "ExtractByIdCapability",
    "GeocodeCapability",
    "GeothermalBoreInfoCapability",
    "LayerSearchCapability",
    "register_builtin_capabilities",
]

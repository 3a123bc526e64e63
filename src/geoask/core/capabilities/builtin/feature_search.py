from __future__ import annotations

import json
import logging
import os
from typing import Any

from geoask.core.capabilities.base import CapabilityId, CapabilityParam
from geoask.core.capabilities.items import as_coord, geometry_extent
from geoask.core.http.client import request_with_retry
from geoask.core.http.errors import GeoAskHTTPError, GeoAskHTTPStatusError
from geoask.core.orchestration.schemas import STATUS_ERROR, STATUS_NEEDS_USER_CHOICE, STATUS_OK, Result

PARCEL_CRS = "EPSG:2056"
PARCEL_ZOOM = 17


def _parcels_url() -> str:
    return os.getenv(
        "GEOASK_PARCELS_URL", "https://geo.so.ch/api/data/v1/ch.so.agi.av.grundstuecke.rechtskraeftig/"
    )


def _text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def parcel_filter(number: str, municipality: str) -> str:
    """Data-service filter expression; the service compares case-sensitively."""
    return json.dumps([["nummer", "=", number], "and", ["gemeinde", "=", municipality]], ensure_ascii=False)


def _label(number: str, municipality: str, egrid: str, property_type: str, land_register: str) -> str:
    label = f"Parcel {number} {municipality}".strip() if number else f"Parcel {municipality}".strip()
    if property_type:
        label += f" ({property_type})"
    if land_register:
        label += f", land register {land_register}"
    return f"{label}, {egrid}"


def feature_item(feature: dict[str, Any]) -> dict[str, Any] | None:
    properties = feature.get("properties")
    if not isinstance(properties, dict):
        return None
    egrid = _text(properties.get("egrid"))
    if not egrid:
        return None

    number = _text(properties.get("nummer"))
    municipality = _text(properties.get("gemeinde"))
    land_register = _text(properties.get("grundbuch"))
    property_type = _text(properties.get("art_txt"))
    payload: dict[str, Any] = {
        "id": egrid,
        "egrid": egrid,
        "label": _label(number, municipality, egrid, property_type, land_register),
        "number": number,
        "municipality": municipality,
        "landRegister": land_register,
        "propertyType": property_type,
    }

    geometry = feature.get("geometry")
    extent = geometry_extent(geometry)
    if extent is not None:
        centroid = as_coord(extent)
        payload.update(geometry=geometry, extent=extent, coord=centroid, centroid=centroid, crs=PARCEL_CRS)

    item: dict[str, Any] = {"type": "oereb-parcel", "payload": payload, "options": []}
    if "coord" in payload:
        item["clientAction"] = {
            "type": "setView",
            "payload": {"center": payload["coord"], "zoom": PARCEL_ZOOM, "crs": PARCEL_CRS},
        }
    return item


class EgridByNumberAndMunicipalityCapability:
    capability_id = CapabilityId.FEATURE_SEARCH_EGRID_BY_NUMBER_AND_MUNICIPALITY
    description = (
        "Finds the EGRID of a parcel from its parcel number and municipality name. "
        "Several matches are returned as options to choose from."
    )
    params = [
        CapabilityParam(name="number", description="Parcel number as users know it", required=True, schema_hint="string"),
        CapabilityParam(name="municipality", description="Municipality name", required=True, schema_hint="string"),
    ]

    def __init__(self, timeout_s: float | None = None) -> None:
        self.timeout_s = timeout_s
        self.logger = logging.getLogger("geoask.capabilities.feature_search")

    def invoke(self, args: dict[str, Any]) -> Result:
        number = _text(args.get("number"))
        municipality = _text(args.get("municipality"))
        if not number or not municipality:
            return Result.error("Both a parcel number ('number') and a municipality ('municipality') are required.")

        try:
            response = request_with_retry(
                "GET",
                _parcels_url(),
                params={"filter": parcel_filter(number, municipality)},
                timeout_override=self.timeout_s,
            )
            payload = response.json()
        except GeoAskHTTPStatusError as exc:
            self.logger.warning("feature_search_http_status", extra={"extra_fields": {"status_code": exc.status_code}})
            return Result.error(f"Feature service request failed (HTTP {exc.status_code}).")
        except GeoAskHTTPError:
            self.logger.exception("feature_search_unreachable")
            return Result.error("Feature service could not be reached.")
        except ValueError:
            self.logger.exception("feature_search_unreadable")
            return Result.error("Feature service response could not be processed.")

        features = payload.get("features") if isinstance(payload, dict) else None
        entries = [feature for feature in features or [] if isinstance(feature, dict)]
        items = [item for item in (feature_item(feature) for feature in entries) if item is not None]
        if not items:
            return Result(status=STATUS_ERROR, items=[], message=f"No parcel {number} found in {municipality}.")
        if len(items) > 1:
            return Result(
                status=STATUS_NEEDS_USER_CHOICE, items=items, message="Several parcels found. Please choose one."
            )
        return Result(status=STATUS_OK, items=items, message="EGRID found.")

from __future__ import annotations

import logging
import os
from typing import Any
from urllib.parse import quote

from geoask.core.capabilities.base import CapabilityId, CapabilityParam
from geoask.core.capabilities.items import as_coord, item_field
from geoask.core.http.client import request_with_retry
from geoask.core.http.errors import GeoAskHTTPError, GeoAskHTTPStatusError
from geoask.core.orchestration.schemas import STATUS_ERROR, STATUS_OK, Result

OEREB_CRS = "EPSG:2056"
MESSAGE_NO_PARCEL = "No parcel found."


def _egrid_url() -> str:
    return os.getenv("GEOASK_OEREB_URL", "https://geo.so.ch/api/oereb/getegrid/json/")


def _extract_url() -> str:
    return os.getenv("GEOASK_OEREB_EXTRACT_URL", "https://geo.so.ch/api/oereb/extract/pdf/")


def _map_url() -> str:
    return os.getenv("GEOASK_MAP_URL", "https://geo.so.ch/map/")


def _format_coordinate(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def requested_coord(args: dict[str, Any]) -> list[float] | None:
    coord = as_coord(args.get("coord"))
    if coord is not None:
        return coord
    return as_coord([args.get("x"), args.get("y")])


def _localised_text(raw: Any) -> str | None:
    if isinstance(raw, str):
        return raw or None
    if isinstance(raw, dict):
        for key in ("Text", "text"):
            if key in raw:
                return _localised_text(raw[key])
        return None
    if isinstance(raw, list):
        texts = [entry for entry in raw if isinstance(entry, dict)]
        for entry in texts:
            if str(entry.get("Language") or entry.get("language") or "").casefold() == "de":
                return _localised_text(entry)
        for entry in texts:
            text = _localised_text(entry)
            if text:
                return text
    return None


def _response_entries(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        if "egrid" in payload:
            return [payload]
        for key in ("GetEGRIDResponse", "getEgridResponse"):
            if key in payload:
                return _response_entries(payload[key])
        return []
    if isinstance(payload, list):
        entries: list[dict[str, Any]] = []
        for entry in payload:
            entries.extend(_response_entries(entry))
        return entries
    return []


def parcel_item(entry: dict[str, Any], coord: list[float]) -> dict[str, Any] | None:
    egrid = str(entry.get("egrid") or "").strip()
    if not egrid:
        return None
    number = str(entry.get("number") or "").strip()
    property_type = _localised_text(entry.get("type")) or "Parcel"
    label = f"{egrid} - {property_type} ({number})" if number else f"{egrid} - {property_type}"
    item: dict[str, Any] = {
        "id": egrid,
        "egrid": egrid,
        "number": number or None,
        "identDN": entry.get("identDN"),
        "propertyType": property_type,
        "label": label,
        "coord": list(coord),
        "crs": OEREB_CRS,
    }
    geometry = entry.get("limit")
    if isinstance(geometry, dict) and "type" in geometry and "coordinates" in geometry:
        item["geometry"] = geometry
    return item


class EgridByXYCapability:
    capability_id = CapabilityId.OEREB_EGRID_BY_XY
    description = "Finds the parcels (EGRID) at an LV95 coordinate."
    params = [
        CapabilityParam(name="x", description="LV95 easting", schema_hint="number"),
        CapabilityParam(name="y", description="LV95 northing", schema_hint="number"),
        CapabilityParam(name="coord", description="Alternative to x/y", schema_hint="[east, north]"),
    ]

    def __init__(self, timeout_s: float | None = None) -> None:
        self.timeout_s = timeout_s
        self.logger = logging.getLogger("geoask.capabilities.oereb")

    def invoke(self, args: dict[str, Any]) -> Result:
        coord = requested_coord(args)
        if coord is None:
            return Result.error("Invalid coordinate.")

        en = f"{_format_coordinate(coord[0])},{_format_coordinate(coord[1])}"
        try:
            response = request_with_retry(
                "GET",
                _egrid_url(),
                params={"GEOMETRY": "true", "EN": en},
                timeout_override=self.timeout_s,
                allowed_statuses={204},
            )
            if response.status_code == 204 or not response.content.strip():
                return Result(status=STATUS_ERROR, items=[], message=MESSAGE_NO_PARCEL)
            entries = _response_entries(response.json())
        except GeoAskHTTPStatusError as exc:
            self.logger.warning("egrid_http_status", extra={"extra_fields": {"status_code": exc.status_code}})
            return Result.error(f"OEREB service request failed (HTTP {exc.status_code}).")
        except GeoAskHTTPError:
            self.logger.exception("egrid_unreachable")
            return Result.error("OEREB service could not be reached.")
        except ValueError:
            self.logger.exception("egrid_unreadable")
            return Result.error("OEREB service response could not be processed.")

        items = [item for item in (parcel_item(entry, coord) for entry in entries) if item is not None]
        if not items:
            return Result(status=STATUS_ERROR, items=[], message=MESSAGE_NO_PARCEL)
        message = "Several parcels found." if len(items) > 1 else "Parcel found."
        return Result(status=STATUS_OK, items=items, message=message)


class ExtractByIdCapability:
    capability_id = CapabilityId.OEREB_EXTRACT_BY_ID
    description = "Builds the OEREB extract links for a parcel EGRID."
    params = [
        CapabilityParam(name="egrid", description="Parcel EGRID", schema_hint="string"),
        CapabilityParam(name="selection", description="Selected parcel carrying 'egrid' or 'id'", schema_hint="object"),
    ]

    def invoke(self, args: dict[str, Any]) -> Result:
        selection = args.get("selection") if isinstance(args.get("selection"), dict) else {}
        egrid = args.get("egrid") or item_field(selection, "egrid") or item_field(selection, "id")
        egrid = str(egrid or "").strip()
        if not egrid:
            return Result.error("No EGRID given.")

        item: dict[str, Any] = {
            "id": egrid,
            "egrid": egrid,
            "label": f"OEREB extract for {egrid}",
            "pdfUrl": f"{_extract_url()}?EGRID={quote(egrid)}",
            "mapUrl": f"{_map_url()}?oereb_egrid={quote(egrid)}",
        }
        for key in ("coord", "crs", "geometry"):
            value = item_field(selection, key)
            if value is not None:
                item[key] = value
        message = f"OEREB extract ready.\nPDF: {item['pdfUrl']}\nMap: {item['mapUrl']}"
        return Result(status=STATUS_OK, items=[item], message=message)

from __future__ import annotations

import logging
import os
import re
from typing import Any

from geoask.core.capabilities.base import CapabilityId, CapabilityParam
from geoask.core.http.client import request_with_retry
from geoask.core.http.errors import GeoAskHTTPError, GeoAskHTTPStatusError
from geoask.core.orchestration.schemas import STATUS_ERROR, STATUS_NEEDS_USER_CHOICE, STATUS_OK, Result

ADDRESS_FILTER = "ch.so.agi.av.gebaeudeadressen.gebaeudeeingaenge"
DEFAULT_LIMIT = 25


def _search_url() -> str:
    return os.getenv("GEOASK_SEARCH_URL", "https://geo.so.ch/api/search/v2/")


def sanitize_label(display: str) -> str:
    return re.sub(r"\s+", " ", display.replace("(Adresse)", "")).strip()


def street_and_number(text: str) -> str:
    """``"Langendorfstrasse 19b, Solothurn"`` -> ``"langendorfstrasse 19b"``."""
    base = text.split(",", 1)[0]
    return re.sub(r"\s+", " ", base).strip().casefold()


def feature_to_item(feature: Any) -> dict[str, Any] | None:
    if not isinstance(feature, dict):
        return None
    feature_id = feature.get("feature_id")
    srid = feature.get("srid")
    label = sanitize_label(str(feature.get("display") or ""))
    bbox = feature.get("bbox")
    if feature_id is None or srid is None or not label or not isinstance(bbox, list) or not bbox:
        return None
    try:
        coord = [float(value) for value in bbox]
    except (TypeError, ValueError):
        return None
    crs = str(srid) if str(srid).upper().startswith("EPSG:") else f"EPSG:{srid}"
    return {"id": str(feature_id), "label": label, "coord": coord, "crs": crs}


def exact_matches(query: str, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    wanted = street_and_number(query)
    if not wanted:
        return []
    return [item for item in items if street_and_number(str(item.get("label") or "")) == wanted]


class GeocodeCapability:
    capability_id = CapabilityId.GEOLOCATION_GEOCODE
    description = "Geocoder for addresses in the canton of Solothurn (geo.so.ch search API)."
    params = [
        CapabilityParam(name="q", description="Full address query", required=True, schema_hint="string"),
    ]

    def __init__(self, timeout_s: float | None = None) -> None:
        self.timeout_s = timeout_s
        self.logger = logging.getLogger("geoask.capabilities.geolocation")

    def invoke(self, args: dict[str, Any]) -> Result:
        query = str(args.get("q") or "").strip()
        if not query:
            return Result.error("Parameter 'q' must not be empty.")

        try:
            response = request_with_retry(
                "GET",
                _search_url(),
                params={"filter": ADDRESS_FILTER, "limit": DEFAULT_LIMIT, "searchtext": query},
                timeout_override=self.timeout_s,
            )
            payload = response.json()
        except GeoAskHTTPStatusError as exc:
            self.logger.warning("geocode_http_status", extra={"extra_fields": {"status_code": exc.status_code}})
            return Result.error(f"Geocoder request failed (HTTP {exc.status_code}).")
        except GeoAskHTTPError:
            self.logger.exception("geocode_unreachable")
            return Result.error("Geocoder could not be reached.")
        except ValueError:
            self.logger.exception("geocode_unreadable")
            return Result.error("Geocoder response could not be processed.")

        results = payload.get("results") if isinstance(payload, dict) else None
        items = [
            item
            for item in (feature_to_item(entry.get("feature")) for entry in results or [] if isinstance(entry, dict))
            if item is not None
        ]
        exact = exact_matches(query, items)
        if exact:
            items = exact

        if not items:
            return Result(status=STATUS_ERROR, items=[], message="No matches found.")
        status = STATUS_NEEDS_USER_CHOICE if len(items) > 1 else STATUS_OK
        return Result(status=status, items=items, message=f"{len(items)} matches found.")

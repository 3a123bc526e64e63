from __future__ import annotations

import logging
import os
from typing import Any

from geoask.core.capabilities.base import CapabilityId, CapabilityParam
from geoask.core.http.client import request_with_retry
from geoask.core.http.errors import GeoAskHTTPError, GeoAskHTTPStatusError
from geoask.core.orchestration.schemas import STATUS_NEEDS_USER_CHOICE, STATUS_OK, Result

LAYER_CRS = "EPSG:2056"


def _search_url() -> str:
    return os.getenv("GEOASK_SEARCH_URL", "https://geo.so.ch/api/search/v2/")


def _wms_url() -> str:
    return os.getenv("GEOASK_WMS_URL", "https://geo.so.ch/api/wms")


def single_layer(node: Any) -> dict[str, Any] | None:
    if not isinstance(node, dict):
        return None
    layer_id = str(node.get("dataproduct_id") or "").strip()
    if not layer_id:
        return None
    source = {
        "url": _wms_url(),
        "LAYERS": layer_id,
        "FORMAT": "image/png",
        "VERSION": "1.3.0",
        "TRANSPARENT": True,
        "CRS": LAYER_CRS,
    }
    payload = {
        "id": layer_id,
        "label": str(node.get("display") or layer_id),
        "layerId": layer_id,
        "type": "wms",
        "crs": LAYER_CRS,
        "source": source,
    }
    return {"type": "layer", "payload": payload}


def layer_group(node: dict[str, Any]) -> list[dict[str, Any]]:
    """Sublayer items, preceded by one group item carrying all sublayer payloads."""
    group_id = str(node.get("dataproduct_id") or "")
    items = [item for item in (single_layer(sub) for sub in node.get("sublayers") or []) if item is not None]
    if not items:
        return []
    group = {
        "id": f"{group_id}::group",
        "label": f"{node.get('display') or group_id} (group)",
        "type": "wms-group",
        "layerId": group_id,
        "sublayers": [item["payload"] for item in items],
    }
    return [{"type": "layer", "payload": group}, *items]


def map_layers(payload: Any) -> list[dict[str, Any]]:
    results = payload.get("results") if isinstance(payload, dict) else None
    items: list[dict[str, Any]] = []
    for entry in results or []:
        dataproduct = entry.get("dataproduct") if isinstance(entry, dict) else None
        if not isinstance(dataproduct, dict):
            continue
        if str(dataproduct.get("type") or "").casefold() == "layergroup":
            items.extend(layer_group(dataproduct))
        else:
            item = single_layer(dataproduct)
            if item is not None:
                items.append(item)
    return items


class LayerSearchCapability:
    capability_id = CapabilityId.LAYERS_SEARCH
    description = "Searches map layers (WMS) of the Solothurn spatial data infrastructure."
    params = [
        CapabilityParam(name="query", description="Name of the desired map layer", required=True, schema_hint="string"),
    ]

    def __init__(self, timeout_s: float | None = None) -> None:
        self.timeout_s = timeout_s
        self.logger = logging.getLogger("geoask.capabilities.layers")

    def invoke(self, args: dict[str, Any]) -> Result:
        query = str(args.get("query") or "").strip()
        if not query:
            return Result.error("Parameter 'query' is required.")

        try:
            response = request_with_retry(
                "GET",
                _search_url(),
                params={"filter": "foreground", "limit": 25, "searchtext": query},
                timeout_override=self.timeout_s,
            )
            items = map_layers(response.json())
        except GeoAskHTTPStatusError as exc:
            self.logger.warning("layer_search_http_status", extra={"extra_fields": {"status_code": exc.status_code}})
            return Result.error(f"Layer search failed (HTTP {exc.status_code}).")
        except GeoAskHTTPError:
            self.logger.exception("layer_search_unreachable")
            return Result.error("Layer search could not be reached.")
        except ValueError:
            self.logger.exception("layer_search_unreadable")
            return Result.error("Layer search response could not be processed.")

        if not items:
            return Result.error(f'No layers found for "{query}".')
        if len(items) > 1:
            return Result(status=STATUS_NEEDS_USER_CHOICE, items=items, message="Several layers found. Please choose one.")
        return Result(status=STATUS_OK, items=items, message="Layer found.")

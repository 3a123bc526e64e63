"""Geothermal probe feasibility via a WMS ``GetFeatureInfo`` query.

The feature-info service answers with XML whose ``Attribute`` elements carry
the assessment text (``resultat``) and an HTML anchor to a PDF report
(``pdf_link``). The query box is 101 x 101 pixels centred on the coordinate.
"""

from __future__ import annotations

import html
import logging
import os
import re
import xml.etree.ElementTree as ElementTree
from dataclasses import dataclass
from typing import Any

from geoask.core.capabilities.base import CapabilityId, CapabilityParam
from geoask.core.http.client import request_with_retry
from geoask.core.http.errors import GeoAskHTTPError, GeoAskHTTPStatusError
from geoask.core.orchestration.schemas import STATUS_OK, Result

from .oereb import requested_coord

GEOTHERMAL_LAYER = "ch.so.afu.ewsabfrage.abfrage"
GEOTHERMAL_CRS = "EPSG:2056"
IMAGE_SIZE = 101
CENTER_PIXEL = (IMAGE_SIZE + 1) // 2

_HREF_RE = re.compile(r"""href=['"]([^'"]+)['"]""", re.IGNORECASE)
_LINK_TEXT_RE = re.compile(r">([^<]+)<")


def _feature_info_url() -> str:
    return os.getenv("GEOASK_FEATURE_INFO_URL", "https://geo.so.ch/api/v1/featureinfo/somap")


def format_number(value: float) -> str:
    return f"{value:.4f}".rstrip("0").rstrip(".")


def query_bbox(x: float, y: float, resolution: float = 1.0) -> str:
    half_span = IMAGE_SIZE / 2 * resolution
    return ",".join(format_number(value) for value in (x - half_span, y - half_span, x + half_span, y + half_span))


@dataclass
class FeatureInfo:
    result_text: str | None
    pdf_url: str | None = None
    pdf_label: str | None = None


def _attribute(root: ElementTree.Element, name: str) -> str | None:
    for element in root.iter("Attribute"):
        attr_name = element.get("name") or element.get("attrname") or ""
        if attr_name.casefold() != name:
            continue
        value = element.get("value") or element.text or ""
        value = html.unescape(value).strip()
        return value or None
    return None


def parse_feature_info(xml_text: str) -> FeatureInfo:
    root = ElementTree.fromstring(xml_text)
    info = FeatureInfo(result_text=_attribute(root, "resultat"))
    anchor = _attribute(root, "pdf_link")
    if anchor:
        href = _HREF_RE.search(anchor)
        text = _LINK_TEXT_RE.search(anchor)
        info.pdf_url = href.group(1) if href else None
        info.pdf_label = text.group(1).strip() if text else None
    return info


def _positive(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


class GeothermalBoreInfoCapability:
    capability_id = CapabilityId.PROCESSING_GEOTHERMAL_BORE_INFO_BY_XY
    description = "Checks whether a geothermal probe may be drilled at an LV95 coordinate."
    params = [
        CapabilityParam(name="x", description="LV95 easting", schema_hint="number"),
        CapabilityParam(name="y", description="LV95 northing", schema_hint="number"),
        CapabilityParam(name="coord", description="Alternative to x/y", schema_hint="[east, north]"),
        CapabilityParam(name="resolution", description="Map resolution in metres per pixel", schema_hint="number"),
    ]

    def __init__(self, timeout_s: float | None = None) -> None:
        self.timeout_s = timeout_s
        self.logger = logging.getLogger("geoask.capabilities.geothermal")

    def _params(self, coord: list[float], resolution: float) -> dict[str, object]:
        return {
            "SERVICE": "WMS",
            "REQUEST": "GetFeatureInfo",
            "VERSION": "1.3.0",
            "LAYERS": GEOTHERMAL_LAYER,
            "QUERY_LAYERS": GEOTHERMAL_LAYER,
            "STYLES": "",
            "CRS": GEOTHERMAL_CRS,
            "BBOX": query_bbox(coord[0], coord[1], resolution),
            "WIDTH": IMAGE_SIZE,
            "HEIGHT": IMAGE_SIZE,
            "I": CENTER_PIXEL,
            "J": CENTER_PIXEL,
            "X": CENTER_PIXEL,
            "Y": CENTER_PIXEL,
            "INFO_FORMAT": "text/xml",
            "WITH_GEOMETRY": "true",
            "WITH_MAPTIP": "false",
            "FEATURE_COUNT": 20,
            "FI_LINE_TOLERANCE": 8,
            "FI_POINT_TOLERANCE": 16,
            "FI_POLYGON_TOLERANCE": 4,
            "RADIUS": 16,
        }

    def invoke(self, args: dict[str, Any]) -> Result:
        coord = requested_coord(args)
        if coord is None:
            return Result.error("Invalid coordinate.")
        resolution = _positive(args.get("resolution"), 1.0)

        try:
            response = request_with_retry(
                "GET", _feature_info_url(), params=self._params(coord, resolution), timeout_override=self.timeout_s
            )
            if not response.text.strip():
                return Result.error("Geothermal query returned no valid answer.")
            info = parse_feature_info(response.text)
        except GeoAskHTTPStatusError as exc:
            self.logger.warning("geothermal_http_status", extra={"extra_fields": {"status_code": exc.status_code}})
            return Result.error(f"Geothermal service request failed (HTTP {exc.status_code}).")
        except GeoAskHTTPError:
            self.logger.exception("geothermal_unreachable")
            return Result.error("Geothermal service could not be reached.")
        except ElementTree.ParseError:
            self.logger.exception("geothermal_unreadable")
            return Result.error("Geothermal service response could not be processed.")

        if not info.result_text:
            return Result.error("Geothermal answer contains no result.")

        payload: dict[str, Any] = {
            "id": f"geothermal-{format_number(coord[0])}-{format_number(coord[1])}",
            "label": "Geothermal probe feasibility",
            "coord": coord,
            "crs": GEOTHERMAL_CRS,
            "result": info.result_text,
        }
        message = info.result_text
        if info.pdf_url:
            payload["pdfUrl"] = info.pdf_url
            payload["pdfLabel"] = info.pdf_label or info.pdf_url
            message = f"{message}\nPDF: {info.pdf_url}"
        item = {
            "type": "geothermal",
            "payload": payload,
            "options": [],
            "clientAction": {
                "type": "setView",
                "payload": {"center": coord, "zoom": 17, "crs": GEOTHERMAL_CRS},
            },
        }
        return Result(status=STATUS_OK, items=[item], message=message)

from __future__ import annotations

import httpx
import pytest

from geoask.core.capabilities.builtin import register_builtin_capabilities
from geoask.core.capabilities.builtin.geolocation import GeocodeCapability
from geoask.core.capabilities.builtin.layers import LayerSearchCapability
from geoask.core.capabilities.builtin.oereb import EgridByXYCapability, ExtractByIdCapability
from geoask.core.capabilities.registry import CapabilityRegistry


@pytest.fixture
def serve(monkeypatch):
    requests: list[httpx.Request] = []

    def install(handler):
        def recording(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        client = httpx.Client(transport=httpx.MockTransport(recording))
        monkeypatch.setattr("geoask.core.http.client.get_http_client", lambda: client)
        return requests

    return install


def _address(feature_id: int, display: str, bbox: list[float]) -> dict:
    return {"feature": {"feature_id": feature_id, "srid": 2056, "display": display, "bbox": bbox}}


def test_geocode_prefers_exact_street_and_number(serve) -> None:
    body = {
        "results": [
            _address(1, "Langendorfstrasse 19b, 4500 Solothurn (Adresse)", [2606000, 1228000, 2606010, 1228010]),
            _address(2, "Langendorfstrasse 19, 4500 Solothurn (Adresse)", [2606100, 1228100, 2606110, 1228110]),
        ]
    }
    requests = serve(lambda request: httpx.Response(200, json=body))

    result = GeocodeCapability().invoke({"q": "Langendorfstrasse 19b, Solothurn"})

    assert result.status == "ok"
    assert result.items == [
        {
            "id": "1",
            "label": "Langendorfstrasse 19b, 4500 Solothurn",
            "coord": [2606000.0, 1228000.0, 2606010.0, 1228010.0],
            "crs": "EPSG:2056",
        }
    ]
    assert requests[0].url.params["searchtext"] == "Langendorfstrasse 19b, Solothurn"


def test_geocode_several_matches_need_a_choice(serve) -> None:
    body = {"results": [_address(1, "Hauptstrasse 1, Olten", [1, 2, 3, 4]), _address(2, "Hauptstrasse 1, Grenchen", [5, 6, 7, 8])]}
    serve(lambda request: httpx.Response(200, json=body))

    result = GeocodeCapability().invoke({"q": "Hauptstrasse"})

    assert result.status == "needs_user_choice"
    assert len(result.items) == 2


def test_geocode_validates_query_and_reports_http_errors(serve) -> None:
    serve(lambda request: httpx.Response(500))

    assert GeocodeCapability().invoke({"q": " "}).status == "error"
    failed = GeocodeCapability().invoke({"q": "Main 1"})
    assert failed.status == "error"
    assert "HTTP 500" in failed.message


def test_layer_search_expands_groups(serve) -> None:
    body = {
        "results": [
            {
                "dataproduct": {
                    "type": "layergroup",
                    "dataproduct_id": "ch.so.afu.gewaesserschutz",
                    "display": "Gewässerschutz",
                    "sublayers": [
                        {"dataproduct_id": "ch.so.afu.gewaesserschutz.zonen", "display": "Zonen"},
                        {"dataproduct_id": "ch.so.afu.gewaesserschutz.areale", "display": "Areale"},
                    ],
                }
            },
            {"dataproduct": {"type": "datasetview", "dataproduct_id": "ch.so.agi.hintergrund", "display": "Hintergrund"}},
        ]
    }
    serve(lambda request: httpx.Response(200, json=body))

    result = LayerSearchCapability().invoke({"query": "Gewässerschutz"})

    assert result.status == "needs_user_choice"
    ids = [item["payload"]["id"] for item in result.items]
    assert ids == [
        "ch.so.afu.gewaesserschutz::group",
        "ch.so.afu.gewaesserschutz.zonen",
        "ch.so.afu.gewaesserschutz.areale",
        "ch.so.agi.hintergrund",
    ]
    group = result.items[0]["payload"]
    assert [sub["layerId"] for sub in group["sublayers"]] == ["ch.so.afu.gewaesserschutz.zonen", "ch.so.afu.gewaesserschutz.areale"]
    assert result.items[1]["payload"]["source"]["LAYERS"] == "ch.so.afu.gewaesserschutz.zonen"


def test_layer_search_without_hits_is_an_error(serve) -> None:
    serve(lambda request: httpx.Response(200, json={"results": []}))

    assert LayerSearchCapability().invoke({"query": "nothing"}).status == "error"


def test_egrid_by_xy_parses_parcels(serve) -> None:
    body = {
        "GetEGRIDResponse": [
            {"egrid": "CH1", "number": "123", "identDN": "SO0200002401", "type": {"Text": [{"Language": "de", "Text": "Liegenschaft"}]}},
            {"egrid": "CH2", "number": "", "identDN": "SO0200002401"},
        ]
    }
    requests = serve(lambda request: httpx.Response(200, json=body))

    result = EgridByXYCapability().invoke({"x": "2607717", "y": 1228737.5})

    assert result.status == "ok"
    assert [item["label"] for item in result.items] == ["CH1 - Liegenschaft (123)", "CH2 - Parcel"]
    assert result.items[0]["coord"] == [2607717.0, 1228737.5]
    assert requests[0].url.params["EN"] == "2607717,1228737.5"


def test_egrid_by_xy_handles_no_content_and_bad_input(serve) -> None:
    serve(lambda request: httpx.Response(204))

    assert EgridByXYCapability().invoke({"coord": [1, 2]}).message == "No parcel found."
    assert EgridByXYCapability().invoke({"x": "east"}).status == "error"


def test_extract_by_id_uses_selection() -> None:
    result = ExtractByIdCapability().invoke({"selection": {"id": "CH9", "coord": [1.0, 2.0], "crs": "EPSG:2056"}})

    [item] = result.items
    assert result.status == "ok"
    assert item["egrid"] == "CH9"
    assert item["pdfUrl"].endswith("?EGRID=CH9")
    assert item["coord"] == [1.0, 2.0]
    assert ExtractByIdCapability().invoke({}).status == "error"


def test_register_builtin_capabilities_declares_descriptors() -> None:
    registry = register_builtin_capabilities(CapabilityRegistry())

    ids = [capability_id.value for capability_id in registry.list_capabilities()]

    assert ids == [
        "featureSearch.getEgridByNumberAndMunicipality",
        "geolocation.geocode",
        "layers.search",
        "oereb.egridByXY",
        "oereb.extractById",
        "processing.getGeothermalBoreInfoByXY",
    ]

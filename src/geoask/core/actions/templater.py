from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import uuid4

from geoask.core.capabilities.items import (
    client_actions,
    item_confidence,
    item_coord,
    item_field,
    item_id,
    item_label,
    item_payload,
)
from geoask.core.orchestration.schemas import (
    STATUS_ERROR,
    STATUS_NEEDS_CLARIFICATION,
    STATUS_NEEDS_USER_CHOICE,
    STATUS_OK,
    STATUS_PENDING,
    Choice,
    IntentType,
    MapAction,
    Result,
)

DEFAULT_CRS = "EPSG:2056"
DEFAULT_ZOOM = 17
MARKER_STYLE = "pin-default"

MESSAGE_DONE = "Done."
MESSAGE_CHOOSE = "Please choose an option."
MESSAGE_NO_RESULT = "No result from capability or planner."
MESSAGE_UNKNOWN_STATUS = "Unknown status."

Template = Callable[[dict[str, Any]], list[MapAction]]


@dataclass
class ActionPlan:
    status: str
    message: str | None
    map_actions: list[MapAction] = field(default_factory=list)
    choices: list[Choice] = field(default_factory=list)


def _crs(item: dict[str, Any]) -> str:
    return str(item_field(item, "crs") or DEFAULT_CRS)


def _view_and_marker(prefix: str) -> Template:
    def template(item: dict[str, Any]) -> list[MapAction]:
        coord = item_coord(item)
        if coord is None:
            return []
        crs = _crs(item)
        marker_id = f"{prefix}-{item_id(item) or prefix}"
        return [
            MapAction(type="setView", payload={"center": coord, "zoom": DEFAULT_ZOOM, "crs": crs}),
            MapAction(type="addMarker", payload={"id": marker_id, "coord": coord, "style": MARKER_STYLE}),
        ]

    return template


def _view_only(item: dict[str, Any]) -> list[MapAction]:
    coord = item_coord(item)
    if coord is None:
        return []
    return [MapAction(type="setView", payload={"center": coord, "zoom": DEFAULT_ZOOM, "crs": _crs(item)})]


def _add_layer(layer: dict[str, Any]) -> MapAction | None:
    layer_id = layer.get("layerId") or layer.get("id")
    source = layer.get("source")
    if not layer_id or not isinstance(source, dict):
        return None
    return MapAction(
        type="addLayer",
        payload={"id": str(layer_id), "type": str(layer.get("type") or "wms"), "source": source, "visible": True},
    )


def _load_layer(item: dict[str, Any]) -> list[MapAction]:
    payload = item_payload(item)
    sublayers = payload.get("sublayers")
    if isinstance(sublayers, list) and sublayers:
        layers = [entry for entry in sublayers if isinstance(entry, dict)]
    else:
        layers = [payload]
    actions: list[MapAction] = []
    for layer in layers:
        action = _add_layer(layer)
        if action is not None:
            actions.append(action)
    return actions


TEMPLATES: dict[IntentType, Template] = {
    IntentType.GOTO_ADDRESS: _view_and_marker("addr"),
    IntentType.SEARCH_PLACE: _view_and_marker("place"),
    IntentType.LOAD_LAYER: _load_layer,
    IntentType.OEREB_EXTRACT: _view_and_marker("oereb"),
    IntentType.GEOTHERMAL_PROBE_ASSESSMENT: _view_and_marker("geothermal"),
    IntentType.CADASTRAL_PLAN: _view_only,
}


def _action_key(action: MapAction) -> str:
    return json.dumps({"type": action.type, "payload": action.payload}, sort_keys=True, default=str)


def merge_actions(*groups: list[MapAction]) -> list[MapAction]:
    """Order-preserving union of action lists."""
    seen: set[str] = set()
    merged: list[MapAction] = []
    for group in groups:
        for action in group:
            key = _action_key(action)
            if key in seen:
                continue
            seen.add(key)
            merged.append(action)
    return merged


class ActionTemplater:
    def actions_for(self, intent: str | None, item: dict[str, Any]) -> list[MapAction]:
        template = TEMPLATES.get(IntentType.from_id(intent))
        templated = template(item) if template is not None else []
        return merge_actions(client_actions(item), templated)

    def choice_for(self, intent: str | None, item: dict[str, Any]) -> Choice:
        return Choice(
            id=item_id(item) or str(uuid4()),
            label=item_label(item) or f"{intent} option",
            confidence=item_confidence(item),
            map_actions=self.actions_for(intent, item),
            data=item,
        )

    def to_action_plan(self, intent: str | None, result: Result | None) -> ActionPlan:
        if result is None:
            return ActionPlan(status=STATUS_ERROR, message=MESSAGE_NO_RESULT)

        items = result.items
        if result.status == STATUS_NEEDS_USER_CHOICE or (result.status == STATUS_OK and len(items) > 1):
            if not items:
                return ActionPlan(status=STATUS_ERROR, message=result.message or MESSAGE_NO_RESULT)
            choices = [self.choice_for(intent, item) for item in items]
            return ActionPlan(status=STATUS_NEEDS_USER_CHOICE, message=MESSAGE_CHOOSE, choices=choices)
        if result.status in {STATUS_OK, STATUS_PENDING}:
            actions = self.actions_for(intent, items[0]) if items else []
            return ActionPlan(status=STATUS_OK, message=MESSAGE_DONE, map_actions=actions)
        if result.status == STATUS_NEEDS_CLARIFICATION:
            return ActionPlan(status=STATUS_NEEDS_CLARIFICATION, message=result.message)
        return ActionPlan(status=STATUS_ERROR, message=result.message or MESSAGE_UNKNOWN_STATUS)

"""Accessors for the loosely-typed item records returned by capabilities.

An item is a plain dict. Capabilities either put their fields at the top
level (``{"id": ..., "label": ..., "coord": [...]}``) or wrap them as
``{"type": "layer", "payload": {...}, "options": [...], "clientAction": {...}}``.
The helpers below read both shapes so callers never have to care.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from geoask.core.orchestration.schemas import MapAction


def _normalize_map(raw: Mapping[Any, Any]) -> dict[str, Any]:
    return {str(key): value for key, value in raw.items()}


def item_payload(item: Any) -> dict[str, Any]:
    if not isinstance(item, Mapping):
        return {}
    payload = item.get("payload")
    if isinstance(payload, Mapping):
        return _normalize_map(payload)
    return _normalize_map(item)


def item_field(item: Any, name: str) -> Any:
    if not isinstance(item, Mapping):
        return None
    value = item.get(name)
    if value is None:
        payload = item.get("payload")
        if isinstance(payload, Mapping):
            value = payload.get(name)
    return value


def item_id(item: Any) -> str | None:
    value = item_field(item, "id")
    return None if value is None else str(value)


def item_label(item: Any) -> str | None:
    value = item_field(item, "label")
    return None if value is None else str(value)


def item_confidence(item: Any) -> float | None:
    value = item_field(item, "confidence")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def as_coord(value: Any) -> list[float] | None:
    """Return ``[x, y]`` for a point, or the centre of a ``[minx, miny, maxx, maxy]`` box."""
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return None
    numbers: list[float] = []
    for entry in value:
        if isinstance(entry, bool):
            return None
        try:
            numbers.append(float(entry))
        except (TypeError, ValueError):
            return None
    if len(numbers) == 4:
        return [(numbers[0] + numbers[2]) / 2, (numbers[1] + numbers[3]) / 2]
    return numbers[:2]


def item_coord(item: Any) -> list[float] | None:
    return as_coord(item_field(item, "coord"))


def client_actions(item: Any) -> list[MapAction]:
    if not isinstance(item, Mapping):
        return []
    raw = item.get("clientAction")
    if isinstance(raw, Mapping):
        action = _action_from_map(raw)
        return [action] if action is not None else []
    if isinstance(raw, list):
        actions: list[MapAction] = []
        for entry in raw:
            if isinstance(entry, Mapping):
                action = _action_from_map(entry)
                if action is not None:
                    actions.append(action)
        return actions
    return []


def _action_from_map(raw: Mapping[Any, Any]) -> MapAction | None:
    action_type = raw.get("type")
    payload = raw.get("payload")
    if isinstance(action_type, str) and action_type and isinstance(payload, Mapping):
        return MapAction(type=action_type, payload=_normalize_map(payload))
    return None


def _positions(coordinates: Any) -> Iterator[tuple[float, float]]:
    if isinstance(coordinates, (list, tuple)):
        if len(coordinates) >= 2 and all(
            isinstance(value, (int, float)) and not isinstance(value, bool) for value in coordinates[:2]
        ):
            yield float(coordinates[0]), float(coordinates[1])
            return
        for entry in coordinates:
            yield from _positions(entry)


def geometry_extent(geometry: Any) -> list[float] | None:
    """``[minx, miny, maxx, maxy]`` of a GeoJSON geometry, or ``None`` without positions."""
    if not isinstance(geometry, Mapping):
        return None
    if geometry.get("type") == "GeometryCollection":
        parts = [geometry_extent(part) for part in geometry.get("geometries") or []]
        boxes = [box for box in parts if box is not None]
        if not boxes:
            return None
        return [
            min(box[0] for box in boxes),
            min(box[1] for box in boxes),
            max(box[2] for box in boxes),
            max(box[3] for box in boxes),
        ]
    positions = list(_positions(geometry.get("coordinates")))
    if not positions:
        return None
    xs = [x for x, _ in positions]
    ys = [y for _, y in positions]
    return [min(xs), min(ys), max(xs), max(ys)]

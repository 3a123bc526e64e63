from __future__ import annotations

import json

from geoask.core.capabilities.base import CapabilityDescriptor, CapabilityId
from geoask.core.orchestration.schemas import IntentType

INTENT_DESCRIPTIONS: dict[IntentType, str] = {
    IntentType.GOTO_ADDRESS: "go to an address and show it on the map",
    IntentType.LOAD_LAYER: "load a thematic map layer",
    IntentType.SEARCH_PLACE: "search a place (town, mountain, lake, ...)",
    IntentType.OEREB_EXTRACT: (
        "fetch a land-register restriction (OEREB) extract for a parcel, "
        "found by coordinate or by parcel number and municipality"
    ),
    IntentType.GEOTHERMAL_PROBE_ASSESSMENT: "assess whether a geothermal probe is allowed at a coordinate",
}


def _capability_block(descriptors: list[CapabilityDescriptor]) -> str:
    if not descriptors:
        return "- (no capabilities registered)"
    lines: list[str] = []
    for descriptor in descriptors:
        lines.append(f'- "{descriptor.capability_id.value}": {descriptor.description}')
        if not descriptor.params:
            lines.append("    Params: (none documented)")
            continue
        lines.append("    Params:")
        for param in descriptor.params:
            required = " (required)" if param.required else ""
            description = f" - {param.description}" if param.description else ""
            lines.append(f"      * {param.name}{required}{description}")
            if param.schema_hint:
                lines.append(f"        Schema: {param.schema_hint}")
    return "\n".join(lines)


def _intent_block() -> str:
    return "\n".join(f'- "{intent.value}": {text}' for intent, text in INTENT_DESCRIPTIONS.items())


def planner_system_prompt(descriptors: list[CapabilityDescriptor]) -> str:
    schema = {
        "requestId": "string",
        "steps": [
            {
                "intent": " | ".join(intent.value for intent in INTENT_DESCRIPTIONS),
                "toolCalls": [{"capabilityId": CapabilityId.GEOLOCATION_GEOCODE.value, "args": {"q": "..."}}],
                "result": {"status": "pending", "items": [], "message": ""},
            }
        ],
    }
    example = {
        "steps": [
            {
                "intent": IntentType.OEREB_EXTRACT.value,
                "toolCalls": [
                    {"capabilityId": CapabilityId.OEREB_EGRID_BY_XY.value, "args": {"x": 2607717, "y": 1228737}},
                    {"capabilityId": CapabilityId.OEREB_EXTRACT_BY_ID.value, "args": {}},
                ],
            }
        ]
    }
    return (
        "You are the planner of an interactive map application.\n\n"
        f"AVAILABLE CAPABILITIES (capabilityId: description):\n{_capability_block(descriptors)}\n\n"
        f"INTENTS:\n{_intent_block()}\n\n"
        "TASK:\n"
        "- Determine one or more intents from the user's message and emit one step per intent, "
        "in the order the user wants them executed.\n"
        "- Plan the minimal capability calls per step. A step may chain several calls; "
        "the result of one call is passed to the next as its selection.\n"
        "- Leave toolCalls empty only when the answer follows from the conversation.\n"
        "- Never call capabilities yourself and never emit map actions.\n\n"
        "OUTPUT FORMAT (JSON only, no markdown, no prose):\n"
        f"{json.dumps(schema, ensure_ascii=False)}\n\n"
        'Example for "OEREB extract at coordinate 2607717, 1228737":\n'
        f"{json.dumps(example, ensure_ascii=False)}\n"
    )

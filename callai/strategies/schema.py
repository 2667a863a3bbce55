"""JSON-schema helpers shared by the structured-output strategies."""

import copy
from typing import Any

# Keys of a caller schema that are metadata for us rather than JSON-schema terms
SCHEMA_META_KEYS = ("name", "properties", "required", "additionalProperties")


def strict_object_schema(schema: dict) -> dict:
    """Build a top-level object schema from a caller schema.

    ``required`` defaults to every property key and ``additionalProperties``
    to ``False``. Other keys (``description``, ``$defs``...) are carried over.
    """
    properties = copy.deepcopy(schema.get("properties") or {})
    result: dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "required": list(schema["required"] if "required" in schema else properties.keys()),
        "additionalProperties": schema.get("additionalProperties", False),
    }
    for key, value in schema.items():
        if key not in SCHEMA_META_KEYS and key != "type":
            result[key] = copy.deepcopy(value)
    return result


def add_additional_properties(schema: Any) -> Any:
    """Recursively mark every object node strict.

    Each object node gets ``additionalProperties: false`` unless it already
    declares one, and nested objects get ``required`` equal to their own
    property keys. Array ``items`` are walked too. The input is not mutated.
    """
    if not isinstance(schema, dict):
        return schema

    result = dict(schema)

    if result.get("type") == "object":
        result.setdefault("additionalProperties", False)

        if isinstance(result.get("properties"), dict):
            properties = {}
            for key, prop in result["properties"].items():
                properties[key] = _normalize_nested(prop)
            result["properties"] = properties
            result.setdefault("required", list(properties.keys()))

    if result.get("type") == "array" and isinstance(result.get("items"), dict):
        result["items"] = _normalize_nested(result["items"])

    return result


def _normalize_nested(node: Any) -> Any:
    node = add_additional_properties(node)
    # Nested objects must list every property as required in strict mode
    if isinstance(node, dict) and node.get("type") == "object" and isinstance(node.get("properties"), dict):
        node["required"] = list(node["properties"].keys())
    return node

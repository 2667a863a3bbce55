"""OpenAI-compatible ``response_format`` JSON-schema strategy."""

from callai.strategies.base import Strategy, StrategyKind
from callai.strategies.schema import add_additional_properties, strict_object_schema

DEFAULT_SCHEMA_NAME = "result"


class NativeSchemaStrategy(Strategy):
    """Declares the schema natively via ``response_format: json_schema``.

    Providers of this family reject strict schemas unless every object node
    declares ``additionalProperties: false`` and lists all of its properties
    as required, so the schema is normalized recursively first.
    """

    kind = StrategyKind.NATIVE_SCHEMA_OBJECT

    def shape_request(self, schema: dict | None, messages: list[dict]) -> dict:
        if not schema:
            return {}

        processed = add_additional_properties(strict_object_schema(schema))
        return {
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.get("name") or DEFAULT_SCHEMA_NAME,
                    "strict": True,
                    "schema": processed,
                },
            },
        }

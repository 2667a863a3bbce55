"""Tool-use strategy for Anthropic-family models."""

import json
from typing import Any

from callai.strategies.base import Strategy, StrategyKind
from callai.strategies.schema import strict_object_schema

DEFAULT_TOOL_NAME = "generate_structured_data"
DEFAULT_TOOL_DESCRIPTION = "Generate data according to the required schema"


class ToolInvocationStrategy(Strategy):
    """Wraps the schema in a single synthetic tool and forces the model to call it.

    This family only emits valid tool arguments once the call completes, so
    buffered callers are served from an internally opened stream.
    """

    kind = StrategyKind.TOOL_INVOCATION
    force_streaming = True

    def shape_request(self, schema: dict | None, messages: list[dict]) -> dict:
        if not schema:
            return {}

        name = schema.get("name") or DEFAULT_TOOL_NAME
        if schema.get("properties"):
            parameters = strict_object_schema(schema)
        else:
            parameters = {"type": "object", "properties": {}}

        return {
            "tools": [{
                "type": "function",
                "function": {
                    "name": name,
                    "description": schema.get("description") or DEFAULT_TOOL_DESCRIPTION,
                    "parameters": parameters,
                },
            }],
            "tool_choice": {"type": "function", "function": {"name": name}},
        }

    def extract_result(self, raw: Any) -> str:
        if isinstance(raw, dict):
            # Anthropic tool_use content block
            if raw.get("type") == "tool_use":
                tool_input = raw.get("input")
                return tool_input if isinstance(tool_input, str) else json.dumps(tool_input or {})
            # OpenAI-style message carrying tool_calls
            if isinstance(raw.get("tool_calls"), list) and raw["tool_calls"]:
                return self._first_arguments(raw["tool_calls"]) or json.dumps(raw)

        if isinstance(raw, list) and raw:
            arguments = self._first_arguments(raw)
            if arguments:
                return arguments

        return super().extract_result(raw)

    @staticmethod
    def _first_arguments(tool_calls: list) -> str | None:
        call = tool_calls[0]
        if not isinstance(call, dict):
            return None
        arguments = (call.get("function") or {}).get("arguments")
        if arguments is None:
            return None
        return arguments if isinstance(arguments, str) else json.dumps(arguments)

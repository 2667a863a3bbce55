"""System-message strategy for models without reliable schema support."""

from callai.strategies.base import Strategy, StrategyKind


class SystemInstructionStrategy(Strategy):
    """Describes the schema in a prepended system message.

    Used for model families (Llama 3, DeepSeek...) that ignore or reject
    ``response_format`` and tool forcing. An existing system message is
    left untouched.
    """

    kind = StrategyKind.SYSTEM_INSTRUCTION

    def shape_request(self, schema: dict | None, messages: list[dict]) -> dict:
        if not schema:
            return {}

        if any(m.get("role") == "system" for m in messages):
            return {"messages": list(messages)}

        system_message = {"role": "system", "content": describe_schema(schema)}
        return {"messages": [system_message, *messages]}


def describe_schema(schema: dict) -> str:
    lines = []
    for key, value in (schema.get("properties") or {}).items():
        value = value if isinstance(value, dict) else {}
        line = f'  "{key}": {value.get("type", "string")}'
        if value.get("description"):
            line += f" // {value['description']}"
        lines.append(line)

    body = ",\n".join(lines)
    return (
        "Please return your response as JSON following this schema exactly:\n"
        f"{{\n{body}\n}}\n"
        "Do not include any explanation or text outside of the JSON object."
    )

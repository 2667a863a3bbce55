"""Payload fragments: one parsed upstream JSON value, resolved by shape.

Providers disagree on where output lives. OpenAI-compatible chunks put it in
``choices[0].delta`` or ``choices[0].message``, Anthropic puts it in typed
events or top-level ``content`` blocks, and the same field can be a string,
an object or a list. ``parse_payload`` inspects the shape once and returns
explicit fragments so the assembler never has to inspect types itself.
"""

import json
from dataclasses import dataclass
from typing import Any, Union

TOOL_FINISH_REASONS = frozenset({"tool_calls", "function_call", "tool_use"})


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    arguments: str
    index: int = 0
    name: str | None = None


@dataclass(frozen=True)
class MessageContent:
    """A complete (non-delta) text message body."""

    text: str


@dataclass(frozen=True)
class ContentBlockArray:
    blocks: tuple

    def text(self) -> str:
        return "".join(
            block.get("text") or "" for block in self.blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )

    def first_tool_use(self) -> dict | None:
        for block in self.blocks:
            if isinstance(block, dict) and block.get("type") == "tool_use":
                return block
        return None


@dataclass(frozen=True)
class ErrorPayload:
    message: str
    code: int | str | None
    raw: dict


@dataclass(frozen=True)
class FinishSignal:
    reason: str

    @property
    def is_tool_call(self) -> bool:
        return self.reason in TOOL_FINISH_REASONS


Fragment = Union[TextDelta, ToolCallDelta, MessageContent, ContentBlockArray, ErrorPayload, FinishSignal]


def error_message(error: Any) -> str:
    """Extract a human-readable message from an ``error`` field of any shape."""
    if isinstance(error, dict):
        return str(error.get("message") or error.get("error") or error)
    return str(error)


def parse_payload(obj: Any) -> list[Fragment]:
    """Resolve one parsed JSON value into ordered fragments."""
    if not isinstance(obj, dict):
        return []

    error = obj.get("error")
    if error:
        code = error.get("code") if isinstance(error, dict) else None
        return [ErrorPayload(message=error_message(error), code=code, raw=obj)]

    fragments: list[Fragment] = []

    event_type = obj.get("type")
    if event_type in ("content_block_start", "content_block_delta", "message_delta"):
        fragments.extend(_anthropic_event(obj))
    elif isinstance(obj.get("content"), list):
        fragments.append(ContentBlockArray(tuple(obj["content"])))

    choices = obj.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        fragments.extend(_choice(choices[0]))

    stop_reason = obj.get("stop_reason")
    if stop_reason:
        fragments.append(FinishSignal(stop_reason))

    return fragments


def _anthropic_event(obj: dict) -> list[Fragment]:
    event_type = obj["type"]

    if event_type == "content_block_start":
        block = obj.get("content_block") or {}
        if block.get("type") == "text" and block.get("text"):
            return [TextDelta(block["text"])]
        if block.get("type") == "tool_use":
            return [ToolCallDelta("", index=obj.get("index", 0), name=block.get("name"))]
        return []

    if event_type == "content_block_delta":
        delta = obj.get("delta") or {}
        if delta.get("type") == "text_delta":
            return [TextDelta(delta.get("text") or "")]
        if delta.get("type") == "input_json_delta":
            return [ToolCallDelta(delta.get("partial_json") or "", index=obj.get("index", 0))]
        return []

    # message_delta
    reason = (obj.get("delta") or {}).get("stop_reason")
    return [FinishSignal(reason)] if reason else []


def _choice(choice: dict) -> list[Fragment]:
    fragments: list[Fragment] = []

    delta = choice.get("delta")
    if isinstance(delta, dict):
        content = delta.get("content")
        if isinstance(content, str) and content:
            fragments.append(TextDelta(content))
        elif isinstance(content, list):
            fragments.append(ContentBlockArray(tuple(content)))
        fragments.extend(_tool_calls(delta.get("tool_calls")))

    message = choice.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str) and content:
            fragments.append(MessageContent(content))
        elif isinstance(content, list):
            fragments.append(ContentBlockArray(tuple(content)))
        fragments.extend(_tool_calls(message.get("tool_calls")))

    reason = choice.get("finish_reason")
    if reason:
        fragments.append(FinishSignal(reason))

    return fragments


def _tool_calls(tool_calls: Any) -> list[Fragment]:
    if not isinstance(tool_calls, list):
        return []
    fragments: list[Fragment] = []
    for position, call in enumerate(tool_calls):
        if not isinstance(call, dict):
            continue
        function = call.get("function") or {}
        arguments = function.get("arguments") or ""
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        fragments.append(ToolCallDelta(
            arguments,
            index=call.get("index", position),
            name=function.get("name"),
        ))
    return fragments


def select_candidate(body: dict) -> Any:
    """Pick the value to extract from a complete (buffered) response body.

    A structured tool payload wins when the finish reason says a tool was
    called; otherwise the first text-like content field is used. Ties go to
    the first occurrence.
    """
    fragments = parse_payload(body)
    finished_with_tool = any(
        isinstance(f, FinishSignal) and f.is_tool_call for f in fragments
    )

    tool_payload: Any = None
    text: str | None = None
    for fragment in fragments:
        if isinstance(fragment, ContentBlockArray):
            block = fragment.first_tool_use()
            if block is not None and tool_payload is None:
                tool_payload = block
            block_text = fragment.text()
            if block_text and text is None:
                text = block_text
        elif isinstance(fragment, ToolCallDelta) and fragment.index == 0 and tool_payload is None:
            tool_payload = {"tool_calls": [{"function": {"arguments": fragment.arguments}}]}
        elif isinstance(fragment, (MessageContent, TextDelta)) and text is None:
            text = fragment.text

    if finished_with_tool and tool_payload is not None:
        return tool_payload
    if text is not None:
        return text
    return tool_payload if tool_payload is not None else ""

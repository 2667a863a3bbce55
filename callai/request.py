"""Outbound request construction: options, messages, body and headers."""

import json
from dataclasses import dataclass, field, fields

from callai.config.settings import CHAT_COMPLETIONS_PATH, Settings
from callai.strategies.base import StrategyDescriptor


@dataclass
class CallOptions:
    model: str | None = None
    schema: dict | None = None
    api_key: str | None = None
    endpoint: str | None = None  # full URL, wins over chat_url
    chat_url: str | None = None  # origin only
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stop: str | list[str] | None = None
    response_format: str | None = None  # "json" -> json_object mode
    headers: dict[str, str] = field(default_factory=dict)
    referer: str | None = None
    title: str | None = None
    skip_retry: bool = False
    skip_refresh: bool = False
    refresh_endpoint: str | None = None
    refresh_token: str | None = None

    @classmethod
    def from_kwargs(cls, **options) -> "CallOptions":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(f"Unknown option(s): {', '.join(unknown)}")
        return cls(**options)


def normalize_messages(prompt: str | list[dict]) -> list[dict]:
    """Turn a prompt into a chat message list.

    Raises:
        ValueError: empty prompt, or a message without a string role and a
            string or list content.
    """
    if isinstance(prompt, str):
        if not prompt:
            raise ValueError("Invalid prompt: empty string. Must be a string or a list of message objects.")
        return [{"role": "user", "content": prompt}]

    if not isinstance(prompt, list) or not prompt:
        raise ValueError(
            f"Invalid prompt: {prompt!r}. Must be a string or a list of message objects."
        )

    messages = []
    for message in prompt:
        if not isinstance(message, dict) or not message.get("role") or not message.get("content"):
            raise ValueError(
                "Invalid message format. Each message must have 'role' and 'content' "
                f"properties. Received: {_preview(message)}"
            )
        if not isinstance(message["role"], str) or not isinstance(message["content"], (str, list)):
            raise ValueError(
                "Invalid message format. 'role' must be a string and 'content' must be a "
                f"string or list. Received role: {type(message['role']).__name__}, "
                f"content: {type(message['content']).__name__}"
            )
        messages.append(dict(message))
    return messages


def build_request_body(
    messages: list[dict],
    descriptor: StrategyDescriptor,
    options: CallOptions,
    stream: bool,
) -> dict:
    body: dict = {
        "model": descriptor.target_model,
        "messages": messages,
        "stream": stream,
    }

    # Sampling parameters are only sent when set explicitly
    if options.temperature is not None:
        body["temperature"] = options.temperature
    if options.top_p is not None:
        body["top_p"] = options.top_p
    if options.max_tokens is not None:
        body["max_tokens"] = options.max_tokens
    if options.stop:
        body["stop"] = options.stop if isinstance(options.stop, list) else [options.stop]
    if options.response_format == "json":
        body["response_format"] = {"type": "json_object"}

    if options.schema:
        body.update(descriptor.shape_request(options.schema, messages))

    return body


def build_headers(api_key: str, options: CallOptions, settings: Settings) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": options.referer or settings.referer,
        "X-Title": options.title or settings.title,
    }
    headers.update(options.headers)
    headers["Content-Type"] = "application/json"
    return headers


def resolve_endpoint(options: CallOptions, settings: Settings) -> str:
    if options.endpoint:
        return options.endpoint
    if options.chat_url:
        return f"{options.chat_url.rstrip('/')}{CHAT_COMPLETIONS_PATH}"
    return settings.chat_endpoint


def _preview(value: object) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)

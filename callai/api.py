"""Public entry points: ``call_ai``, ``call_ai_detailed`` and ``stream_ai``.

Each call resolves a strategy per attempt (a fallback retry may switch
model family), builds the request, and runs the attempt under the
resilience coordinator. Buffered calls to models whose strategy forces
streaming are served by draining an internal stream.
"""

import time
from dataclasses import dataclass, field

from callai.config.settings import Settings, get_settings
from callai.logging.debug import (
    RequestTimer,
    call_id_var,
    generate_call_id,
    get_logger,
    setup_logging,
)
from callai.request import (
    CallOptions,
    build_headers,
    build_request_body,
    normalize_messages,
    resolve_endpoint,
)
from callai.resilience.coordinator import AttemptContext, CoordinatorOptions, ResilienceCoordinator
from callai.resilience.credentials import KeyRefresher, get_credential_state
from callai.strategies.base import StrategyDescriptor
from callai.strategies.registry import resolve_strategy
from callai.streaming.assembler import AssembledStream, assemble
from callai.streaming.frames import decode_frames
from callai.transport.http import ChatTransport, error_from_body, response_chunks
from callai.transport.registry import close_transport, get_transport

logger = get_logger("api")

_logging_configured = False


@dataclass
class AIResponse:
    text: str
    model: str
    usage: dict = field(default_factory=dict)
    timing: dict = field(default_factory=dict)  # started_at (epoch seconds), duration_ms


async def call_ai(prompt: str | list[dict], **options) -> str:
    """Complete a prompt and return the result text.

    With ``schema=...`` the result is a JSON string matching the schema.
    See ``CallOptions`` for the accepted keyword options.
    """
    response = await call_ai_detailed(prompt, **options)
    return response.text


async def call_ai_detailed(prompt: str | list[dict], **options) -> AIResponse:
    """Like ``call_ai``, also returning the serving model, token usage and timing."""
    opts, messages, settings = _prepare(prompt, options)
    transport = get_transport()

    async def attempt(ctx: AttemptContext) -> AIResponse:
        descriptor = resolve_strategy(ctx.model, opts.schema)
        url = resolve_endpoint(opts, settings)
        headers = build_headers(ctx.api_key, opts, settings)
        _log_attempt(descriptor, url, ctx, stream=descriptor.force_streaming)

        if descriptor.force_streaming:
            body = build_request_body(messages, descriptor, opts, stream=True)
            stream = await _open_stream(transport, url, body, headers, descriptor)
            text = await stream.result()
            return AIResponse(text=text, model=descriptor.target_model)

        body = build_request_body(messages, descriptor, opts, stream=False)
        data = await transport.post_json(url, body, headers)
        if isinstance(data, dict) and data.get("error"):
            raise error_from_body(200, data)

        return AIResponse(
            text=descriptor.extract_from_response(data),
            model=data.get("model") or descriptor.target_model,
            usage=data.get("usage") or {},
        )

    token = call_id_var.set(generate_call_id())
    try:
        started_at = time.time()
        with RequestTimer() as timer:
            response = await _coordinator(settings, transport).coordinate(attempt, _coordinator_options(opts))
        response.timing = {"started_at": started_at, "duration_ms": timer.elapsed_ms}
        logger.info(
            "Call completed",
            extra={"debug_data": {"model": response.model, "duration_ms": timer.elapsed_ms}},
        )
        return response
    finally:
        call_id_var.reset(token)


async def stream_ai(prompt: str | list[dict], **options) -> AssembledStream:
    """Open a streaming call and return its async iterator of partial results.

    Failures while opening the stream go through fallback and key refresh;
    failures after the first chunk surface from the iterator unchanged.
    Close the stream (``aclose`` or ``async with``) to stop early.
    """
    opts, messages, settings = _prepare(prompt, options)
    transport = get_transport()

    async def attempt(ctx: AttemptContext) -> AssembledStream:
        descriptor = resolve_strategy(ctx.model, opts.schema)
        url = resolve_endpoint(opts, settings)
        headers = build_headers(ctx.api_key, opts, settings)
        _log_attempt(descriptor, url, ctx, stream=True)

        body = build_request_body(messages, descriptor, opts, stream=True)
        return await _open_stream(transport, url, body, headers, descriptor)

    token = call_id_var.set(generate_call_id())
    try:
        return await _coordinator(settings, transport).coordinate(attempt, _coordinator_options(opts))
    finally:
        call_id_var.reset(token)


async def close() -> None:
    """Release the shared HTTP client."""
    await close_transport()


def _prepare(prompt: str | list[dict], options: dict) -> tuple[CallOptions, list[dict], Settings]:
    global _logging_configured
    if not _logging_configured and get_settings().logging_requested:
        setup_logging()
        _logging_configured = True

    opts = CallOptions.from_kwargs(**options)
    messages = normalize_messages(prompt)
    if not (opts.api_key or get_credential_state().current_key):
        raise ValueError(
            "API key is required. Provide it via api_key=... or set CALLAI_API_KEY"
        )
    return opts, messages, get_settings()


def _coordinator(settings: Settings, transport: ChatTransport) -> ResilienceCoordinator:
    credentials = get_credential_state()
    refresher = KeyRefresher(credentials, transport, settings)
    return ResilienceCoordinator(credentials, refresher, settings)


def _coordinator_options(opts: CallOptions) -> CoordinatorOptions:
    return CoordinatorOptions(
        model=opts.model,
        skip_retry=opts.skip_retry,
        skip_refresh=opts.skip_refresh,
        api_key=opts.api_key,
        refresh_endpoint=opts.refresh_endpoint,
        refresh_token=opts.refresh_token,
    )


async def _open_stream(
    transport: ChatTransport,
    url: str,
    body: dict,
    headers: dict,
    descriptor: StrategyDescriptor,
) -> AssembledStream:
    response = await transport.open_stream(url, body, headers)
    return assemble(decode_frames(response_chunks(response)), descriptor, on_close=response.aclose)


def _log_attempt(descriptor: StrategyDescriptor, url: str, ctx: AttemptContext, stream: bool) -> None:
    logger.debug(
        "Sending request",
        extra={"debug_data": {
            "model": descriptor.target_model,
            "strategy": descriptor.kind.value,
            "endpoint": url,
            "stream": stream,
            "is_retry": ctx.is_retry,
        }},
    )

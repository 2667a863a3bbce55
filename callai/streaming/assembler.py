"""Content assembler: turns frame records into growing result strings.

Every yielded string is a complete rendering of everything received so
far, run through the active strategy's extraction. Text deltas re-extract
on every frame, which is quadratic in the response size but keeps each
partial value usable on its own; responses are bounded by the model's
context length.

Tool-call arguments arrive as fragments of one JSON document. They are
buffered and only surfaced once the upstream signals the call finished.
"""

import json
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

from callai.errors import StructuredPayloadError
from callai.logging.debug import get_logger
from callai.strategies.base import StrategyDescriptor, StrategyKind
from callai.streaming.frames import FrameRecord
from callai.streaming.payloads import (
    ContentBlockArray,
    ErrorPayload,
    FinishSignal,
    Fragment,
    MessageContent,
    TextDelta,
    ToolCallDelta,
    parse_payload,
)

logger = get_logger("assembler")


@dataclass
class AssemblyState:
    accumulated_text: str = ""
    pending_tool_arguments: str = ""
    last_emitted: str = ""
    tool_result: str | None = None  # set once a tool payload has been flushed
    frames_seen: int = 0
    frames_skipped: int = 0


class ContentAssembler:
    """State machine for one stream. Never shared between streams."""

    def __init__(self, strategy: StrategyDescriptor):
        self.strategy = strategy
        self.state = AssemblyState()

    def feed(self, record: FrameRecord) -> str | None:
        """Apply one frame. Returns a new rendering, or None if nothing changed.

        Raises:
            StructuredPayloadError: the frame carries an upstream error.
        """
        self.state.frames_seen += 1
        try:
            obj = json.loads(record.event_text)
        except json.JSONDecodeError as e:
            # Providers occasionally split one JSON token across frames; the
            # next cumulative delta carries the content, so skip this one.
            self.state.frames_skipped += 1
            logger.debug(
                "Skipped unparseable frame",
                extra={"debug_data": {"error": str(e), "frame": record.event_text[:200]}},
            )
            return None

        emitted = None
        for fragment in parse_payload(obj):
            value = self._apply(fragment)
            if value is not None and value != self.state.last_emitted:
                self.state.last_emitted = value
                emitted = value
        return emitted

    def finish(self) -> str:
        """Return the authoritative final value after the stream ended."""
        state = self.state
        if state.pending_tool_arguments and state.tool_result is None:
            # No finish signal arrived; keep the partial arguments rather than drop them
            return state.pending_tool_arguments
        if state.tool_result is not None:
            return state.tool_result
        return self.strategy.extract_result(state.accumulated_text)

    def _apply(self, fragment: Fragment) -> str | None:
        state = self.state

        if isinstance(fragment, ErrorPayload):
            raise StructuredPayloadError(fragment.message, payload=fragment.raw)

        if isinstance(fragment, ToolCallDelta):
            # Only the first tool call is the structured result
            if fragment.index == 0 and state.tool_result is None:
                state.pending_tool_arguments += fragment.arguments
            return None

        if isinstance(fragment, FinishSignal):
            if state.pending_tool_arguments and state.tool_result is None:
                # The buffer is one JSON document already; fence extraction would
                # misread code fences inside its string values
                state.tool_result = state.pending_tool_arguments.strip()
                return state.tool_result
            return None

        if isinstance(fragment, ContentBlockArray):
            block = fragment.first_tool_use()
            if (
                block is not None
                and self.strategy.kind is StrategyKind.TOOL_INVOCATION
                and state.tool_result is None
            ):
                state.tool_result = self.strategy.extract_result(block)
                return state.tool_result
            state.accumulated_text += fragment.text()
        elif isinstance(fragment, (TextDelta, MessageContent)):
            state.accumulated_text += fragment.text

        if state.tool_result is not None:
            return None
        return self.strategy.extract_result(state.accumulated_text)


class AssembledStream:
    """Async iterator of progressively complete results for one call.

    ``final`` holds the authoritative value once iteration ends naturally.
    Closing the stream early (``aclose`` or ``async with``) closes the frame
    source without reading further chunks, then runs ``on_close``. Callers
    pass the HTTP response's ``aclose`` there, since a frame generator that
    was never started does not run its cleanup when closed.
    """

    def __init__(
        self,
        frames: AsyncIterable[FrameRecord],
        strategy: StrategyDescriptor,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ):
        self.assembler = ContentAssembler(strategy)
        self.final: str | None = None
        self._frames = frames
        self._on_close = on_close
        self._gen = self._run()

    def __aiter__(self) -> "AssembledStream":
        return self

    async def __anext__(self) -> str:
        return await self._gen.__anext__()

    async def aclose(self) -> None:
        try:
            await self._gen.aclose()
            await _close(self._frames)
        finally:
            if self._on_close is not None:
                await self._on_close()

    async def __aenter__(self) -> "AssembledStream":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def result(self) -> str:
        """Drain the stream and return the final value."""
        async for _ in self:
            pass
        return self.final if self.final is not None else ""

    async def _run(self) -> AsyncIterator[str]:
        try:
            async for record in self._frames:
                value = self.assembler.feed(record)
                if value is not None:
                    yield value

            self.final = self.assembler.finish()
            if self.final != self.assembler.state.last_emitted:
                self.assembler.state.last_emitted = self.final
                yield self.final
        finally:
            await _close(self._frames)


def assemble(
    frames: AsyncIterable[FrameRecord],
    strategy: StrategyDescriptor,
    on_close: Callable[[], Awaitable[None]] | None = None,
) -> AssembledStream:
    return AssembledStream(frames, strategy, on_close)


async def _close(source: object) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()

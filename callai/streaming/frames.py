"""Frame decoder for server-sent event bodies.

Turns raw body chunks into ``FrameRecord`` values, one per ``data:`` line.
Chunks may end anywhere, including inside a UTF-8 code point, so bytes are
carried over until a full line is available and only then decoded. Any
split of the same bytes therefore yields the same records.
"""

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from callai.errors import DecodeError
from callai.logging.debug import get_logger

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
# Vendor progress notices that some gateways send as data lines
STATUS_MARKERS = ("OPENROUTER PROCESSING",)

logger = get_logger("frames")


@dataclass(frozen=True)
class FrameRecord:
    event_text: str  # JSON payload with the "data:" prefix removed


class _EndOfStream:
    pass


_END = _EndOfStream()


async def decode_frames(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[FrameRecord]:
    """Yield frame records from a chunked event-stream body.

    Stops at the ``[DONE]`` sentinel without reading further chunks. The
    chunk source is closed when this generator finishes or is closed early.
    """
    buffer = b""
    try:
        async for chunk in chunks:
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            buffer += chunk

            *lines, buffer = buffer.split(b"\n")
            for raw_line in lines:
                record = _next_record(raw_line)
                if record is _END:
                    return
                if record is not None:
                    yield record

        # Body ended without a trailing newline
        if buffer:
            record = _next_record(buffer)
            if isinstance(record, FrameRecord):
                yield record
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()


def _next_record(raw_line: bytes) -> FrameRecord | _EndOfStream | None:
    try:
        return parse_line(raw_line)
    except DecodeError as e:
        logger.debug("Dropped undecodable frame", extra={"debug_data": {"error": str(e)}})
        return None


def parse_line(raw_line: bytes) -> FrameRecord | _EndOfStream | None:
    """Classify one complete line: a record, the end sentinel, or noise (None)."""
    try:
        line = raw_line.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise DecodeError(f"Frame is not valid UTF-8: {e}") from e

    # Blank separators, ": keep-alive" comments, event:/id:/retry: fields
    if not line.startswith(DATA_PREFIX):
        return None

    payload = line[len(DATA_PREFIX):].strip()
    if not payload:
        return None
    if payload == DONE_SENTINEL:
        return _END
    if any(marker in payload for marker in STATUS_MARKERS):
        return None

    return FrameRecord(event_text=payload)

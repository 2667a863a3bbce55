"""Process-wide transport instance shared by every call."""

from callai.transport.http import ChatTransport

_transport: ChatTransport | None = None


def get_transport() -> ChatTransport:
    """Get or create the shared transport."""
    global _transport
    if _transport is None:
        _transport = ChatTransport()
    return _transport


def set_transport(transport: ChatTransport | None) -> None:
    """Replace the shared transport (tests install one with a mock httpx transport)."""
    global _transport
    _transport = transport


async def close_transport() -> None:
    """Gracefully shut down the shared HTTP client."""
    global _transport
    if _transport is not None:
        await _transport.close()
    _transport = None

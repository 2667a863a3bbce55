"""Shared fixtures for the callai test suite."""

import json

import httpx
import pytest

import callai.api as api_mod
import callai.strategies.registry as strategy_registry_mod
import callai.transport.registry as transport_registry_mod
from callai.config.settings import get_settings
from callai.resilience.credentials import get_credential_state
from callai.transport.http import ChatTransport

CHAT_URL = "https://openrouter.ai/api/v1/chat/completions"
KEYS_URL = "https://keys.test/api/keys"


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings and credential caches.

    Usage:
        override_settings(CALLAI_API_KEY="sk-test", CALLAI_DEBUG="1")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()
        get_credential_state.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()
    get_credential_state.cache_clear()


@pytest.fixture
def client_env(override_settings, monkeypatch):
    """Deterministic environment for end-to-end calls."""
    for name in (
        "OPENROUTER_API_KEY", "CALLAI_CHAT_URL", "CALLAI_REKEY_ENDPOINT", "CALL_AI_KEY_TOKEN",
        "CALLAI_DEBUG", "CALLAI_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    override_settings(
        CALLAI_API_KEY="sk-initial",
        CALLAI_REFRESH_ENDPOINT="https://keys.test",
        CALL_AI_REFRESH_TOKEN="refresh-token",
        CALLAI_REFRESH_MIN_INTERVAL="0",
        CALLAI_REFRESH_POLL_INTERVAL="0.01",
        CALLAI_LOG_LEVEL="CRITICAL",
    )


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    monkeypatch.setattr(transport_registry_mod, "_transport", None)
    monkeypatch.setattr(strategy_registry_mod, "_strategies", {})
    monkeypatch.setattr(api_mod, "_logging_configured", False)
    get_credential_state.cache_clear()
    yield
    get_credential_state.cache_clear()


@pytest.fixture
def install_handler():
    """Factory fixture: route the shared transport through an httpx mock handler.

    The handler receives each ``httpx.Request`` and returns an
    ``httpx.Response``; it may be sync or async.
    """
    def _install(handler) -> ChatTransport:
        transport = ChatTransport(timeout=5.0, transport=httpx.MockTransport(handler))
        transport_registry_mod.set_transport(transport)
        return transport

    return _install


def sse_event(payload: dict | str) -> bytes:
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n".encode()


def sse_body(*payloads: dict | str, done: bool = True) -> bytes:
    """Build a complete event-stream body from payloads."""
    body = b"".join(sse_event(p) for p in payloads)
    if done:
        body += b"data: [DONE]\n\n"
    return body


def text_delta_chunks(text: str, chunk_size: int = 5, finish_reason: str = "stop") -> list[dict]:
    """OpenAI-style stream chunks carrying ``text`` in small deltas."""
    chunks = []
    for i in range(0, len(text), chunk_size):
        chunks.append({
            "id": "chatcmpl-test",
            "object": "chat.completion.chunk",
            "choices": [{"index": 0, "delta": {"content": text[i:i + chunk_size]}, "finish_reason": None}],
        })
    chunks.append({
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": {}, "finish_reason": finish_reason}],
    })
    return chunks


def tool_call_chunks(arguments: str, chunk_size: int = 7, finish_reason: str = "tool_calls") -> list[dict]:
    """OpenAI-style stream chunks carrying tool-call arguments in fragments."""
    chunks = [{
        "choices": [{
            "index": 0,
            "delta": {"tool_calls": [{
                "index": 0,
                "id": "call_1",
                "type": "function",
                "function": {"name": "generate_structured_data", "arguments": ""},
            }]},
            "finish_reason": None,
        }],
    }]
    for i in range(0, len(arguments), chunk_size):
        chunks.append({
            "choices": [{
                "index": 0,
                "delta": {"tool_calls": [{"index": 0, "function": {"arguments": arguments[i:i + chunk_size]}}]},
                "finish_reason": None,
            }],
        })
    chunks.append({"choices": [{"index": 0, "delta": {}, "finish_reason": finish_reason}]})
    return chunks


def completion_body(content: str, model: str = "openai/gpt-4o", usage: dict | None = None) -> dict:
    return {
        "id": "chatcmpl-test",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": usage or {"prompt_tokens": 5, "completion_tokens": 7, "total_tokens": 12},
    }


def sse_response(body: bytes, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, headers={"content-type": "text/event-stream"}, content=body)


async def chunked(*parts: bytes):
    """Async chunk source for decoder tests."""
    for part in parts:
        yield part


class TrackingBody(httpx.AsyncByteStream):
    """Response body that records whether it was read or closed."""

    def __init__(self, content: bytes):
        self.content = content
        self.read = False
        self.closed = False

    async def __aiter__(self):
        self.read = True
        yield self.content

    async def aclose(self) -> None:
        self.closed = True

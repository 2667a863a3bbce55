"""Tests for callai/request.py: options, messages, body and headers."""

import pytest

from callai.config.settings import get_settings
from callai.request import (
    CallOptions,
    build_headers,
    build_request_body,
    normalize_messages,
    resolve_endpoint,
)
from callai.strategies.registry import resolve_strategy

SCHEMA = {"name": "answer", "properties": {"text": {"type": "string"}}}


class TestNormalizeMessages:

    def test_string_prompt(self):
        assert normalize_messages("hi") == [{"role": "user", "content": "hi"}]

    def test_message_list_copied(self):
        prompt = [{"role": "system", "content": "s"}, {"role": "user", "content": [{"type": "text", "text": "x"}]}]
        result = normalize_messages(prompt)
        assert result == prompt
        assert result[0] is not prompt[0]

    @pytest.mark.parametrize("prompt", ["", [], None, 42])
    def test_invalid_prompt(self, prompt):
        with pytest.raises(ValueError, match="Invalid prompt"):
            normalize_messages(prompt)

    def test_missing_role(self):
        with pytest.raises(ValueError, match="'role' and 'content'"):
            normalize_messages([{"content": "x"}])

    def test_wrong_content_type(self):
        with pytest.raises(ValueError, match="must be a string or list"):
            normalize_messages([{"role": "user", "content": 5}])


class TestCallOptions:

    def test_from_kwargs(self):
        opts = CallOptions.from_kwargs(model="m", temperature=0.5)
        assert opts.model == "m"
        assert opts.temperature == 0.5

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="Unknown option"):
            CallOptions.from_kwargs(stream=True)


class TestBuildRequestBody:

    def test_minimal(self):
        descriptor = resolve_strategy(None, None)
        body = build_request_body([{"role": "user", "content": "x"}], descriptor, CallOptions(), stream=False)
        assert body == {"model": "openrouter/auto", "messages": [{"role": "user", "content": "x"}], "stream": False}

    def test_json_response_format(self):
        descriptor = resolve_strategy("openai/gpt-4o", None)
        body = build_request_body([], descriptor, CallOptions(response_format="json"), stream=False)
        assert body["response_format"] == {"type": "json_object"}

    def test_schema_fields_merged(self):
        descriptor = resolve_strategy("openai/gpt-4o", SCHEMA)
        body = build_request_body([], descriptor, CallOptions(schema=SCHEMA), stream=True)
        assert body["response_format"]["json_schema"]["name"] == "answer"
        assert body["stream"] is True

    def test_system_strategy_replaces_messages(self):
        descriptor = resolve_strategy("deepseek/deepseek-chat", SCHEMA)
        messages = [{"role": "user", "content": "x"}]
        body = build_request_body(messages, descriptor, CallOptions(schema=SCHEMA), stream=False)
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert messages == [{"role": "user", "content": "x"}]

    def test_stop_list_kept(self):
        descriptor = resolve_strategy(None, None)
        body = build_request_body([], descriptor, CallOptions(stop=["a", "b"], top_p=0.9), stream=False)
        assert body["stop"] == ["a", "b"]
        assert body["top_p"] == 0.9


class TestHeadersAndEndpoint:

    def test_headers(self, override_settings):
        override_settings(CALLAI_TITLE="My App")
        headers = build_headers("sk-1", CallOptions(referer="https://me.test", headers={"X-A": "1"}), get_settings())
        assert headers["Authorization"] == "Bearer sk-1"
        assert headers["HTTP-Referer"] == "https://me.test"
        assert headers["X-Title"] == "My App"
        assert headers["X-A"] == "1"

    def test_content_type_not_overridable(self, override_settings):
        override_settings()
        headers = build_headers("k", CallOptions(headers={"Content-Type": "text/plain"}), get_settings())
        assert headers["Content-Type"] == "application/json"

    def test_endpoint_precedence(self, override_settings, monkeypatch):
        monkeypatch.delenv("CALLAI_CHAT_URL", raising=False)
        override_settings()
        settings = get_settings()
        assert resolve_endpoint(CallOptions(), settings) == "https://openrouter.ai/api/v1/chat/completions"
        assert resolve_endpoint(CallOptions(chat_url="https://o.test/"), settings) == (
            "https://o.test/api/v1/chat/completions"
        )
        assert resolve_endpoint(CallOptions(endpoint="https://x.test/v1", chat_url="https://o.test"), settings) == (
            "https://x.test/v1"
        )

"""Tests for ModelClient against a mocked HTTP transport."""

import json
from typing import Any
from unittest.mock import MagicMock, call, patch

import httpx
import pytest

from agentrouter.core.interface.client import ModelClient
from agentrouter.core.interface.config import ModelConfig
from agentrouter.core.interface.models import (
    ContentBlockDelta,
    Message,
    MessageStop,
    TextDelta,
    Tool,
    ToolInputSchema,
)
from agentrouter.core.interface.streaming import collect_stream_message
from agentrouter.errors import (
    AuthenticationError,
    ConfigurationError,
    RateLimitError,
    RequestTimeoutError,
    TranslationError,
)
from agentrouter.utils.telemetry import ATTR_STOP_REASON, ATTR_TOKENS_INPUT

ANTHROPIC_RESPONSE: dict[str, Any] = {
    "id": "msg_1",
    "type": "message",
    "role": "assistant",
    "model": "claude-sonnet-4-5",
    "content": [{"type": "text", "text": "Hello!"}],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 3, "output_tokens": 2},
}

OPENAI_SSE = (
    b'data: {"choices":[{"index":0,"delta":{"content":"Hel"}}]}\n\n'
    b'data: {"choices":[{"index":0,"delta":{"content":"lo"},"finish_reason":"stop"}]}\n\n'
    b"data: [DONE]\n\n"
)


class _Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    @property
    def body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


def _client(model: str, handler: _Recorder, **config: Any) -> ModelClient:
    config.setdefault("api_key", "sk-test")
    return ModelClient(ModelConfig(model=model, **config), transport=httpx.MockTransport(handler))


class TestRequestConstruction:
    def test_unknown_provider_rejected(self) -> None:
        with pytest.raises(TranslationError):
            ModelClient(ModelConfig(model="cohere/command-r"))

    def test_endpoints(self) -> None:
        handler = _Recorder(httpx.Response(200, json={}))
        assert _client("anthropic/claude", handler).endpoint() == "/v1/messages"
        assert _client("openai/gpt-4o", handler).endpoint() == "/chat/completions"
        gemini = _client("gemini/gemini-2.0-flash", handler)
        assert gemini.endpoint() == "/models/gemini-2.0-flash:generateContent"
        assert gemini.endpoint(stream=True) == "/models/gemini-2.0-flash:streamGenerateContent?alt=sse"

    def test_headers(self) -> None:
        handler = _Recorder(httpx.Response(200, json={}))
        anthropic = _client("anthropic/claude", handler).headers()
        assert anthropic["x-api-key"] == "sk-test"
        assert anthropic["anthropic-version"] == "2023-06-01"
        assert _client("openai/gpt-4o", handler).headers()["authorization"] == "Bearer sk-test"
        assert _client("google/gemini-pro", handler).headers()["x-goog-api-key"] == "sk-test"

    def test_config_headers_merged(self) -> None:
        handler = _Recorder(httpx.Response(200, json={}))
        headers = _client("openai/gpt-4o", handler, headers={"x-trace": "1"}).headers()
        assert headers["x-trace"] == "1"

    def test_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_SUCH_KEY", raising=False)
        client = ModelClient(ModelConfig(model="openai/gpt-4o", api_key_env="NO_SUCH_KEY"))
        with pytest.raises(ConfigurationError, match="No API key"):
            client.headers()

    def test_build_body_merges_extra(self) -> None:
        handler = _Recorder(httpx.Response(200, json={}))
        client = _client("openai/gpt-4o", handler, max_tokens=50, extra={"seed": 7})
        body = client.build_body([Message.user("Hi")], system_prompt="S")
        assert body["model"] == "gpt-4o"
        assert body["max_tokens"] == 50
        assert body["seed"] == 7
        assert body["messages"][0] == {"role": "system", "content": "S"}

    async def test_requires_context_manager(self) -> None:
        handler = _Recorder(httpx.Response(200, json=ANTHROPIC_RESPONSE))
        client = _client("anthropic/claude", handler)
        with pytest.raises(RuntimeError, match="async context manager"):
            await client.generate([Message.user("Hi")])


class TestGenerate:
    async def test_anthropic_round_trip(self) -> None:
        handler = _Recorder(httpx.Response(200, json=ANTHROPIC_RESPONSE))
        tool = Tool(name="t", description="d", input_schema=ToolInputSchema(properties={}))
        async with _client("anthropic/claude-sonnet-4-5", handler) as client:
            reply = await client.generate([Message.user("Hi")], system_prompt="Be brief.", tools=[tool])

        assert reply.text == "Hello!"
        assert reply.metadata["stop_reason"] == "end_turn"
        request = handler.requests[0]
        assert request.url == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-test"
        assert handler.body["system"] == "Be brief."
        assert handler.body["max_tokens"] == 4096
        assert handler.body["tools"][0]["name"] == "t"

    async def test_custom_api_base(self) -> None:
        response = {"choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}]}
        handler = _Recorder(httpx.Response(200, json=response))
        async with _client("openrouter/meta-llama/llama-3", handler, api_base="https://openrouter.ai/api/v1") as client:
            reply = await client.generate([Message.user("Hi")])
        assert reply.text == "ok"
        assert handler.requests[0].url == "https://openrouter.ai/api/v1/chat/completions"
        assert handler.body["model"] == "meta-llama/llama-3"

    @pytest.mark.parametrize(
        ("model", "url"),
        [
            ("openai/gpt-4o", "https://api.openai.com/v1/chat/completions"),
            ("openrouter/meta-llama/llama-3", "https://openrouter.ai/api/v1/chat/completions"),
            ("zai/glm-4.6", "https://api.z.ai/api/paas/v4/chat/completions"),
            ("ollama/llama3", "http://localhost:11434/v1/chat/completions"),
            ("deepseek/deepseek-chat", "https://api.deepseek.com/chat/completions"),
            ("kimi/kimi-for-coding", "https://api.kimi.com/coding/v1/chat/completions"),
        ],
    )
    async def test_compatible_provider_default_hosts(self, model: str, url: str) -> None:
        response = {"choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}]}
        handler = _Recorder(httpx.Response(200, json=response))
        async with _client(model, handler) as client:
            await client.generate([Message.user("hi")])
        assert handler.requests[0].url == url

    def test_protocol_default_when_provider_has_none(self) -> None:
        handler = _Recorder(httpx.Response(200, json={}))
        client = _client("vertex_ai/gemini-pro", handler)
        assert client.api_base == "https://generativelanguage.googleapis.com/v1beta"

    async def test_compatible_provider_error_uses_chat_completion_codes(self) -> None:
        body = {"error": {"message": "bad key", "type": "auth", "code": "invalid_api_key"}}
        handler = _Recorder(httpx.Response(400, json=body))
        async with _client("openrouter/meta-llama/llama-3", handler) as client:
            with pytest.raises(AuthenticationError) as exc_info:
                await client.generate([Message.user("Hi")])
        assert exc_info.value.provider == "openrouter"

    async def test_gemini_url(self) -> None:
        response = {"candidates": [{"content": {"parts": [{"text": "ok"}]}, "finishReason": "STOP"}]}
        handler = _Recorder(httpx.Response(200, json=response))
        async with _client("gemini/gemini-2.0-flash", handler) as client:
            reply = await client.generate([Message.user("Hi")])
        assert reply.text == "ok"
        assert str(handler.requests[0].url) == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"
        )
        assert "model" not in handler.body

    async def test_rate_limit_translated(self) -> None:
        handler = _Recorder(
            httpx.Response(
                429,
                json={"error": {"message": "Rate limit reached", "type": "requests", "code": "rate_limit_exceeded"}},
                headers={"retry-after": "3"},
            )
        )
        async with _client("openai/gpt-4o", handler) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.generate([Message.user("Hi")])
        assert exc_info.value.retry_after_ms == 3000
        assert exc_info.value.is_retryable
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    async def test_auth_error_translated(self) -> None:
        body = {"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}}
        handler = _Recorder(httpx.Response(401, json=body))
        async with _client("anthropic/claude", handler) as client:
            with pytest.raises(AuthenticationError):
                await client.generate([Message.user("Hi")])

    async def test_timeout_translated(self) -> None:
        handler = _Recorder(httpx.ReadTimeout("timed out"))
        async with _client("openai/gpt-4o", handler) as client:
            with pytest.raises(RequestTimeoutError):
                await client.generate([Message.user("Hi")])

    async def test_span_attributes(self) -> None:
        handler = _Recorder(httpx.Response(200, json=ANTHROPIC_RESPONSE))
        with patch("agentrouter.core.interface.client._tracer") as mock_tracer:
            span = MagicMock()
            mock_tracer.start_as_current_span.return_value.__enter__.return_value = span
            async with _client("anthropic/claude", handler) as client:
                await client.generate([Message.user("Hi")])

        mock_tracer.start_as_current_span.assert_called_once_with("model.generate")
        assert call(ATTR_STOP_REASON, "end_turn") in span.set_attribute.call_args_list
        assert call(ATTR_TOKENS_INPUT, 3) in span.set_attribute.call_args_list


class TestStream:
    async def test_openai_stream(self) -> None:
        handler = _Recorder(
            httpx.Response(200, content=OPENAI_SSE, headers={"content-type": "text/event-stream"})
        )
        async with _client("openai/gpt-4o", handler) as client:
            chunks = [chunk async for chunk in client.stream([Message.user("Hi")])]

        assert handler.body["stream"] is True
        deltas = [c.delta.text for c in chunks if isinstance(c, ContentBlockDelta) and isinstance(c.delta, TextDelta)]
        assert deltas == ["Hel", "lo"]
        assert chunks[-1] == MessageStop(stop_reason="stop")

    async def test_gemini_stream_url(self) -> None:
        sse = b'data: {"candidates":[{"content":{"parts":[{"text":"ok"}]},"finishReason":"STOP"}]}\n\n'
        handler = _Recorder(httpx.Response(200, content=sse))
        async with _client("gemini/gemini-2.0-flash", handler) as client:
            message = await collect_stream_message(client.stream([Message.user("Hi")]))
        assert message.text == "ok"
        url = handler.requests[0].url
        assert url.path.endswith("/models/gemini-2.0-flash:streamGenerateContent")
        assert url.params["alt"] == "sse"

    async def test_stream_http_error_translated(self) -> None:
        body = {"error": {"code": 403, "message": "denied", "status": "PERMISSION_DENIED"}}
        handler = _Recorder(httpx.Response(403, json=body))
        async with _client("gemini/gemini-2.0-flash", handler) as client:
            with pytest.raises(AuthenticationError) as exc_info:
                async for _ in client.stream([Message.user("Hi")]):
                    pass
        assert exc_info.value.status_code == 403

    async def test_in_stream_error_propagates_unchanged(self) -> None:
        sse = b'data: {"type":"error","error":{"type":"overloaded_error","message":"Overloaded"}}\n\n'
        handler = _Recorder(httpx.Response(200, content=sse))
        async with _client("anthropic/claude", handler) as client:
            with pytest.raises(TranslationError, match="Overloaded"):
                async for _ in client.stream([Message.user("Hi")]):
                    pass

"""ModelClient — unified async HTTP interface to the supported providers.

Requests are built by the provider's transpiler, sent with ``httpx`` and
read back into canonical values, so callers only ever see
:class:`Message`, :class:`StreamChunk` and taxonomy errors. The client
never retries; callers use :func:`get_retry_delay` to decide.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from typing import Any

import httpx

from agentrouter.core.interface.config import ModelConfig
from agentrouter.core.interface.error_translator import (
    translate_openai_error,
    translate_provider_error,
)
from agentrouter.core.interface.models import Message, MessageStop, StreamChunk
from agentrouter.core.interface.providers import WireProtocol, normalize_provider
from agentrouter.core.interface.tools import ToolLike
from agentrouter.core.interface.transpiler import Transpiler, get_transpiler
from agentrouter.errors import AgentRouterError, ConfigurationError
from agentrouter.utils.telemetry import (
    ATTR_CHUNK_COUNT,
    ATTR_ERROR_KIND,
    ATTR_MODEL,
    ATTR_PROTOCOL,
    ATTR_PROVIDER,
    ATTR_STATUS_CODE,
    ATTR_STOP_REASON,
    ATTR_STREAM,
    get_tracer,
    record_usage,
)

logger = logging.getLogger(__name__)

_tracer = get_tracer(__name__)

# Keyed by provider name.
DEFAULT_API_BASES: dict[str, str] = {
    "anthropic": "https://api.anthropic.com",
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "zai": "https://api.z.ai/api/paas/v4",
    "ollama": "http://localhost:11434/v1",
    "deepseek": "https://api.deepseek.com",
    "kimi": "https://api.kimi.com/coding/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta",
    "google": "https://generativelanguage.googleapis.com/v1beta",
}
ANTHROPIC_VERSION = "2023-06-01"


class ModelClient:
    """Async client for one configured model.

    Usage::

        config = ModelConfig(model="anthropic/claude-sonnet-4-5", api_key_env="ANTHROPIC_API_KEY")
        async with ModelClient(config) as client:
            reply = await client.generate([Message.user("Hello")])
            async for chunk in client.stream([Message.user("Hello")]):
                ...
    """

    def __init__(
        self,
        config: ModelConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.protocol: WireProtocol = normalize_provider(config.provider)
        self.transpiler: Transpiler = get_transpiler(config.provider)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ModelClient:
        self._client = httpx.AsyncClient(
            base_url=self.api_base,
            timeout=self.config.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *_: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def api_base(self) -> str:
        """Configured base URL, else the provider's default, else its protocol's."""
        if self.config.api_base:
            return self.config.api_base
        provider = self.config.provider.strip().lower()
        return DEFAULT_API_BASES.get(provider) or DEFAULT_API_BASES[self.protocol]

    @property
    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "ModelClient must be used as an async context manager"
            raise RuntimeError(msg)
        return self._client

    # ------------------------------------------------------------------
    # Request construction
    # ------------------------------------------------------------------

    def build_body(
        self,
        messages: Sequence[Message],
        *,
        system_prompt: str | None = None,
        tools: Sequence[ToolLike] | None = None,
        stream: bool = False,
    ) -> dict[str, Any]:
        """Return the provider request body, with ``config.extra`` merged on top."""
        body = self.transpiler.build_request(
            model=self.config.model_name,
            messages=messages,
            system_prompt=system_prompt,
            tools=tools,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            stream=stream,
        )
        body.update(self.config.extra)
        return body

    def endpoint(self, *, stream: bool = False) -> str:
        """Path (relative to the API base) of the generation endpoint."""
        if self.protocol == "anthropic":
            return "/v1/messages"
        if self.protocol == "openai":
            return "/chat/completions"
        if stream:
            return f"/models/{self.config.model_name}:streamGenerateContent?alt=sse"
        return f"/models/{self.config.model_name}:generateContent"

    def headers(self) -> dict[str, str]:
        """Auth and protocol headers, with ``config.headers`` merged on top."""
        api_key = self.config.resolved_api_key
        if api_key is None and self.config.provider != "ollama":
            msg = f"No API key configured for provider: {self.config.provider}"
            raise ConfigurationError(msg)

        headers: dict[str, str] = {"content-type": "application/json"}
        if self.protocol == "anthropic":
            headers["anthropic-version"] = ANTHROPIC_VERSION
            if api_key:
                headers["x-api-key"] = api_key
        elif self.protocol == "openai":
            if api_key:
                headers["authorization"] = f"Bearer {api_key}"
        elif api_key:
            headers["x-goog-api-key"] = api_key
        headers.update(self.config.headers)
        return headers

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def generate(
        self,
        messages: Sequence[Message],
        *,
        system_prompt: str | None = None,
        tools: Sequence[ToolLike] | None = None,
    ) -> Message:
        """Send one non-streaming request and return the assistant reply.

        Raises:
            AgentRouterError: Any transport or provider failure, classified.
        """
        with _tracer.start_as_current_span("model.generate") as span:
            self._annotate(span, stream=False)
            body = self.build_body(messages, system_prompt=system_prompt, tools=tools)
            logger.debug("POST %s for %s", self.endpoint(), self.config.model)

            try:
                response = await self._http.post(
                    self.endpoint(), json=body, headers=self.headers()
                )
                span.set_attribute(ATTR_STATUS_CODE, response.status_code)
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                error = self._translate_error(exc)
                span.set_attribute(ATTR_ERROR_KIND, error.code)
                raise error from exc

            message = self.transpiler.from_provider(payload)
            stop_reason = message.metadata.get("stop_reason")
            if stop_reason is not None:
                span.set_attribute(ATTR_STOP_REASON, str(stop_reason))
            record_usage(span, message.metadata.get("usage"))
            return message

    async def stream(
        self,
        messages: Sequence[Message],
        *,
        system_prompt: str | None = None,
        tools: Sequence[ToolLike] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Send one streaming request and yield canonical stream chunks.

        The HTTP response is closed when the consumer finishes or abandons
        the iterator.

        Raises:
            AgentRouterError: Any transport or provider failure, classified.
        """
        with _tracer.start_as_current_span("model.stream") as span:
            self._annotate(span, stream=True)
            body = self.build_body(messages, system_prompt=system_prompt, tools=tools, stream=True)
            path = self.endpoint(stream=True)
            logger.debug("POST %s (stream) for %s", path, self.config.model)

            count = 0
            try:
                async with self._http.stream(
                    "POST", path, json=body, headers=self.headers()
                ) as response:
                    span.set_attribute(ATTR_STATUS_CODE, response.status_code)
                    if response.is_error:
                        await response.aread()
                    response.raise_for_status()

                    chunks = self.transpiler.parse_stream(response.aiter_bytes())
                    async with aclosing(chunks):
                        async for chunk in chunks:
                            count += 1
                            if isinstance(chunk, MessageStop):
                                if chunk.stop_reason is not None:
                                    span.set_attribute(ATTR_STOP_REASON, chunk.stop_reason)
                                record_usage(span, chunk.usage)
                            yield chunk
            except (httpx.HTTPError, AgentRouterError) as exc:
                error = self._translate_error(exc)
                span.set_attribute(ATTR_ERROR_KIND, error.code)
                if error is exc:
                    raise
                raise error from exc
            finally:
                span.set_attribute(ATTR_CHUNK_COUNT, count)

    def _translate_error(self, error: Exception) -> AgentRouterError:
        if self.protocol != "openai":
            return translate_provider_error(error, self.config.provider)
        if isinstance(error, AgentRouterError):
            return error
        return translate_openai_error(error, self.config.provider)

    def _annotate(self, span: Any, *, stream: bool) -> None:
        span.set_attribute(ATTR_PROVIDER, self.config.provider)
        span.set_attribute(ATTR_PROTOCOL, self.protocol)
        span.set_attribute(ATTR_MODEL, self.config.model)
        span.set_attribute(ATTR_STREAM, stream)

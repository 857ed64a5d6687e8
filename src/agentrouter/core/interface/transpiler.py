"""Transpiler protocol — converts between the canonical model and provider formats.

Each wire protocol (Anthropic, OpenAI, Gemini) has a concrete transpiler
that implements bidirectional conversion: canonical messages and tools ->
provider payload, and provider response/stream/error -> canonical values.
"""

from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import Any, Protocol

from agentrouter.core.interface.models import Message, StreamChunk, Tool
from agentrouter.core.interface.providers import normalize_provider
from agentrouter.core.interface.tools import ToolLike
from agentrouter.core.interface.transpilers import (
    AnthropicTranspiler,
    GeminiTranspiler,
    OpenAITranspiler,
)
from agentrouter.errors import AgentRouterError


class Transpiler(Protocol):
    """Protocol for provider-specific format transpilers."""

    provider: str

    def to_provider(
        self, messages: Sequence[Message], system_prompt: str | None = None
    ) -> dict[str, Any]:
        """Convert canonical messages (and an optional system prompt) to a provider payload.

        Returns a JSON-serializable dict holding the provider's message
        field(s) and, when given, its system prompt field.
        """
        ...

    def from_provider(self, response: dict[str, Any]) -> Message:
        """Convert a provider's parsed response into an assistant message.

        Only the first choice/candidate is read; an empty response gives an
        assistant message with empty content.
        """
        ...

    def tools_to_provider(self, tools: Sequence[ToolLike] | None) -> list[dict[str, Any]]: ...

    def tools_from_provider(self, payload: Any) -> list[Tool]: ...

    def build_request(
        self,
        *,
        model: str,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolLike] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        stream: bool = False,
    ) -> dict[str, Any]:
        """Build the full request body for the provider's generation endpoint."""
        ...

    def parse_stream(self, source: AsyncIterable[bytes]) -> AsyncIterator[StreamChunk]:
        """Normalize the provider's raw SSE byte stream into canonical chunks."""
        ...

    def translate_error(self, error: Any) -> AgentRouterError:
        """Classify a provider error into the shared taxonomy."""
        ...


def get_transpiler(provider: str) -> Transpiler:
    """Return the transpiler for *provider*'s wire protocol.

    Raises:
        TranslationError: If the provider is unknown.
    """
    protocol = normalize_provider(provider)
    if protocol == "anthropic":
        return AnthropicTranspiler()
    if protocol == "openai":
        return OpenAITranspiler()
    return GeminiTranspiler()

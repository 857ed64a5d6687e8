"""Streaming normalizers — provider SSE byte streams to canonical stream chunks."""

from collections.abc import AsyncIterable, AsyncIterator

from agentrouter.core.interface.models import StreamChunk
from agentrouter.core.interface.providers import normalize_provider
from agentrouter.core.interface.streaming.anthropic import parse_anthropic_stream
from agentrouter.core.interface.streaming.gemini import parse_gemini_stream
from agentrouter.core.interface.streaming.openai import parse_openai_stream
from agentrouter.core.interface.streaming.replay import (
    StreamAccumulator,
    collect_stream_chunks,
    collect_stream_message,
    collect_stream_text,
)
from agentrouter.core.interface.streaming.sse import iter_json_frames, iter_sse_data


def normalize_stream(source: AsyncIterable[bytes], provider: str) -> AsyncIterator[StreamChunk]:
    """Return the canonical chunk stream for *provider*'s raw SSE *source*.

    Raises:
        TranslationError: If the provider is unknown.
    """
    protocol = normalize_provider(provider)
    if protocol == "anthropic":
        return parse_anthropic_stream(source)
    if protocol == "openai":
        return parse_openai_stream(source)
    return parse_gemini_stream(source)


__all__ = [
    "StreamAccumulator",
    "collect_stream_chunks",
    "collect_stream_message",
    "collect_stream_text",
    "iter_json_frames",
    "iter_sse_data",
    "normalize_stream",
    "parse_anthropic_stream",
    "parse_gemini_stream",
    "parse_openai_stream",
]

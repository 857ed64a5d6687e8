"""Gemini stream normalizer.

Frames carry ``candidates[0].content.parts``. Text parts may hold the
*whole* text generated so far rather than a delta, so only the suffix past
the previously seen length is emitted. Function calls arrive complete and
without ids: each becomes a start plus one full :class:`InputJsonDelta`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from agentrouter.core.interface.models import (
    ContentBlockDelta,
    ContentBlockStart,
    InputJsonDelta,
    MessageStop,
    StreamChunk,
    TextBlock,
    TextDelta,
    ToolUseBlock,
)
from agentrouter.core.interface.streaming.channels import ChannelAllocator
from agentrouter.core.interface.streaming.sse import iter_json_frames
from agentrouter.errors import TranslationError

logger = logging.getLogger(__name__)

TEXT_CHANNEL = 0


@dataclass
class GeminiStreamState:
    """Per-stream state; lives as long as one stream consumption."""

    has_started_content: bool = False
    text_index: int = TEXT_CHANNEL
    last_text_length: int = 0
    tool_count: int = 0
    channels: ChannelAllocator = field(default_factory=ChannelAllocator)
    finish_reason: str | None = None
    usage: dict[str, Any] | None = None


async def parse_gemini_stream(source: AsyncIterable[bytes]) -> AsyncIterator[StreamChunk]:
    """Normalize a Gemini ``streamGenerateContent?alt=sse`` byte stream."""
    state = GeminiStreamState()
    frames = iter_json_frames(source)
    async with aclosing(frames):
        async for frame in frames:
            for chunk in reduce_gemini_frame(frame, state):
                yield chunk
    yield MessageStop(stop_reason=state.finish_reason, usage=state.usage)


def reduce_gemini_frame(frame: dict[str, Any], state: GeminiStreamState) -> list[StreamChunk]:
    """Translate one decoded Gemini frame into zero or more stream chunks."""
    if isinstance(frame.get("error"), dict):
        message = frame["error"].get("message") or "unknown error"
        raise TranslationError(
            f"Gemini stream error: {message}", "gemini_stream", "stream_chunk", cause=frame
        )

    if frame.get("usageMetadata"):
        state.usage = frame["usageMetadata"]

    candidates = frame.get("candidates") or []
    if not candidates:
        return []
    candidate = candidates[0]
    if candidate.get("finishReason"):
        state.finish_reason = candidate["finishReason"]

    chunks: list[StreamChunk] = []
    for part in (candidate.get("content") or {}).get("parts") or []:
        if isinstance(part.get("text"), str):
            chunks.extend(_reduce_text(part["text"], state))
        if isinstance(part.get("functionCall"), dict):
            chunks.extend(_reduce_function_call(part["functionCall"], state))
    return chunks


def _reduce_text(text: str, state: GeminiStreamState) -> list[StreamChunk]:
    if len(text) <= state.last_text_length:
        return []
    new_text = text[state.last_text_length :]
    state.last_text_length = len(text)

    chunks: list[StreamChunk] = []
    if not state.has_started_content:
        state.has_started_content = True
        state.text_index = state.channels.claim(TEXT_CHANNEL)
        chunks.append(ContentBlockStart(index=state.text_index, content_block=TextBlock(text="")))
    chunks.append(ContentBlockDelta(index=state.text_index, delta=TextDelta(text=new_text)))
    return chunks


def _reduce_function_call(call: dict[str, Any], state: GeminiStreamState) -> list[StreamChunk]:
    preferred = state.tool_count + 1 if state.has_started_content else state.tool_count
    state.tool_count += 1
    index = state.channels.claim(preferred)

    block = ToolUseBlock(name=call.get("name") or "")
    logger.debug("Gemini function call %r assigned id %s", block.name, block.id)
    arguments = json.dumps(call.get("args") or {})
    return [
        ContentBlockStart(index=index, content_block=block),
        ContentBlockDelta(index=index, delta=InputJsonDelta(partial_json=arguments)),
    ]

"""Anthropic stream normalizer.

The wire format already carries explicit block events, so most frames map
1:1 onto stream chunks:

- ``content_block_start`` / ``content_block_delta`` -> start / delta
- ``message_stop`` -> :class:`MessageStop`
- ``message_start``, ``message_delta``, ``content_block_stop``, ``ping`` ->
  state only (id, usage, stop reason)
- ``error`` -> :class:`TranslationError`, failing the stream
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from agentrouter.core.interface.models import (
    ContentBlock,
    ContentBlockDelta,
    ContentBlockStart,
    InputJsonDelta,
    MessageStop,
    StreamChunk,
    TextBlock,
    TextDelta,
    ToolResultBlock,
    ToolUseBlock,
    new_tool_use_id,
    tool_result_text,
)
from agentrouter.core.interface.streaming.sse import iter_json_frames
from agentrouter.errors import TranslationError

logger = logging.getLogger(__name__)


@dataclass
class AnthropicStreamState:
    """Per-stream state; lives as long as one stream consumption."""

    started: set[int] = field(default_factory=set)
    ignored: set[int] = field(default_factory=set)
    message_id: str | None = None
    model: str | None = None
    stop_reason: str | None = None
    usage: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())
    stopped: bool = False

    def stop(self) -> MessageStop:
        self.stopped = True
        return MessageStop(stop_reason=self.stop_reason, usage=dict(self.usage) or None)


async def parse_anthropic_stream(source: AsyncIterable[bytes]) -> AsyncIterator[StreamChunk]:
    """Normalize an Anthropic SSE byte stream into canonical stream chunks."""
    state = AnthropicStreamState()
    frames = iter_json_frames(source)
    async with aclosing(frames):
        async for frame in frames:
            for chunk in reduce_anthropic_frame(frame, state):
                yield chunk
            if state.stopped:
                return
    if not state.stopped:
        yield state.stop()


def reduce_anthropic_frame(frame: dict[str, Any], state: AnthropicStreamState) -> list[StreamChunk]:
    """Translate one decoded Anthropic event into zero or more stream chunks."""
    event_type = frame.get("type")

    if event_type == "content_block_start":
        index = int(frame.get("index", 0))
        block = _initial_block(frame.get("content_block") or {})
        if block is None:
            state.ignored.add(index)
            return []
        state.started.add(index)
        return [ContentBlockStart(index=index, content_block=block)]

    if event_type == "content_block_delta":
        return _reduce_delta(frame, state)

    if event_type == "message_start":
        message = frame.get("message") or {}
        state.message_id = message.get("id")
        state.model = message.get("model")
        state.usage.update(message.get("usage") or {})
        return []

    if event_type == "message_delta":
        delta = frame.get("delta") or {}
        if delta.get("stop_reason"):
            state.stop_reason = delta["stop_reason"]
        state.usage.update(frame.get("usage") or {})
        return []

    if event_type == "message_stop":
        return [state.stop()]

    if event_type == "error":
        error = frame.get("error") or {}
        message = error.get("message") or "unknown error"
        raise TranslationError(
            f"Anthropic stream error: {message}",
            "anthropic_stream",
            "stream_chunk",
            cause=frame,
        )

    # content_block_stop, ping and unknown event types carry nothing to emit
    return []


def _reduce_delta(frame: dict[str, Any], state: AnthropicStreamState) -> list[StreamChunk]:
    index = int(frame.get("index", 0))
    if index in state.ignored:
        return []

    delta = frame.get("delta") or {}
    delta_type = delta.get("type")
    chunks: list[StreamChunk] = []

    if delta_type == "text_delta":
        if index not in state.started:
            logger.warning("Text delta for unstarted block %d; synthesizing start", index)
            state.started.add(index)
            chunks.append(ContentBlockStart(index=index, content_block=TextBlock(text="")))
        chunks.append(ContentBlockDelta(index=index, delta=TextDelta(text=delta.get("text", ""))))
    elif delta_type == "input_json_delta":
        if index not in state.started:
            logger.warning("Tool input delta for unstarted block %d; synthesizing start", index)
            state.started.add(index)
            chunks.append(ContentBlockStart(index=index, content_block=ToolUseBlock(name="")))
        chunks.append(
            ContentBlockDelta(
                index=index, delta=InputJsonDelta(partial_json=delta.get("partial_json", ""))
            )
        )
    return chunks


def _initial_block(block: dict[str, Any]) -> ContentBlock | None:
    """Initial shape of a started block, or ``None`` for unsupported block types."""
    block_type = block.get("type")
    if block_type == "text":
        return TextBlock(text=block.get("text") or "")
    if block_type == "tool_use":
        return ToolUseBlock(
            id=block.get("id") or new_tool_use_id(),
            name=block.get("name") or "",
            input=block.get("input") or {},
        )
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=block.get("tool_use_id") or "",
            content=tool_result_text(block.get("content")),
        )
    logger.debug("Dropping unsupported content block type %r", block_type)
    return None

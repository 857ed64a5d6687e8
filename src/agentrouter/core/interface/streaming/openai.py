"""OpenAI chat-completion stream normalizer.

The wire format has no block-start events: every frame is a
``choices[0].delta`` carrying a text fragment and/or tool-call fragments
keyed by a per-call ``index``. Starts are synthesized the first time text
(or a given tool call) shows up, and a :class:`MessageStop` is appended at
end of stream since the protocol has no terminal event of its own.
"""

from __future__ import annotations

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
class ToolCallProgress:
    """A tool call being assembled from fragments."""

    id: str = ""
    name: str = ""
    arguments: str = ""
    block_index: int | None = None


@dataclass
class OpenAIStreamState:
    """Per-stream state; lives as long as one stream consumption."""

    tool_calls: dict[int, ToolCallProgress] = field(default_factory=dict)
    has_started_content: bool = False
    text_index: int = TEXT_CHANNEL
    channels: ChannelAllocator = field(default_factory=ChannelAllocator)
    finish_reason: str | None = None
    usage: dict[str, Any] | None = None


async def parse_openai_stream(source: AsyncIterable[bytes]) -> AsyncIterator[StreamChunk]:
    """Normalize an OpenAI SSE byte stream into canonical stream chunks."""
    state = OpenAIStreamState()
    frames = iter_json_frames(source)
    async with aclosing(frames):
        async for frame in frames:
            for chunk in reduce_openai_frame(frame, state):
                yield chunk
    for chunk in finish_openai_stream(state):
        yield chunk


def reduce_openai_frame(frame: dict[str, Any], state: OpenAIStreamState) -> list[StreamChunk]:
    """Translate one decoded chat-completion chunk into zero or more stream chunks."""
    if isinstance(frame.get("error"), dict):
        message = frame["error"].get("message") or "unknown error"
        raise TranslationError(
            f"OpenAI stream error: {message}", "openai_stream", "stream_chunk", cause=frame
        )

    if frame.get("usage"):
        state.usage = frame["usage"]

    # first choice only
    choice = next(
        (c for c in frame.get("choices") or [] if isinstance(c, dict) and c.get("index", 0) == 0),
        None,
    )
    if choice is None:
        return []
    if choice.get("finish_reason"):
        state.finish_reason = choice["finish_reason"]

    delta = choice.get("delta") or {}
    chunks: list[StreamChunk] = []

    content = delta.get("content")
    if isinstance(content, str) and content:
        if not state.has_started_content:
            state.has_started_content = True
            state.text_index = state.channels.claim(TEXT_CHANNEL)
            chunks.append(ContentBlockStart(index=state.text_index, content_block=TextBlock(text="")))
        chunks.append(ContentBlockDelta(index=state.text_index, delta=TextDelta(text=content)))

    for position, fragment in enumerate(delta.get("tool_calls") or []):
        chunks.extend(_reduce_tool_call(fragment, position, state))

    return chunks


def _reduce_tool_call(
    fragment: dict[str, Any], position: int, state: OpenAIStreamState
) -> list[StreamChunk]:
    tool_index = fragment.get("index", position)
    call = state.tool_calls.get(tool_index)
    if call is None:
        call = ToolCallProgress()
        state.tool_calls[tool_index] = call

    function = fragment.get("function") or {}
    if fragment.get("id"):
        call.id = fragment["id"]
    if function.get("name"):
        call.name = function["name"]

    chunks: list[StreamChunk] = []
    arguments = function.get("arguments") or ""
    call.arguments += arguments

    if call.block_index is None:
        if not call.name:
            # Not enough to open the channel yet; arguments stay accumulated.
            return chunks
        chunks.extend(_start_tool_call(tool_index, call, state))
    elif arguments:
        chunks.append(
            ContentBlockDelta(index=call.block_index, delta=InputJsonDelta(partial_json=arguments))
        )
    return chunks


def _start_tool_call(tool_index: int, call: ToolCallProgress, state: OpenAIStreamState) -> list[StreamChunk]:
    """Open the channel for *call* and flush the arguments accumulated so far."""
    preferred = tool_index + 1 if state.has_started_content else tool_index
    call.block_index = state.channels.claim(preferred)
    block = ToolUseBlock(id=call.id, name=call.name) if call.id else ToolUseBlock(name=call.name)
    if not call.id:
        logger.debug("Tool call %d arrived without an id; synthesized %s", tool_index, block.id)
        call.id = block.id

    chunks: list[StreamChunk] = [ContentBlockStart(index=call.block_index, content_block=block)]
    if call.arguments:
        chunks.append(
            ContentBlockDelta(index=call.block_index, delta=InputJsonDelta(partial_json=call.arguments))
        )
    return chunks


def finish_openai_stream(state: OpenAIStreamState) -> list[StreamChunk]:
    """Close out the stream: open any tool call that never got a name, then stop."""
    chunks: list[StreamChunk] = []
    for tool_index, call in state.tool_calls.items():
        if call.block_index is None:
            logger.warning("Tool call %d ended without a function name", tool_index)
            chunks.extend(_start_tool_call(tool_index, call, state))
    chunks.append(MessageStop(stop_reason=state.finish_reason, usage=state.usage))
    return chunks

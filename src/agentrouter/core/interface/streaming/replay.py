"""Stream replay — fold canonical stream chunks back into a :class:`Message`."""

from __future__ import annotations

import json
from collections.abc import AsyncIterable
from dataclasses import dataclass

from agentrouter.core.interface.models import (
    ContentBlock,
    ContentBlockDelta,
    ContentBlockStart,
    InputJsonDelta,
    Message,
    MessageStop,
    StreamChunk,
    TextBlock,
    TextDelta,
    ToolResultBlock,
    ToolUseBlock,
)
from agentrouter.errors import TranslationError


@dataclass
class _Channel:
    block: ContentBlock
    text: str = ""
    partial_json: str = ""


class StreamAccumulator:
    """Rebuilds the assistant message a stream describes.

    Usage::

        acc = StreamAccumulator()
        async for chunk in parse_openai_stream(source):
            acc.add(chunk)
        message = acc.to_message()

    Raises :class:`TranslationError` when the chunk sequence breaks the
    stream invariants (a delta before its start, a duplicate start, a delta
    of the wrong kind for its channel).
    """

    def __init__(self) -> None:
        self._channels: dict[int, _Channel] = {}
        self.stop: MessageStop | None = None

    @property
    def finished(self) -> bool:
        return self.stop is not None

    def add(self, chunk: StreamChunk) -> None:
        if self.stop is not None:
            raise TranslationError("Chunk received after message_stop", "stream_chunk", "internal")

        if isinstance(chunk, ContentBlockStart):
            if chunk.index in self._channels:
                raise TranslationError(
                    f"Duplicate content_block_start for index {chunk.index}",
                    "stream_chunk",
                    "internal",
                    index=chunk.index,
                )
            block = chunk.content_block
            self._channels[chunk.index] = _Channel(
                block=block, text=block.text if isinstance(block, TextBlock) else ""
            )
        elif isinstance(chunk, ContentBlockDelta):
            self._apply_delta(chunk)
        elif isinstance(chunk, MessageStop):
            self.stop = chunk
        else:
            raise TranslationError(f"Unknown stream chunk: {chunk!r}", "stream_chunk", "internal")

    def _apply_delta(self, chunk: ContentBlockDelta) -> None:
        channel = self._channels.get(chunk.index)
        if channel is None:
            raise TranslationError(
                f"content_block_delta for index {chunk.index} before its content_block_start",
                "stream_chunk",
                "internal",
                index=chunk.index,
            )
        delta = chunk.delta
        if isinstance(delta, TextDelta) and isinstance(channel.block, TextBlock):
            channel.text += delta.text
        elif isinstance(delta, InputJsonDelta) and isinstance(channel.block, ToolUseBlock):
            channel.partial_json += delta.partial_json
        else:
            raise TranslationError(
                f"{delta.type} does not apply to a {channel.block.type} block at index {chunk.index}",
                "stream_chunk",
                "internal",
                index=chunk.index,
            )

    @property
    def text(self) -> str:
        """Concatenated text of every text channel, in channel order."""
        return "".join(
            self._channels[i].text
            for i in sorted(self._channels)
            if isinstance(self._channels[i].block, TextBlock)
        )

    def to_message(self) -> Message:
        """Build the assistant message, blocks ordered by channel index."""
        blocks: list[ContentBlock] = []
        for index in sorted(self._channels):
            channel = self._channels[index]
            block = channel.block
            if isinstance(block, TextBlock):
                blocks.append(TextBlock(text=channel.text))
            elif isinstance(block, ToolUseBlock):
                blocks.append(block.model_copy(update={"input": self._tool_input(index, channel)}))
            elif isinstance(block, ToolResultBlock):
                blocks.append(block)
            else:
                raise TranslationError(f"Unknown block at index {index}", "stream_chunk", "internal")

        metadata = {}
        if self.stop is not None:
            metadata = {"stop_reason": self.stop.stop_reason, "usage": self.stop.usage}
        return Message(role="assistant", content=blocks, metadata=metadata)

    @staticmethod
    def _tool_input(index: int, channel: _Channel) -> dict[str, object]:
        assert isinstance(channel.block, ToolUseBlock)
        if not channel.partial_json:
            return dict(channel.block.input)
        try:
            parsed = json.loads(channel.partial_json)
        except json.JSONDecodeError as exc:
            raise TranslationError(
                f"Tool input at index {index} is not valid JSON",
                "stream_chunk",
                "internal",
                index=index,
                cause=exc,
            ) from exc
        if not isinstance(parsed, dict):
            raise TranslationError(
                f"Tool input at index {index} is not a JSON object",
                "stream_chunk",
                "internal",
                index=index,
            )
        return parsed


async def collect_stream_chunks(stream: AsyncIterable[StreamChunk]) -> list[StreamChunk]:
    """Drain *stream* into a list."""
    return [chunk async for chunk in stream]


async def collect_stream_text(stream: AsyncIterable[StreamChunk]) -> str:
    """Concatenate every text delta in *stream*."""
    text = ""
    async for chunk in stream:
        if isinstance(chunk, ContentBlockDelta) and isinstance(chunk.delta, TextDelta):
            text += chunk.delta.text
    return text


async def collect_stream_message(stream: AsyncIterable[StreamChunk]) -> Message:
    """Replay *stream* into the assistant message it describes."""
    acc = StreamAccumulator()
    async for chunk in stream:
        acc.add(chunk)
    return acc.to_message()

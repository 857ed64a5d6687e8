"""Tests for the per-provider streaming normalizers."""

import json
from collections.abc import AsyncIterator
from typing import Any

import pytest

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
from agentrouter.core.interface.streaming import (
    collect_stream_chunks,
    collect_stream_message,
    normalize_stream,
    parse_anthropic_stream,
    parse_gemini_stream,
    parse_openai_stream,
)
from agentrouter.core.interface.streaming.gemini import GeminiStreamState, reduce_gemini_frame
from agentrouter.core.interface.streaming.openai import OpenAIStreamState, reduce_openai_frame
from agentrouter.errors import TranslationError


async def _reads(data: bytes, size: int) -> AsyncIterator[bytes]:
    for start in range(0, len(data), size):
        yield data[start : start + size]


def _sse(*frames: dict[str, Any] | str, event_names: bool = False) -> bytes:
    lines: list[str] = []
    for frame in frames:
        if isinstance(frame, str):
            lines.append(f"data: {frame}\n\n")
            continue
        if event_names:
            lines.append(f"event: {frame['type']}\n")
        lines.append(f"data: {json.dumps(frame)}\n\n")
    return "".join(lines).encode()


# ---------------------------------------------------------------------------
# Recorded streams: text "hi" followed by a call t({"x": 1})
# ---------------------------------------------------------------------------

ANTHROPIC_STREAM = _sse(
    {"type": "message_start", "message": {"id": "msg_1", "model": "claude", "usage": {"input_tokens": 5}}},
    {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    {"type": "ping"},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "h"}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "i"}},
    {"type": "content_block_stop", "index": 0},
    {
        "type": "content_block_start",
        "index": 1,
        "content_block": {"type": "tool_use", "id": "toolu_1", "name": "t", "input": {}},
    },
    {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"x":'}},
    {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": " 1}"}},
    {"type": "content_block_stop", "index": 1},
    {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 7}},
    {"type": "message_stop"},
    event_names=True,
)

OPENAI_STREAM = _sse(
    {"choices": [{"index": 0, "delta": {"role": "assistant", "content": ""}}]},
    {"choices": [{"index": 0, "delta": {"content": "h"}}]},
    {"choices": [{"index": 0, "delta": {"content": "i"}}]},
    {
        "choices": [
            {
                "index": 0,
                "delta": {
                    "tool_calls": [
                        {"index": 0, "id": "call_1", "type": "function", "function": {"name": "t", "arguments": ""}}
                    ]
                },
            }
        ]
    },
    {"choices": [{"index": 0, "delta": {"tool_calls": [{"index": 0, "function": {"arguments": '{"x":'}}]}}]},
    {"choices": [{"index": 0, "delta": {"tool_calls": [{"index": 0, "function": {"arguments": " 1}"}}]}}]},
    {"choices": [{"index": 0, "delta": {}, "finish_reason": "tool_calls"}]},
    {"choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 7}},
    "[DONE]",
)

GEMINI_STREAM = _sse(
    {"candidates": [{"content": {"role": "model", "parts": [{"text": "h"}]}}]},
    {"candidates": [{"content": {"role": "model", "parts": [{"text": "hi"}]}}]},
    {
        "candidates": [
            {
                "content": {"role": "model", "parts": [{"functionCall": {"name": "t", "args": {"x": 1}}}]},
                "finishReason": "STOP",
            }
        ],
        "usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 7},
    },
)

STREAMS = {"anthropic": ANTHROPIC_STREAM, "openai": OPENAI_STREAM, "gemini": GEMINI_STREAM}


class TestReconstruction:
    @pytest.mark.parametrize("provider", ["anthropic", "openai", "gemini"])
    @pytest.mark.parametrize("size", [1, 2, 7, 64, 100_000])
    async def test_text_and_tool_call(self, provider: str, size: int) -> None:
        message = await collect_stream_message(normalize_stream(_reads(STREAMS[provider], size), provider))
        assert message.role == "assistant"
        assert message.text == "hi"
        assert len(message.tool_uses) == 1
        tool_use = message.tool_uses[0]
        assert tool_use.name == "t"
        assert tool_use.input == {"x": 1}

    @pytest.mark.parametrize("provider", ["anthropic", "openai", "gemini"])
    async def test_chunks_independent_of_split(self, provider: str) -> None:
        whole = await collect_stream_chunks(normalize_stream(_reads(STREAMS[provider], 100_000), provider))
        byte_wise = await collect_stream_chunks(normalize_stream(_reads(STREAMS[provider], 1), provider))
        assert len(whole) == len(byte_wise)
        for a, b in zip(whole, byte_wise, strict=True):
            if isinstance(a, ContentBlockStart) and isinstance(a.content_block, ToolUseBlock):
                # Gemini ids are generated per stream.
                assert isinstance(b, ContentBlockStart)
                assert b.content_block.type == "tool_use"
            else:
                assert a == b

    @pytest.mark.parametrize("provider", ["anthropic", "openai", "gemini"])
    async def test_single_terminal_stop(self, provider: str) -> None:
        chunks = await collect_stream_chunks(normalize_stream(_reads(STREAMS[provider], 5), provider))
        stops = [c for c in chunks if isinstance(c, MessageStop)]
        assert len(stops) == 1
        assert chunks[-1] is stops[0]

    @pytest.mark.parametrize("provider", ["anthropic", "openai", "gemini"])
    async def test_every_delta_follows_its_start(self, provider: str) -> None:
        chunks = await collect_stream_chunks(normalize_stream(_reads(STREAMS[provider], 3), provider))
        started: set[int] = set()
        for chunk in chunks:
            if isinstance(chunk, ContentBlockStart):
                assert chunk.index not in started
                started.add(chunk.index)
            elif isinstance(chunk, ContentBlockDelta):
                assert chunk.index in started

    async def test_stop_metadata(self) -> None:
        anthropic = await collect_stream_chunks(parse_anthropic_stream(_reads(ANTHROPIC_STREAM, 50)))
        assert anthropic[-1] == MessageStop(
            stop_reason="tool_use", usage={"input_tokens": 5, "output_tokens": 7}
        )
        openai = await collect_stream_chunks(parse_openai_stream(_reads(OPENAI_STREAM, 50)))
        assert openai[-1] == MessageStop(
            stop_reason="tool_calls", usage={"prompt_tokens": 5, "completion_tokens": 7}
        )
        gemini = await collect_stream_chunks(parse_gemini_stream(_reads(GEMINI_STREAM, 50)))
        assert gemini[-1].type == "message_stop"
        assert isinstance(gemini[-1], MessageStop)
        assert gemini[-1].stop_reason == "STOP"

    async def test_unknown_provider(self) -> None:
        with pytest.raises(TranslationError):
            normalize_stream(_reads(b"", 1), "cohere")


# ---------------------------------------------------------------------------
# Anthropic specifics
# ---------------------------------------------------------------------------


class TestAnthropicStream:
    async def test_chunk_sequence(self) -> None:
        chunks = await collect_stream_chunks(parse_anthropic_stream(_reads(ANTHROPIC_STREAM, 9)))
        assert chunks[:3] == [
            ContentBlockStart(index=0, content_block=TextBlock(text="")),
            ContentBlockDelta(index=0, delta=TextDelta(text="h")),
            ContentBlockDelta(index=0, delta=TextDelta(text="i")),
        ]
        assert chunks[3] == ContentBlockStart(
            index=1, content_block=ToolUseBlock(id="toolu_1", name="t", input={})
        )
        assert chunks[4] == ContentBlockDelta(index=1, delta=InputJsonDelta(partial_json='{"x":'))

    async def test_error_event_raises(self) -> None:
        data = _sse(
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        )
        stream = parse_anthropic_stream(_reads(data, 10))
        first = await stream.__anext__()
        assert isinstance(first, ContentBlockStart)
        with pytest.raises(TranslationError, match="Overloaded"):
            await stream.__anext__()

    async def test_unsupported_blocks_dropped(self) -> None:
        data = _sse(
            {"type": "content_block_start", "index": 0, "content_block": {"type": "thinking", "thinking": ""}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "thinking_delta", "thinking": "hm"}},
            {"type": "content_block_start", "index": 1, "content_block": {"type": "text", "text": ""}},
            {"type": "content_block_delta", "index": 1, "delta": {"type": "text_delta", "text": "ok"}},
            {"type": "message_stop"},
        )
        chunks = await collect_stream_chunks(parse_anthropic_stream(_reads(data, 10)))
        assert [c.type for c in chunks] == ["content_block_start", "content_block_delta", "message_stop"]
        assert all(c.index == 1 for c in chunks if not isinstance(c, MessageStop))

    async def test_missing_message_stop_synthesized(self) -> None:
        data = _sse(
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "x"}},
        )
        chunks = await collect_stream_chunks(parse_anthropic_stream(_reads(data, 10)))
        assert chunks == [
            ContentBlockStart(index=0, content_block=TextBlock(text="")),
            ContentBlockDelta(index=0, delta=TextDelta(text="x")),
            MessageStop(),
        ]

    async def test_frames_after_stop_ignored(self) -> None:
        data = _sse(
            {"type": "message_stop"},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "late"}},
        )
        chunks = await collect_stream_chunks(parse_anthropic_stream(_reads(data, 10)))
        assert chunks == [MessageStop()]

    async def test_malformed_frame_tolerated(self) -> None:
        data = b"data: {not json\n\n" + ANTHROPIC_STREAM
        message = await collect_stream_message(parse_anthropic_stream(_reads(data, 11)))
        assert message.text == "hi"


# ---------------------------------------------------------------------------
# OpenAI specifics
# ---------------------------------------------------------------------------


class TestOpenAIStream:
    def test_tool_only_stream_uses_channel_zero(self) -> None:
        state = OpenAIStreamState()
        chunks = reduce_openai_frame(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c", "function": {"name": "f"}}]}}]},
            state,
        )
        assert chunks == [ContentBlockStart(index=0, content_block=ToolUseBlock(id="c", name="f"))]

    def test_text_after_tool_gets_free_channel(self) -> None:
        state = OpenAIStreamState()
        reduce_openai_frame(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c", "function": {"name": "f"}}]}}]},
            state,
        )
        chunks = reduce_openai_frame({"choices": [{"delta": {"content": "late"}}]}, state)
        assert isinstance(chunks[0], ContentBlockStart)
        assert chunks[0].index == 1
        assert chunks[1] == ContentBlockDelta(index=1, delta=TextDelta(text="late"))

    def test_fragments_before_name_are_flushed(self) -> None:
        state = OpenAIStreamState()
        early = reduce_openai_frame(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": '{"a"'}}]}}]},
            state,
        )
        assert early == []
        chunks = reduce_openai_frame(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c", "function": {"name": "f", "arguments": ": 1}"}}]}}]},
            state,
        )
        assert chunks == [
            ContentBlockStart(index=0, content_block=ToolUseBlock(id="c", name="f")),
            ContentBlockDelta(index=0, delta=InputJsonDelta(partial_json='{"a": 1}')),
        ]

    async def test_missing_id_synthesized(self) -> None:
        data = _sse(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"name": "f", "arguments": "{}"}}]}}]},
            "[DONE]",
        )
        message = await collect_stream_message(parse_openai_stream(_reads(data, 8)))
        assert message.tool_uses[0].id.startswith("toolu_")
        assert message.tool_uses[0].input == {}

    async def test_parallel_tool_calls(self) -> None:
        data = _sse(
            {
                "choices": [
                    {
                        "delta": {
                            "tool_calls": [
                                {"index": 0, "id": "a", "function": {"name": "f", "arguments": '{"n": 1}'}},
                                {"index": 1, "id": "b", "function": {"name": "g", "arguments": '{"n": 2}'}},
                            ]
                        }
                    }
                ]
            },
        )
        message = await collect_stream_message(parse_openai_stream(_reads(data, 16)))
        assert [(t.id, t.name, t.input) for t in message.tool_uses] == [
            ("a", "f", {"n": 1}),
            ("b", "g", {"n": 2}),
        ]

    async def test_empty_content_does_not_open_text(self) -> None:
        data = _sse({"choices": [{"delta": {"role": "assistant", "content": ""}}]})
        chunks = await collect_stream_chunks(parse_openai_stream(_reads(data, 8)))
        assert chunks == [MessageStop()]

    async def test_error_frame_raises(self) -> None:
        data = _sse({"error": {"message": "quota exceeded", "type": "insufficient_quota"}})
        with pytest.raises(TranslationError, match="quota exceeded"):
            await collect_stream_chunks(parse_openai_stream(_reads(data, 8)))

    async def test_only_first_choice_is_normalized(self) -> None:
        data = _sse(
            {"choices": [{"index": 0, "delta": {"content": "A"}}]},
            {"choices": [{"index": 1, "delta": {"content": "B"}}]},
            {"choices": [{"index": 1, "delta": {}, "finish_reason": "length"}]},
            {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]},
            "[DONE]",
        )
        message = await collect_stream_message(parse_openai_stream(_reads(data, 8)))
        assert message.text == "A"
        assert message.metadata["stop_reason"] == "stop"


# ---------------------------------------------------------------------------
# Gemini specifics
# ---------------------------------------------------------------------------


def _gemini_text(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


class TestGeminiStream:
    def test_cumulative_text_diffing(self) -> None:
        state = GeminiStreamState()
        emitted: list[str] = []
        for text in ("H", "He", "Hello"):
            for chunk in reduce_gemini_frame(_gemini_text(text), state):
                if isinstance(chunk, ContentBlockDelta) and isinstance(chunk.delta, TextDelta):
                    emitted.append(chunk.delta.text)
        assert emitted == ["H", "e", "llo"]

    def test_not_longer_emits_nothing(self) -> None:
        state = GeminiStreamState()
        reduce_gemini_frame(_gemini_text("Hello"), state)
        assert reduce_gemini_frame(_gemini_text("Hi"), state) == []

    def test_function_call_start_and_full_delta(self) -> None:
        state = GeminiStreamState()
        chunks = reduce_gemini_frame(
            {"candidates": [{"content": {"parts": [{"functionCall": {"name": "t", "args": {"x": 1}}}]}}]},
            state,
        )
        assert len(chunks) == 2
        start, delta = chunks
        assert isinstance(start, ContentBlockStart)
        assert start.index == 0
        assert isinstance(start.content_block, ToolUseBlock)
        assert start.content_block.input == {}
        assert delta == ContentBlockDelta(index=0, delta=InputJsonDelta(partial_json='{"x": 1}'))

    def test_tool_channel_offset_after_text(self) -> None:
        state = GeminiStreamState()
        reduce_gemini_frame(_gemini_text("hi"), state)
        chunks = reduce_gemini_frame(
            {"candidates": [{"content": {"parts": [{"functionCall": {"name": "a"}}, {"functionCall": {"name": "b"}}]}}]},
            state,
        )
        starts = [c.index for c in chunks if isinstance(c, ContentBlockStart)]
        assert starts == [1, 2]

    def test_frame_without_candidates(self) -> None:
        state = GeminiStreamState()
        assert reduce_gemini_frame({"usageMetadata": {"totalTokenCount": 3}}, state) == []
        assert state.usage == {"totalTokenCount": 3}

    async def test_error_frame_raises(self) -> None:
        data = _sse({"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}})
        with pytest.raises(TranslationError, match="Resource exhausted"):
            await collect_stream_chunks(parse_gemini_stream(_reads(data, 8)))

    async def test_stop_always_appended(self) -> None:
        chunks: list[StreamChunk] = await collect_stream_chunks(parse_gemini_stream(_reads(b"", 1)))
        assert chunks == [MessageStop()]

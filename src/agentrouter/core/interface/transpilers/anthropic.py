"""Anthropic transpiler — canonical blocks pass through almost unchanged.

Key differences from the canonical model:
- The system prompt is a sibling ``system`` field, not a message.
- The conversation must open with a user turn and alternate roles, so a
  synthetic empty user turn is prepended when needed and consecutive
  same-role messages are merged.
- Requests always carry ``max_tokens``.
"""

import json
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import Any

from agentrouter.core.interface.error_translator import translate_anthropic_error
from agentrouter.core.interface.models import (
    ContentBlock,
    Message,
    StreamChunk,
    TextBlock,
    Tool,
    ToolResultBlock,
    ToolUseBlock,
    tool_result_text,
)
from agentrouter.core.interface.streaming.anthropic import parse_anthropic_stream
from agentrouter.core.interface.tools import ToolLike, from_anthropic_tools, to_anthropic_tools
from agentrouter.errors import AgentRouterError

DEFAULT_MAX_TOKENS = 4096


class AnthropicTranspiler:
    """Converts between the canonical model and Anthropic's Messages API."""

    provider = "anthropic"

    def to_provider(
        self, messages: Sequence[Message], system_prompt: str | None = None
    ) -> dict[str, Any]:
        """Convert canonical messages to ``{"system"?: ..., "messages": [...]}``.

        The result always starts with a user turn and never holds two
        consecutive turns of the same role.
        """
        result: dict[str, Any] = {}
        if system_prompt:
            result["system"] = system_prompt

        raw_messages = [self._message_to_anthropic(msg) for msg in messages]
        if raw_messages and raw_messages[0]["role"] != "user":
            raw_messages.insert(0, {"role": "user", "content": ""})

        result["messages"] = _merge_consecutive_roles(raw_messages)
        return result

    def from_provider(self, response: dict[str, Any]) -> Message:
        """Convert an Anthropic Messages API response to an assistant message."""
        content: list[ContentBlock] = []
        for block in response.get("content") or []:
            block_type = block.get("type")
            if block_type == "text":
                content.append(TextBlock(text=block.get("text", "")))
            elif block_type == "tool_use":
                content.append(
                    ToolUseBlock(
                        id=block["id"],
                        name=block["name"],
                        input=block.get("input") or {},
                    )
                )
            elif block_type == "tool_result":
                content.append(
                    ToolResultBlock(
                        tool_use_id=block["tool_use_id"],
                        content=tool_result_text(block.get("content")),
                    )
                )
            else:
                # thinking, redacted_thinking, server tool blocks...
                content.append(TextBlock(text=json.dumps(block)))

        metadata: dict[str, Any] = {
            "id": response.get("id"),
            "model": response.get("model"),
            "stop_reason": response.get("stop_reason"),
        }
        if response.get("usage"):
            metadata["usage"] = response["usage"]

        return Message(role="assistant", content=content, metadata=metadata)

    def tools_to_provider(self, tools: Sequence[ToolLike] | None) -> list[dict[str, Any]]:
        return to_anthropic_tools(tools)

    def tools_from_provider(self, payload: Any) -> list[Tool]:
        return from_anthropic_tools(payload)

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
        """Build a complete ``POST /v1/messages`` body."""
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
            **self.to_provider(messages, system_prompt),
        }
        if tools:
            body["tools"] = self.tools_to_provider(tools)
        if temperature is not None:
            body["temperature"] = temperature
        if stream:
            body["stream"] = True
        return body

    def parse_stream(self, source: AsyncIterable[bytes]) -> AsyncIterator[StreamChunk]:
        return parse_anthropic_stream(source)

    def translate_error(self, error: Any) -> AgentRouterError:
        return translate_anthropic_error(error)

    def _message_to_anthropic(self, msg: Message) -> dict[str, Any]:
        """Convert a single canonical message to Anthropic format."""
        if isinstance(msg.content, str):
            return {"role": msg.role, "content": msg.content}
        return {
            "role": msg.role,
            "content": [block.model_dump() for block in msg.content],
        }


def _merge_consecutive_roles(
    messages: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Merge consecutive messages with the same role.

    Anthropic requires strict user/assistant alternation. When multiple
    consecutive messages share a role, their content is merged into one message.
    """
    merged: list[dict[str, Any]] = []
    for msg in messages:
        if merged and merged[-1]["role"] == msg["role"]:
            merged[-1]["content"] = _merge_content(merged[-1]["content"], msg["content"])
        else:
            merged.append(dict(msg))
    return merged


def _merge_content(
    existing: str | list[dict[str, Any]], new: str | list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Merge two content values (str or list of blocks) into a single list."""
    result: list[dict[str, Any]] = []
    for item in (existing, new):
        if isinstance(item, str):
            result.append({"type": "text", "text": item})
        else:
            result.extend(item)
    return result

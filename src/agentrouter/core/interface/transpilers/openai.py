"""OpenAI transpiler — flattens content blocks into chat-completion messages.

Key differences from the canonical model:
- The system prompt is a leading ``{"role": "system"}`` message.
- Text blocks collapse into one string; tool calls become a sibling
  ``tool_calls`` array with JSON-string arguments.
- Each tool result becomes its own ``{"role": "tool"}`` message, so one
  canonical message may yield several wire messages.
"""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import Any

from agentrouter.core.interface.error_translator import translate_openai_error
from agentrouter.core.interface.models import (
    ContentBlock,
    Message,
    StreamChunk,
    TextBlock,
    Tool,
    ToolUseBlock,
    new_tool_use_id,
)
from agentrouter.core.interface.streaming.openai import parse_openai_stream
from agentrouter.core.interface.tools import ToolLike, from_openai_tools, to_openai_tools
from agentrouter.errors import AgentRouterError

logger = logging.getLogger(__name__)


class OpenAITranspiler:
    """Converts between the canonical model and OpenAI's chat completion format."""

    provider = "openai"

    def to_provider(
        self, messages: Sequence[Message], system_prompt: str | None = None
    ) -> dict[str, Any]:
        """Convert canonical messages to ``{"messages": [...]}``."""
        result: list[dict[str, Any]] = []
        if system_prompt:
            result.append({"role": "system", "content": system_prompt})
        for msg in messages:
            result.extend(self._message_to_openai(msg))
        return {"messages": result}

    def from_provider(self, response: dict[str, Any]) -> Message:
        """Convert a chat completion response (first choice only) to an assistant message."""
        choices = response.get("choices") or []
        if not choices:
            return Message(role="assistant", content=[])

        choice = choices[0]
        message = choice.get("message") or {}
        content: list[ContentBlock] = []

        raw_content = message.get("content")
        if isinstance(raw_content, str) and raw_content:
            content.append(TextBlock(text=raw_content))
        elif isinstance(raw_content, list):
            for part in raw_content:
                if part.get("type") == "text" and part.get("text"):
                    content.append(TextBlock(text=part["text"]))

        for tc in message.get("tool_calls") or []:
            function = tc.get("function") or {}
            content.append(
                ToolUseBlock(
                    id=tc.get("id") or new_tool_use_id(),
                    name=function.get("name", ""),
                    input=_parse_arguments(function.get("arguments")),
                )
            )

        metadata: dict[str, Any] = {
            "id": response.get("id"),
            "model": response.get("model"),
            "stop_reason": choice.get("finish_reason"),
        }
        if response.get("usage"):
            metadata["usage"] = response["usage"]

        return Message(role="assistant", content=content, metadata=metadata)

    def tools_to_provider(self, tools: Sequence[ToolLike] | None) -> list[dict[str, Any]]:
        return to_openai_tools(tools)

    def tools_from_provider(self, payload: Any) -> list[Tool]:
        return from_openai_tools(payload)

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
        """Build a complete ``POST /chat/completions`` body."""
        body: dict[str, Any] = {"model": model, **self.to_provider(messages, system_prompt)}
        if tools:
            body["tools"] = self.tools_to_provider(tools)
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if temperature is not None:
            body["temperature"] = temperature
        if stream:
            body["stream"] = True
        return body

    def parse_stream(self, source: AsyncIterable[bytes]) -> AsyncIterator[StreamChunk]:
        return parse_openai_stream(source)

    def translate_error(self, error: Any) -> AgentRouterError:
        return translate_openai_error(error)

    def _message_to_openai(self, msg: Message) -> list[dict[str, Any]]:
        """Convert a single canonical message to one or more OpenAI messages.

        Tool results come first so they directly follow the assistant turn
        that requested them.
        """
        if isinstance(msg.content, str):
            return [{"role": msg.role, "content": msg.content}]

        result: list[dict[str, Any]] = [
            {"role": "tool", "tool_call_id": tr.tool_use_id, "content": tr.content}
            for tr in msg.tool_results
        ]

        texts = [b.text for b in msg.content if isinstance(b, TextBlock)]
        tool_uses = msg.tool_uses
        text = "\n".join(texts)

        if tool_uses and msg.role == "assistant":
            result.append(
                {
                    "role": "assistant",
                    "content": text or None,
                    "tool_calls": [
                        {
                            "id": tu.id,
                            "type": "function",
                            "function": {
                                "name": tu.name,
                                "arguments": json.dumps(tu.input),
                            },
                        }
                        for tu in tool_uses
                    ],
                }
            )
        elif tool_uses:
            # user turns cannot carry tool_calls on this wire
            logger.warning("Serializing tool_use blocks of a %s message as text", msg.role)
            texts.extend(json.dumps(tu.model_dump()) for tu in tool_uses)
            result.append({"role": msg.role, "content": "\n".join(texts)})
        elif texts:
            result.append({"role": msg.role, "content": text})

        return result


def _parse_arguments(raw: Any) -> dict[str, Any]:
    """Parse the JSON-string arguments of a tool call; unparseable input becomes ``{}``."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Tool call arguments are not valid JSON: %r", raw)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("Tool call arguments are not a JSON object: %r", raw)
        return {}
    return parsed

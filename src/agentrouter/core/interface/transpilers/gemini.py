"""Gemini transpiler — maps assistant to model role and blocks to parts.

Key differences from the canonical model:
- Role "assistant" becomes "model"; messages are ``contents`` of ``parts``.
- The system prompt goes in a separate ``systemInstruction`` field.
- Tool calls use ``functionCall`` / ``functionResponse`` parts. Function
  calls carry no id, so ids are synthesized on the way back, and a
  ``functionResponse`` is keyed by the tool-use id it answers.
- Sampling settings live under ``generationConfig``; model and streaming
  are part of the URL, not the body.
"""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import Any

from agentrouter.core.interface.error_translator import translate_gemini_error
from agentrouter.core.interface.models import (
    ContentBlock,
    Message,
    StreamChunk,
    TextBlock,
    Tool,
    ToolResultBlock,
    ToolUseBlock,
)
from agentrouter.core.interface.streaming.gemini import parse_gemini_stream
from agentrouter.core.interface.tools import ToolLike, from_gemini_tools, to_gemini_tools_array
from agentrouter.errors import AgentRouterError

logger = logging.getLogger(__name__)


class GeminiTranspiler:
    """Converts between the canonical model and Gemini's generateContent format."""

    provider = "gemini"

    def to_provider(
        self, messages: Sequence[Message], system_prompt: str | None = None
    ) -> dict[str, Any]:
        """Convert canonical messages to ``{"systemInstruction"?: ..., "contents": [...]}``.

        Consecutive contents with the same role are merged by concatenating
        their parts.
        """
        result: dict[str, Any] = {}
        if system_prompt:
            result["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        contents: list[dict[str, Any]] = []
        for msg in messages:
            content = self._message_to_gemini(msg)
            if contents and contents[-1]["role"] == content["role"]:
                contents[-1]["parts"].extend(content["parts"])
            else:
                contents.append(content)

        result["contents"] = contents
        return result

    def from_provider(self, response: dict[str, Any]) -> Message:
        """Convert a generateContent response (first candidate only) to an assistant message."""
        candidates = response.get("candidates") or []
        if not candidates:
            return Message(role="assistant", content=[])

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []

        content: list[ContentBlock] = []
        for part in parts:
            if "text" in part:
                content.append(TextBlock(text=part["text"] or ""))
            elif "functionCall" in part:
                fc = part["functionCall"]
                block = ToolUseBlock(name=fc.get("name", ""), input=fc.get("args") or {})
                logger.debug("Gemini function call %r assigned id %s", block.name, block.id)
                content.append(block)

        metadata: dict[str, Any] = {
            "model": response.get("modelVersion"),
            "stop_reason": candidate.get("finishReason"),
        }
        if response.get("usageMetadata"):
            metadata["usage"] = response["usageMetadata"]

        return Message(role="assistant", content=content, metadata=metadata)

    def tools_to_provider(self, tools: Sequence[ToolLike] | None) -> list[dict[str, Any]]:
        return to_gemini_tools_array(tools)

    def tools_from_provider(self, payload: Any) -> list[Tool]:
        return from_gemini_tools(payload)

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
        """Build a complete generateContent body.

        ``model`` and ``stream`` select the URL and are not part of the body.
        """
        body = self.to_provider(messages, system_prompt)
        if tools:
            body["tools"] = self.tools_to_provider(tools)

        generation_config: dict[str, Any] = {}
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        if temperature is not None:
            generation_config["temperature"] = temperature
        if generation_config:
            body["generationConfig"] = generation_config
        return body

    def parse_stream(self, source: AsyncIterable[bytes]) -> AsyncIterator[StreamChunk]:
        return parse_gemini_stream(source)

    def translate_error(self, error: Any) -> AgentRouterError:
        return translate_gemini_error(error)

    def _message_to_gemini(self, msg: Message) -> dict[str, Any]:
        """Convert a single canonical message to a Gemini content."""
        role = "model" if msg.role == "assistant" else "user"
        if isinstance(msg.content, str):
            return {"role": role, "parts": [{"text": msg.content}]}
        return {"role": role, "parts": [self._block_to_part(block) for block in msg.content]}

    def _block_to_part(self, block: ContentBlock) -> dict[str, Any]:
        if isinstance(block, TextBlock):
            return {"text": block.text}
        if isinstance(block, ToolUseBlock):
            return {"functionCall": {"name": block.name, "args": block.input}}
        if isinstance(block, ToolResultBlock):
            return {
                "functionResponse": {
                    "name": block.tool_use_id,
                    "response": {"result": block.content},
                }
            }
        return {"text": json.dumps(block.model_dump())}

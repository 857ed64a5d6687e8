"""Canonical model — the provider-agnostic shapes every transpiler targets.

Messages, content blocks and tools mirror the content-block protocol's
native shape; the other providers are reached by re-nesting. Stream chunks
are the wire-independent vocabulary produced by the streaming normalizers.
"""

import json
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field


def new_tool_use_id() -> str:
    """Return a fresh tool-use handle for providers that do not supply one."""
    return f"toolu_{uuid4().hex[:24]}"


# ---------------------------------------------------------------------------
# Content Blocks — typed units of message content
# ---------------------------------------------------------------------------


class TextBlock(BaseModel):
    """Plain text content."""

    type: Literal["text"] = "text"
    text: str = ""


class ToolUseBlock(BaseModel):
    """The model asks for tool ``name`` to be called with ``input``."""

    type: Literal["tool_use"] = "tool_use"
    id: str = Field(default_factory=new_tool_use_id)
    name: str
    input: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())


class ToolResultBlock(BaseModel):
    """The result of a tool call, referencing the ``ToolUseBlock.id`` it answers."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str = ""


def tool_result_text(content: Any) -> str:
    """Flatten a wire tool-result payload (string or list of text blocks) to a string."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            item.get("text", "") if isinstance(item, dict) else str(item) for item in content
        )
    return json.dumps(content)


ContentBlock = Annotated[
    TextBlock | ToolUseBlock | ToolResultBlock,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Message — one turn of the conversation
# ---------------------------------------------------------------------------


class Message(BaseModel):
    """A single conversation turn.

    ``content`` is either a plain string or a list of content blocks.
    ``metadata`` is never sent to a provider; ``from_provider`` fills it with
    response details (id, model, stop reason, usage).
    """

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock] = ""
    metadata: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())

    @classmethod
    def user(cls, content: str | list[ContentBlock]) -> "Message":
        """Create a user message."""
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls,
        text: str = "",
        tool_uses: list[ToolUseBlock] | None = None,
    ) -> "Message":
        """Create an assistant message, optionally requesting tool calls."""
        if not tool_uses:
            return cls(role="assistant", content=text)
        blocks: list[ContentBlock] = [TextBlock(text=text)] if text else []
        blocks.extend(tool_uses)
        return cls(role="assistant", content=blocks)

    @property
    def blocks(self) -> list[ContentBlock]:
        """Content as a block list (a plain string becomes one text block)."""
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)]
        return list(self.content)

    @property
    def text(self) -> str:
        """Text blocks joined by newline."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        if isinstance(self.content, str):
            return []
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def tool_results(self) -> list[ToolResultBlock]:
        if isinstance(self.content, str):
            return []
        return [b for b in self.content if isinstance(b, ToolResultBlock)]

    @property
    def has_tool_use(self) -> bool:
        return bool(self.tool_uses)

    @property
    def has_tool_result(self) -> bool:
        return bool(self.tool_results)


# ---------------------------------------------------------------------------
# Tools — function schemas the model may call
# ---------------------------------------------------------------------------


class ToolInputSchema(BaseModel):
    """JSON Schema of a tool's input.

    Fields are loose so that malformed definitions reach
    :func:`~agentrouter.core.interface.tools.validate_tool`, which reports
    them with their index.
    """

    type: str = "object"
    properties: dict[str, Any] | None = None
    required: list[str] | None = None


class Tool(BaseModel):
    """A tool definition in the canonical (content-block protocol) shape."""

    name: str = ""
    description: str = ""
    input_schema: ToolInputSchema = Field(default_factory=ToolInputSchema)


# ---------------------------------------------------------------------------
# Stream Chunks — normalized streaming events
# ---------------------------------------------------------------------------


class TextDelta(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    text: str


class InputJsonDelta(BaseModel):
    """A fragment of a tool call's JSON arguments."""

    type: Literal["input_json_delta"] = "input_json_delta"
    partial_json: str


StreamDelta = Annotated[TextDelta | InputJsonDelta, Field(discriminator="type")]


class ContentBlockStart(BaseModel):
    """Opens channel ``index`` with the block's initial shape."""

    type: Literal["content_block_start"] = "content_block_start"
    index: int
    content_block: ContentBlock


class ContentBlockDelta(BaseModel):
    """Appends to channel ``index``."""

    type: Literal["content_block_delta"] = "content_block_delta"
    index: int
    delta: StreamDelta


class MessageStop(BaseModel):
    """Terminal event, emitted exactly once per stream.

    ``stop_reason`` and ``usage`` carry whatever the provider reported, when
    it reported anything.
    """

    type: Literal["message_stop"] = "message_stop"
    stop_reason: str | None = None
    usage: dict[str, Any] | None = None


StreamChunk = Annotated[
    ContentBlockStart | ContentBlockDelta | MessageStop,
    Field(discriminator="type"),
]

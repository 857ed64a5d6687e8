"""Shared CLI output formatters."""

from __future__ import annotations

import json
from collections.abc import Sequence

from rich.console import Console
from rich.table import Table

from agentrouter.core.interface.models import (
    ContentBlockDelta,
    ContentBlockStart,
    Message,
    MessageStop,
    StreamChunk,
    TextBlock,
    TextDelta,
    ToolResultBlock,
    ToolUseBlock,
)

console = Console()


def print_chunks_table(chunks: Sequence[StreamChunk]) -> None:
    """Pretty-print normalized stream chunks as a table."""
    table = Table(title="Stream Chunks")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Index", justify="right")
    table.add_column("Payload")

    for position, chunk in enumerate(chunks):
        if isinstance(chunk, ContentBlockStart):
            index = str(chunk.index)
            block = chunk.content_block
            payload = f"{block.type} {block.name}" if isinstance(block, ToolUseBlock) else block.type
        elif isinstance(chunk, ContentBlockDelta):
            index = str(chunk.index)
            delta = chunk.delta
            payload = delta.text if isinstance(delta, TextDelta) else delta.partial_json
        elif isinstance(chunk, MessageStop):
            index = "-"
            payload = chunk.stop_reason or ""
        else:
            raise TypeError(f"Unknown stream chunk: {chunk!r}")
        table.add_row(str(position), chunk.type, index, _truncate(repr(payload)))

    console.print(table)


def print_message(message: Message) -> None:
    """Pretty-print a canonical message block by block."""
    console.print(f"\n[bold]{message.role.capitalize()} message[/bold]")
    for block in message.blocks:
        if isinstance(block, TextBlock):
            console.print(f"  [green]text[/green] {_truncate(block.text)}")
        elif isinstance(block, ToolUseBlock):
            args = json.dumps(block.input)
            console.print(f"  [cyan]tool_use[/cyan] {block.name}({_truncate(args)}) id={block.id}")
        elif isinstance(block, ToolResultBlock):
            console.print(f"  [magenta]tool_result[/magenta] {block.tool_use_id}: {_truncate(block.content)}")

    stop_reason = message.metadata.get("stop_reason")
    if stop_reason:
        console.print(f"  Stop reason: {stop_reason}")
    usage = message.metadata.get("usage")
    if usage:
        console.print(f"  Usage: {json.dumps(usage)}")


def print_json(data: object) -> None:
    console.print_json(json.dumps(data, default=str))


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."

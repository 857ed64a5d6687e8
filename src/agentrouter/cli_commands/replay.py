"""``agentrouter replay`` — normalize a captured SSE stream file."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterator
from pathlib import Path

import click

from agentrouter.cli_commands._output import console, print_chunks_table, print_json, print_message
from agentrouter.core.interface.models import Message, StreamChunk
from agentrouter.core.interface.providers import PROVIDER_PROTOCOLS
from agentrouter.core.interface.streaming import StreamAccumulator, normalize_stream
from agentrouter.errors import AgentRouterError


async def _read_in_pieces(data: bytes, size: int) -> AsyncIterator[bytes]:
    for start in range(0, len(data), size):
        yield data[start : start + size]


async def replay_stream(
    data: bytes, provider: str, *, chunk_size: int
) -> tuple[list[StreamChunk], Message]:
    """Normalize *data* as *provider*'s SSE stream, read *chunk_size* bytes at a time."""
    chunks: list[StreamChunk] = []
    acc = StreamAccumulator()
    async for chunk in normalize_stream(_read_in_pieces(data, chunk_size), provider):
        chunks.append(chunk)
        acc.add(chunk)
    return chunks, acc.to_message()


@click.command("replay")
@click.argument("sse_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--provider",
    "-p",
    type=click.Choice(sorted(PROVIDER_PROTOCOLS)),
    required=True,
    help="Provider that produced the stream.",
)
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    default=4096,
    show_default=True,
    help="Bytes per simulated network read.",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def replay(sse_file: str, provider: str, chunk_size: int, as_json: bool) -> None:
    """Replay SSE_FILE through the streaming normalizer.

    SSE_FILE holds the raw response body of a streaming request.
    """
    data = Path(sse_file).read_bytes()
    try:
        chunks, message = asyncio.run(replay_stream(data, provider, chunk_size=chunk_size))
    except AgentRouterError as exc:
        console.print(f"[red]{exc.code}:[/red] {exc.message}")
        sys.exit(1)

    if as_json:
        print_json(
            {
                "chunks": [chunk.model_dump() for chunk in chunks],
                "message": message.model_dump(),
            }
        )
        return

    print_chunks_table(chunks)
    print_message(message)

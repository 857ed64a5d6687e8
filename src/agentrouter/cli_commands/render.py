"""``agentrouter render`` — print the provider request body for a conversation file."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
import yaml
from pydantic import BaseModel, Field, ValidationError

from agentrouter.cli_commands._output import console, print_json
from agentrouter.core.interface.models import Message, Tool
from agentrouter.core.interface.providers import PROVIDER_PROTOCOLS
from agentrouter.core.interface.transpiler import get_transpiler
from agentrouter.errors import AgentRouterError


class Conversation(BaseModel):
    """A canonical conversation as stored in a YAML or JSON file."""

    system: str | None = None
    messages: list[Message] = Field(default_factory=lambda: list[Message]())
    tools: list[Tool] = Field(default_factory=lambda: list[Tool]())


def load_conversation(path: Path) -> Conversation:
    """Parse *path* (``.json`` as JSON, anything else as YAML)."""
    raw = path.read_text(encoding="utf-8")
    data = json.loads(raw) if path.suffix == ".json" else yaml.safe_load(raw)
    return Conversation.model_validate(data or {})


@click.command("render")
@click.argument("conversation_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--provider",
    "-p",
    type=click.Choice(sorted(PROVIDER_PROTOCOLS)),
    required=True,
    help="Target provider.",
)
@click.option("--model", "-m", default="model", show_default=True, help="Model name for the body.")
@click.option("--max-tokens", type=int, default=None, help="Output token limit.")
@click.option("--temperature", type=float, default=None, help="Sampling temperature.")
@click.option("--stream", is_flag=True, help="Render a streaming request.")
def render(
    conversation_file: str,
    provider: str,
    model: str,
    max_tokens: int | None,
    temperature: float | None,
    stream: bool,
) -> None:
    """Render the request body PROVIDER would receive for CONVERSATION_FILE.

    CONVERSATION_FILE is a YAML or JSON document with ``system``,
    ``messages`` and ``tools`` keys.
    """
    try:
        conversation = load_conversation(Path(conversation_file))
    except (OSError, ValueError, yaml.YAMLError, ValidationError) as exc:
        console.print(f"[red]Error loading conversation:[/red] {exc}")
        sys.exit(1)

    try:
        body = get_transpiler(provider).build_request(
            model=model,
            messages=conversation.messages,
            system_prompt=conversation.system,
            tools=conversation.tools,
            max_tokens=max_tokens,
            temperature=temperature,
            stream=stream,
        )
    except AgentRouterError as exc:
        console.print(f"[red]{exc.code}:[/red] {exc.message}")
        sys.exit(1)

    print_json(body)

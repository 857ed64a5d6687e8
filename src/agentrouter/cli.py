"""agentrouter CLI entrypoint."""

from __future__ import annotations

import click

from agentrouter import __version__


@click.group()
@click.version_option(version=__version__, prog_name="agentrouter")
def main() -> None:
    """agentrouter — offline tools for the provider translation layer."""


from agentrouter.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Flux CLI - inspect a project's event-sourced history

Main entrypoint for the flux command-line tool.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from flux.logging_config import setup_logging
from flux_cli.commands import checkpoint, log, replay, state

app = typer.Typer(
    name="flux",
    help="Inspect and maintain a Flux Signal log",
    add_completion=False,
)

console = Console()

app.add_typer(log.app, name="log", help="Signal log operations")
app.add_typer(checkpoint.app, name="checkpoint", help="Checkpoint management")

app.command("state")(state.state_command)
app.command("replay")(replay.replay_command)
app.command("diff")(replay.diff_command)


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="text or json (default: FLUX_LOG_FORMAT)"),
):
    """Configure logging before any command runs."""
    setup_logging(level="DEBUG" if verbose else None, log_format=log_format)


@app.command()
def version():
    """Show version information."""
    from flux import __version__ as engine_version
    from flux_cli import __version__

    table = Table(show_header=False, box=None)
    table.add_row("[bold]Flux CLI[/bold]", f"v{__version__}")
    table.add_row("Engine", f"v{engine_version}")
    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()

"""
Helpers shared by CLI commands.
"""

import json
from pathlib import Path
from typing import Any, Iterable, Optional

import typer
from rich.console import Console

from flux.core.diagnostics import Diagnostic
from flux.core.errors import FluxError
from flux.project import FluxProject

console = Console()
err_console = Console(stderr=True)

PROJECT_OPTION = typer.Option(
    None,
    "--project",
    "-C",
    help="Project directory (default: nearest directory with a .flux folder)",
)


def open_project(path: Optional[Path]) -> FluxProject:
    try:
        return FluxProject.open(path)
    except FluxError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def print_diagnostics(diagnostics: Iterable[Diagnostic]) -> None:
    diagnostics = list(diagnostics)
    if not diagnostics:
        return
    console.print(f"\n[bold yellow]Diagnostics ({len(diagnostics)}):[/bold yellow]")
    for d in diagnostics:
        where = f" [dim]{d.signal_id}[/dim]" if d.signal_id else ""
        console.print(f"  [yellow]{d.kind}[/yellow]{where}: {d.message}")


def fail(message: str, json_output: bool, code: int = 2) -> None:
    if json_output:
        print_json({"error": message})
    else:
        err_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code)

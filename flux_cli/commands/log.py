"""
Signal log commands: tail, inspect
"""

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.syntax import Syntax
from rich.table import Table

from flux.core.diagnostics import Diagnostic
from flux.core.errors import StoreError
from flux.replay.filters import select

from .common import PROJECT_OPTION, console, fail, open_project, print_diagnostics, print_json

app = typer.Typer()


@app.command()
def tail(
    project_dir: Optional[Path] = PROJECT_OPTION,
    lines: int = typer.Option(20, "--lines", "-n", help="Number of signals to show"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Show the most recent signals.

    Examples:
        flux log tail
        flux log tail --lines 50 --json
    """
    project = open_project(project_dir)
    diagnostics: List[Diagnostic] = []
    try:
        signals = list(project.signals(diagnostics))
    except StoreError as e:
        fail(str(e), json_output)
    if lines > 0:
        signals = signals[-lines:]

    if json_output:
        print_json(
            {
                "signals": [s.to_dict() for s in signals],
                "count": len(signals),
                "diagnostics": [d.to_dict() for d in diagnostics],
            }
        )
        return

    if not signals:
        console.print("[yellow]Signal log is empty[/yellow]")
    else:
        table = Table(title=f"Signal Log: {project.store.path}")
        table.add_column("ID", style="dim")
        table.add_column("Type", style="green")
        table.add_column("Timestamp", style="cyan")
        table.add_column("Ref", style="yellow")
        for s in signals:
            table.add_row(s.id, s.type, s.timestamp, s.ref_id or "")
        console.print(table)
        console.print(f"\n[bold]Shown:[/bold] {len(signals)}")
    print_diagnostics(diagnostics)


@app.command()
def inspect(
    project_dir: Optional[Path] = PROJECT_OPTION,
    signal_type: Optional[List[str]] = typer.Option(None, "--type", "-t", help="Filter by signal type"),
    since: Optional[str] = typer.Option(None, "--since", help="Only signals at or after this timestamp"),
    until: Optional[str] = typer.Option(None, "--until", help="Only signals at or before this timestamp"),
    show_payload: bool = typer.Option(False, "--payload", "-p", help="Show full payload"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Inspect the Signal log with filters.

    Examples:
        flux log inspect --type exec_start --type exec_end
        flux log inspect --since 2024-05-01T00:00:00+00:00 --payload
    """
    project = open_project(project_dir)
    diagnostics: List[Diagnostic] = []
    try:
        signals = list(select(project.signals(diagnostics), types=signal_type, since=since, until=until))
    except (StoreError, ValueError) as e:
        fail(str(e), json_output)

    if json_output:
        records = []
        for s in signals:
            rec = s.to_dict()
            if not show_payload:
                rec["payload"] = "<hidden>"
            records.append(rec)
        print_json(
            {
                "signals": records,
                "count": len(records),
                "diagnostics": [d.to_dict() for d in diagnostics],
            }
        )
        return

    if not signals:
        console.print("[yellow]No signals match the filters[/yellow]")
    for s in signals:
        console.print(f"\n[bold cyan]Signal {s.id}[/bold cyan]")
        console.print(f"  Type: [green]{s.type}[/green]")
        console.print(f"  Timestamp: {s.timestamp}")
        if s.ref_id:
            console.print(f"  Ref: [yellow]{s.ref_id}[/yellow]")
        if show_payload:
            console.print("  Payload:")
            console.print(
                Syntax(json.dumps(s.payload, indent=2, ensure_ascii=False), "json", theme="monokai")
            )
    if signals:
        console.print(f"\n[bold]Total signals:[/bold] {len(signals)}")
    print_diagnostics(diagnostics)

"""
Replay and diff commands.
"""

from pathlib import Path
from typing import List, Optional

import typer
from rich.table import Table

from flux.checkpoint.diff import Change
from flux.core.errors import FluxError
from flux.replay import ReplayMode

from .common import PROJECT_OPTION, console, fail, open_project, print_diagnostics, print_json

_MODES = {"dry-run": ReplayMode.DRY_RUN, "diff": ReplayMode.DIFF}


def _short(value) -> str:
    text = "-" if value is None else str(value)
    return text if len(text) <= 60 else text[:57] + "..."


def _changes_table(title: str, changes: List[Change]) -> Table:
    table = Table(title=title)
    table.add_column("Path", style="yellow")
    table.add_column("Kind")
    table.add_column("Before", style="red")
    table.add_column("After", style="green")
    for c in changes:
        table.add_row(c.path, c.kind, _short(c.before), _short(c.after))
    return table


def replay_command(
    project_dir: Optional[Path] = PROJECT_OPTION,
    source: Optional[Path] = typer.Option(None, "--source", "-s", help="Signal log to replay (default: live log)"),
    mode: str = typer.Option("dry-run", "--mode", "-m", help="dry-run or diff"),
    signal_type: Optional[List[str]] = typer.Option(None, "--type", "-t", help="Only replay these types"),
    since: Optional[str] = typer.Option(None, "--since", help="Only signals at or after this timestamp"),
    until: Optional[str] = typer.Option(None, "--until", help="Only signals at or before this timestamp"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Dry-run a Signal sequence, or check it for drift against the live state.

    Execute mode needs a caller-supplied executor and is only available
    through the library API.

    Examples:
        flux replay --type exec_start
        flux replay --source other/.flux/signals.jsonl --mode diff
    """
    if mode not in _MODES:
        fail(f"unknown mode {mode!r} (choose dry-run or diff)", json_output)
    project = open_project(project_dir)
    try:
        report = project.replay(source, _MODES[mode], types=signal_type, since=since, until=until)
    except (FluxError, ValueError) as e:
        fail(str(e), json_output)

    if json_output:
        print_json(report.to_dict())
    elif report.mode is ReplayMode.DRY_RUN:
        table = Table(title=f"Planned effects ({len(report)} of {report.considered} signals)")
        table.add_column("Signal", style="dim")
        table.add_column("Type", style="green")
        table.add_column("Effect")
        for entry in report.entries:
            table.add_row(entry.signal_id, entry.effect.type, entry.effect.description)
        console.print(table)
        print_diagnostics(report.diagnostics)
    else:
        if report.drifted:
            console.print(_changes_table("Drift (live -> replayed)", list(report.changes)))
        else:
            console.print("[green]✓ No drift[/green]")
        print_diagnostics(report.diagnostics)

    raise typer.Exit(1 if report.drifted else 0)


def diff_command(
    base: str = typer.Argument(..., help="Checkpoint name or signal id"),
    project_dir: Optional[Path] = PROJECT_OPTION,
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Show what changed since a checkpoint or signal.

    Examples:
        flux diff before-upgrade
    """
    project = open_project(project_dir)
    try:
        result = project.diff_since(base)
    except FluxError as e:
        fail(str(e), json_output)

    if json_output:
        print_json(
            {
                "base": result.base,
                "found": result.found,
                "changes": [c.to_dict() for c in result.changes],
                "diagnostics": [d.to_dict() for d in result.diagnostics],
            }
        )
    elif not result.found:
        print_diagnostics(result.diagnostics)
    elif result.changes:
        console.print(_changes_table(f"Changes since {base}", list(result.changes)))
        print_diagnostics(result.diagnostics)
    else:
        console.print(f"[green]No changes since {base}[/green]")

    raise typer.Exit(0 if result.found else 2)

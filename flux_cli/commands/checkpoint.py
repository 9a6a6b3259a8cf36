"""
Checkpoint commands: create, list, verify
"""

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from flux.core.errors import FluxError

from .common import PROJECT_OPTION, console, fail, open_project, print_json

app = typer.Typer()


@app.command()
def create(
    name: str = typer.Argument(..., help="Checkpoint name"),
    project_dir: Optional[Path] = PROJECT_OPTION,
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Snapshot the current state under NAME.

    Examples:
        flux checkpoint create before-upgrade
    """
    project = open_project(project_dir)
    try:
        cp = project.checkpoint(name)
    except (FluxError, ValueError) as e:
        fail(str(e), json_output)

    if json_output:
        print_json(cp.info().to_dict())
        return
    console.print(f"[green]✓ Checkpoint '{cp.name}' created[/green] (seq {cp.sequence})")
    console.print(f"  Last signal: [dim]{cp.last_id or '-'}[/dim]")
    console.print(f"  Signals: [cyan]{cp.signal_count}[/cyan]")
    console.print(f"  State hash: [yellow]{cp.state_hash}[/yellow]")


@app.command("list")
def list_checkpoints(
    project_dir: Optional[Path] = PROJECT_OPTION,
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List checkpoints, oldest first."""
    project = open_project(project_dir)
    infos = project.list_checkpoints()

    if json_output:
        print_json({"checkpoints": [i.to_dict() for i in infos], "count": len(infos)})
        return
    if not infos:
        console.print("[yellow]No checkpoints[/yellow]")
        return

    table = Table(title="Checkpoints")
    table.add_column("Seq", style="cyan", justify="right")
    table.add_column("Name", style="green")
    table.add_column("Signals", justify="right")
    table.add_column("Last signal", style="dim")
    table.add_column("Created")
    for info in infos:
        table.add_row(str(info.sequence), info.name, str(info.signal_count), info.last_id or "-", info.created_at)
    console.print(table)


@app.command()
def verify(
    name: str = typer.Argument(..., help="Checkpoint name"),
    project_dir: Optional[Path] = PROJECT_OPTION,
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Re-reduce the log and check that NAME is reproducible.

    Exit codes: 0 valid, 1 invalid, 2 not found or error.
    """
    project = open_project(project_dir)
    try:
        result = project.verify(name)
    except FluxError as e:
        fail(str(e), json_output)
    if result is None:
        fail(f"checkpoint not found: {name}", json_output)

    if json_output:
        print_json(
            {
                "name": name,
                "valid": result.valid,
                "state_hash_valid": result.state_hash_valid,
                "watermark_found": result.watermark_found,
                "replay_state_valid": result.replay_state_valid,
                "error": result.error,
            }
        )
    elif result.valid:
        console.print(f"[green]✓ Checkpoint '{name}' is reproducible[/green]")
    else:
        console.print(f"[red]✗ Checkpoint '{name}' failed verification:[/red] {result.error}")

    raise typer.Exit(0 if result.valid else 1)

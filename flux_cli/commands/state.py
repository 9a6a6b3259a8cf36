"""
State command: show the state derived from the Signal log.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from flux.core.clock import fmt_duration
from flux.core.errors import StoreError

from .common import PROJECT_OPTION, console, fail, open_project, print_diagnostics, print_json


def state_command(
    project_dir: Optional[Path] = PROJECT_OPTION,
    full: bool = typer.Option(False, "--full", help="Reduce the whole log, ignoring checkpoints"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Show the current state (project, executions, environment, statistics).

    Examples:
        flux state
        flux state --json
    """
    project = open_project(project_dir)
    try:
        result = project.load_state(use_checkpoint=not full)
    except StoreError as e:
        fail(str(e), json_output)
    state = result.state
    diagnostics = list(result.diagnostics) + list(state.diagnostics)

    if json_output:
        out = state.to_dict()
        out["read_diagnostics"] = [d.to_dict() for d in result.diagnostics]
        print_json(out)
        return

    console.print(f"[bold]Project:[/bold] {state.project.get('path', project.root)}")
    if state.project.get("initialized_at"):
        console.print(f"  Initialized: {state.project['initialized_at']}")
    if state.project.get("runtime_version"):
        console.print(f"  Runtime: {state.project['runtime_version']}")
    console.print(f"  Signals: [cyan]{state.signal_count}[/cyan]  Last: [dim]{state.last_id or '-'}[/dim]")

    if state.stats:
        table = Table(title="Commands")
        table.add_column("Command", style="green")
        table.add_column("Runs", justify="right")
        table.add_column("OK", justify="right", style="green")
        table.add_column("Failed", justify="right", style="red")
        table.add_column("Avg", justify="right", style="cyan")
        table.add_column("Last run", style="dim")
        for st in state.command_stats():
            table.add_row(
                st.command,
                str(st.runs),
                str(st.successes),
                str(st.failures),
                fmt_duration(st.avg_duration_ms),
                st.last_run,
            )
        console.print(table)

    if state.environment:
        env = Table(title="Environment")
        env.add_column("Key", style="yellow")
        env.add_column("Value")
        for key in sorted(state.environment):
            env.add_row(key, str(state.environment[key]))
        console.print(env)

    failed = state.failed_executions()
    if failed:
        console.print(f"\n[bold red]Failed ({len(failed)}):[/bold red]")
        for ex in failed:
            console.print(f"  {ex.display} (exit: {ex.exit_code}, {fmt_duration(ex.duration_ms)})")

    incomplete = state.incomplete_executions()
    if incomplete:
        console.print(f"\n[bold yellow]Incomplete ({len(incomplete)}):[/bold yellow]")
        for ex in incomplete:
            console.print(f"  {ex.display} (started {ex.started_at})")

    print_diagnostics(diagnostics)

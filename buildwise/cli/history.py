"""CLI commands for canonical snapshot history.

Usage:
    buildwise history <project_id>
    buildwise rollback <project_id> <version> [--yes]
"""

from __future__ import annotations

import questionary
import typer
from rich.console import Console
from rich.table import Table

from buildwise.cli.client import run_with_store
from buildwise.config import settings
from buildwise.errors import BuildWiseError
from buildwise.snapshots.service import get_snapshot_history, rollback_to_version

console = Console()


def history(
    project_id: str = typer.Argument(..., help="Project whose versions to list."),
) -> None:
    """List every snapshot version of a project, newest first."""
    try:
        snapshots = run_with_store(lambda store: get_snapshot_history(store, project_id))
    except BuildWiseError as exc:
        console.print(f"[red]Could not load history: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    if not snapshots:
        console.print(f"[yellow]Project {project_id} has no snapshots yet.[/yellow]")
        return

    table = Table(title=f"Snapshot history: {project_id}")
    table.add_column("Version", justify="right")
    table.add_column("Active")
    table.add_column("Author")
    table.add_column("Created")
    table.add_column("Nodes", justify="right")
    table.add_column("Edges", justify="right")
    table.add_column("Rollback of", justify="right", style="dim")
    for snap in snapshots:
        table.add_row(
            f"v{snap.version}",
            "[green]*[/green]" if snap.active else "",
            snap.author,
            snap.created_at.strftime("%Y-%m-%d %H:%M"),
            str(len(snap.nodes)),
            str(len(snap.edges)),
            f"v{snap.rollback_from}" if snap.rollback_from else "",
        )
    console.print(table)


def rollback(
    project_id: str = typer.Argument(..., help="Project to roll back."),
    version: int = typer.Argument(..., min=1, help="Version to restore."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    actor: str = typer.Option(
        settings.default_actor,
        "--actor",
        envvar="BUILDWISE_ACTOR",
        help="User id recorded on the audit entry.",
    ),
) -> None:
    """Restore an earlier version as the newest active snapshot."""
    if not yes:
        confirmed = questionary.confirm(
            f"Create a new version of {project_id} copying v{version}?", default=False
        ).ask()
        if not confirmed:
            console.print("[yellow]Rollback cancelled.[/yellow]")
            return

    try:
        snapshot = run_with_store(
            lambda store: rollback_to_version(store, project_id, version, actor)
        )
    except BuildWiseError as exc:
        console.print(f"[red]Rollback failed: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    console.print(
        f"[green]Rolled back to v{version}; canonical is now v{snapshot.version}.[/green]"
    )

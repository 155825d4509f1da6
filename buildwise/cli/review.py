"""CLI commands for reviewing and resolving module conflicts.

``buildwise conflicts`` shows every conflict between a module and the active
snapshot in a table, then walks through them one by one offering the actions
valid for each conflict kind.  ``buildwise resolve`` applies one action
directly and is meant for scripts.

Usage:
    buildwise conflicts <project_id> <module_id> [--actor <user>]
    buildwise resolve <project_id> <conflict_id> <action> [--rename-to <id>]
"""

from __future__ import annotations

import questionary
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from buildwise.cli.client import run_with_store, short
from buildwise.config import settings
from buildwise.conflict.detector import Conflict, detect_module_conflicts
from buildwise.conflict.ids import NODE, parse_conflict_id
from buildwise.conflict.resolver import (
    APPLY_MODULE,
    KEEP_CANONICAL,
    MERGE_META,
    RENAME_NEW,
    ResolveResult,
    resolve_conflict,
)
from buildwise.errors import BuildWiseError

console = Console()

SKIP = "Skip (resolve later)"

_ACTION_LABELS = {
    KEEP_CANONICAL: "Keep canonical",
    APPLY_MODULE: "Apply module version",
    MERGE_META: "Merge meta (module wins)",
    RENAME_NEW: "Rename module node",
}


def _conflict_table(conflicts: list[Conflict]) -> Table:
    table = Table(title="Conflicts", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Kind", style="bold")
    table.add_column("Target")
    table.add_column("Canonical", style="cyan")
    table.add_column("Module", style="magenta")
    for idx, conflict in enumerate(conflicts, start=1):
        table.add_row(
            str(idx),
            conflict.kind,
            conflict.node_id or conflict.edge_id or "",
            short(conflict.existing_value),
            short(conflict.incoming_value),
        )
    return table


def _print_result(result: ResolveResult) -> None:
    if not result.ok:
        console.print(f"[red]Resolution failed: {result.message}[/red]\n")
        return
    version = result.snapshot.version if result.snapshot else None
    console.print(
        f"[green]Resolved with {result.audit.action if result.audit else '?'}"
        f"{f' - canonical now at v{version}' if version else ''}.[/green]\n"
    )


def _resolve(project_id: str, conflict_id: str, action: str, params: dict, actor: str) -> ResolveResult:
    return run_with_store(
        lambda store: resolve_conflict(
            store,
            project_id=project_id,
            conflict_id=conflict_id,
            action=action,
            params=params,
            actor=actor,
        )
    )


def conflicts(
    project_id: str = typer.Argument(..., help="Project to review."),
    module_id: str = typer.Argument(..., help="Module whose conflicts to show."),
    actor: str = typer.Option(
        settings.default_actor,
        "--actor",
        envvar="BUILDWISE_ACTOR",
        help="User id recorded on audit entries.",
    ),
) -> None:
    """Show conflicts between a module and the canonical snapshot, then resolve them."""
    try:
        report = run_with_store(lambda store: detect_module_conflicts(store, project_id, module_id))
    except BuildWiseError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    if not report.has_conflicts:
        console.print(Panel(
            "[green]No conflicts. The module agrees with the canonical snapshot.[/green]",
            title="BuildWise",
            border_style="green",
        ))
        return

    console.print(_conflict_table(report.conflicts))

    resolved_count = 0
    failed_count = 0
    skipped_count = 0
    renamed: set[str] = set()

    for idx, conflict in enumerate(report.conflicts, start=1):
        console.print(Panel(
            f"[bold]{conflict.reason}[/bold]\n\n[dim]{conflict.id}[/dim]",
            title=f"Conflict {idx}/{len(report.conflicts)}",
            border_style="blue",
        ))

        ref = parse_conflict_id(conflict.id)
        if ref.kind == NODE and ref.node_id in renamed:
            console.print(
                f"[dim]Module node {ref.node_id} was renamed and no longer collides - skipping.[/dim]\n"
            )
            skipped_count += 1
            continue

        allowed = [KEEP_CANONICAL, APPLY_MODULE, MERGE_META]
        if ref.kind == NODE:
            allowed.append(RENAME_NEW)

        choice = questionary.select(
            "How should this conflict be resolved?",
            choices=[_ACTION_LABELS[a] for a in allowed] + [SKIP],
        ).ask()

        # None means Ctrl+C or EOF
        if choice is None:
            console.print("\n[yellow]Review interrupted.[/yellow]")
            break
        if choice == SKIP:
            skipped_count += 1
            continue

        action = next(a for a, label in _ACTION_LABELS.items() if label == choice)
        params: dict = {}
        if action == RENAME_NEW:
            rename_to = questionary.text("New id for the module node:").ask()
            if not rename_to:
                console.print("[yellow]No id given - skipping.[/yellow]")
                skipped_count += 1
                continue
            params["renameTo"] = rename_to

        result = _resolve(project_id, conflict.id, action, params, actor)
        _print_result(result)
        if result.ok:
            resolved_count += 1
            if action == RENAME_NEW:
                renamed.add(ref.node_id)
        else:
            failed_count += 1

    console.print(Panel(
        f"[bold green]Review session complete![/bold green]\n\n"
        f"Resolved: {resolved_count}\n"
        f"Failed:   {failed_count}\n"
        f"Skipped:  {skipped_count}",
        title="Session Summary",
        border_style="green",
    ))


def resolve(
    project_id: str = typer.Argument(..., help="Project the conflict belongs to."),
    conflict_id: str = typer.Argument(..., help="Conflict id as printed by `conflicts`."),
    action: str = typer.Argument(..., help="keep_canonical | apply_module | merge_meta | rename_new"),
    rename_to: str | None = typer.Option(None, "--rename-to", help="New node id for rename_new."),
    actor: str = typer.Option(
        settings.default_actor,
        "--actor",
        envvar="BUILDWISE_ACTOR",
        help="User id recorded on audit entries.",
    ),
) -> None:
    """Resolve a single conflict without prompting."""
    params = {"renameTo": rename_to} if rename_to else {}
    result = _resolve(project_id, conflict_id, action, params, actor)
    _print_result(result)
    if not result.ok:
        raise typer.Exit(code=1)

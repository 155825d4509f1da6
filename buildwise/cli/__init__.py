"""BuildWise CLI: review conflicts and manage canonical snapshot history.

Entry point registered in pyproject.toml:
    buildwise = "buildwise.cli:app"

Commands:
    buildwise conflicts  - list a module's conflicts and resolve them interactively
    buildwise resolve    - resolve one conflict non-interactively
    buildwise history    - show snapshot versions
    buildwise rollback   - roll canonical state back to an earlier version

Usage:
    buildwise --help
    BUILDWISE_ACTOR=alice buildwise conflicts <project_id> <module_id>
"""

import typer

from buildwise.cli.history import history, rollback
from buildwise.cli.review import conflicts, resolve

app = typer.Typer(
    name="buildwise",
    help="BuildWise CLI: resolve architecture conflicts and manage snapshots",
    no_args_is_help=True,
)

app.command()(conflicts)
app.command()(resolve)
app.command()(history)
app.command()(rollback)

"""Status command implementation.

Shows, without changing anything, what `dotctl apply` would do for each
resource. Internally this is a dry-run reconciliation.
"""

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from dotctl.cli.display import format_decision, format_status
from dotctl.cli.types import build_reconciler, dotfiles_root_override, select_resources
from dotctl.core.conflict import inspect_target
from dotctl.core.manifest import require_manifest
from dotctl.models.outcome import DeploymentOutcome
from dotctl.utils.formatting import console, print_info

app = typer.Typer(
    help="Show what apply would change.",
    invoke_without_command=True,
)


def _current_state(outcome: DeploymentOutcome) -> str:
    if outcome.applied_path is None:
        return "[muted]?[/muted]"
    return inspect_target(Path(outcome.applied_path)).value.replace("_", " ")


def _create_status_table(outcomes: list[DeploymentOutcome]) -> Table:
    table = Table(
        title="Dotfiles Status",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("", width=6, justify="center")
    table.add_column("Resource", no_wrap=True)
    table.add_column("Target")
    table.add_column("Current", style="muted")
    table.add_column("Next apply")

    for outcome in outcomes:
        table.add_row(
            format_status(outcome),
            outcome.resource_id,
            f"[muted]{escape(outcome.applied_path or '-')}[/muted]",
            _current_state(outcome),
            format_decision(outcome) if outcome.success else f"[error]{escape(outcome.error or '')}[/error]",
        )
    return table


@app.callback(invoke_without_command=True)
def status(
    ctx: typer.Context,
    resource: Annotated[
        list[str] | None,
        typer.Option(
            "--resource",
            "-r",
            help="Only show this resource (repeatable).",
        ),
    ] = None,
    manifest_path: Annotated[
        Path | None,
        typer.Option(
            "--manifest",
            "-m",
            help="Path to manifest file.",
        ),
    ] = None,
) -> None:
    """Show the state of each managed dotfile."""
    if ctx.invoked_subcommand is not None:
        return

    manifest = require_manifest(manifest_path)
    resources = select_resources(manifest, resource)
    if not resources:
        print_info("No resources declared in manifest.")
        return

    policy = manifest.to_policy(dry_run=True, dotfiles_root=dotfiles_root_override(manifest))
    outcomes = build_reconciler(manifest).reconcile_all(
        resources,
        policy,
        max_workers=manifest.settings.max_workers,
    )
    console.print(_create_status_table(outcomes))

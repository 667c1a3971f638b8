"""Apply command implementation.

Reconciles every declared resource against the filesystem: symlinks,
copies and templates are deployed, occupied targets handled according to
the conflict policy, and outcomes recorded to history.
"""

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from dotctl.cli.display import create_outcomes_table, print_diagnostics, print_outcomes_summary
from dotctl.cli.types import build_reconciler, dotfiles_root_override, select_resources
from dotctl.core.cancellation import CancellationToken
from dotctl.core.manifest import require_manifest
from dotctl.core.state import StateManager
from dotctl.utils.formatting import console, print_info, print_warning

app = typer.Typer(
    help="Deploy dotfiles from the manifest.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def apply(
    ctx: typer.Context,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Validate and show what would change without touching the filesystem.",
        ),
    ] = False,
    resource: Annotated[
        list[str] | None,
        typer.Option(
            "--resource",
            "-r",
            help="Only reconcile this resource (repeatable).",
        ),
    ] = None,
    jobs: Annotated[
        int | None,
        typer.Option(
            "--jobs",
            "-j",
            min=1,
            help="Number of resources to reconcile in parallel.",
        ),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option(
            "--timeout",
            help="Stop starting destructive steps after this many seconds.",
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
    """Reconcile dotfiles with the manifest.

    Examples:
        dotctl apply                 # Deploy everything
        dotctl apply --dry-run       # Show what would change
        dotctl apply -r zshrc -r git # Deploy selected resources
    """
    if ctx.invoked_subcommand is not None:
        return

    manifest = require_manifest(manifest_path)
    resources = select_resources(manifest, resource)
    if not resources:
        print_info("No resources declared in manifest.")
        return

    policy = manifest.to_policy(dry_run=dry_run, dotfiles_root=dotfiles_root_override(manifest))
    reconciler = build_reconciler(manifest)
    cancel = CancellationToken(timeout=timeout) if timeout is not None else None

    if policy.dry_run:
        print_info("Dry run: no files will be changed.")

    outcomes = reconciler.reconcile_all(
        resources,
        policy,
        max_workers=jobs or manifest.settings.max_workers,
        cancel=cancel,
    )

    console.print(create_outcomes_table(outcomes, dry_run=policy.dry_run))
    print_diagnostics(outcomes)
    print_outcomes_summary(outcomes, dry_run=policy.dry_run)

    if not policy.dry_run:
        try:
            StateManager().record_outcomes(outcomes)
        except (OSError, RuntimeError) as e:
            print_warning(f"Failed to record history: {escape(str(e))}")

    if any(not outcome.success for outcome in outcomes):
        raise typer.Exit(code=1)

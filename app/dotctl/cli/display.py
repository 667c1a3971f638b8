"""Shared Rich display functions for reconciliation outcomes.

Provides reusable table builders and summary printers used by the
apply, status and history commands.
"""

from rich.markup import escape
from rich.table import Table

from dotctl.models.outcome import DeploymentOutcome, Severity
from dotctl.utils.formatting import console, print_success

_SEVERITY_STYLES = {
    Severity.INFO: "muted",
    Severity.WARNING: "warning",
    Severity.ERROR: "error",
}


def format_status(outcome: DeploymentOutcome) -> str:
    """Short status label with Rich markup for an outcome."""
    if not outcome.success:
        return "[error]FAIL[/error]"
    if outcome.skipped:
        return "[skipped]SKIP[/skipped]"
    if outcome.decision == "converged":
        return "[muted]OK[/muted]"
    return "[success]OK[/success]"


def format_decision(outcome: DeploymentOutcome) -> str:
    """Human-readable conflict decision for an outcome."""
    decision = outcome.decision
    if decision is None:
        return "[muted]-[/muted]"
    if decision == "converged":
        return "[muted]up to date[/muted]"
    if decision == "backup_then_proceed":
        return "[changed]backup + replace[/changed]"
    if decision == "proceed":
        return "[added]deploy[/added]"
    if decision == "skip":
        return "[skipped]skip[/skipped]"
    return decision


def _last_message(outcome: DeploymentOutcome) -> str:
    if outcome.diagnostics:
        diagnostic = outcome.diagnostics[-1]
        style = _SEVERITY_STYLES[diagnostic.severity]
        return f"[{style}]{escape(diagnostic.message)}[/{style}]"
    if outcome.backup is not None:
        return f"[muted]backup: {escape(outcome.backup.backup_path)}[/muted]"
    return ""


def create_outcomes_table(outcomes: list[DeploymentOutcome], dry_run: bool = False) -> Table:
    """Create a Rich table displaying reconciliation outcomes.

    Args:
        outcomes: Outcomes to display, one row each.
        dry_run: Whether this is a dry-run (changes table title).

    Returns:
        Rich Table configured for outcome display.
    """
    title = "Results (Dry Run)" if dry_run else "Results"

    table = Table(
        title=title,
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Status", width=6, justify="center")
    table.add_column("Resource", no_wrap=True)
    table.add_column("Target")
    table.add_column("Action")
    table.add_column("Message")

    for outcome in outcomes:
        table.add_row(
            format_status(outcome),
            outcome.resource_id,
            f"[muted]{escape(outcome.applied_path or '-')}[/muted]",
            format_decision(outcome),
            _last_message(outcome),
        )

    return table


def print_diagnostics(outcomes: list[DeploymentOutcome]) -> None:
    """Print every warning and error diagnostic, grouped by resource."""
    for outcome in outcomes:
        for diagnostic in outcome.non_informational():
            style = _SEVERITY_STYLES[diagnostic.severity]
            console.print(
                f"  [{style}]{diagnostic.severity.value}[/{style}] "
                f"{escape(outcome.resource_id)}: {escape(diagnostic.message)}"
            )


def print_outcomes_summary(outcomes: list[DeploymentOutcome], dry_run: bool = False) -> None:
    """Print counts of deployed, unchanged, skipped and failed resources.

    Args:
        outcomes: Outcomes of a run.
        dry_run: Whether this was a dry-run.
    """
    failed = sum(1 for o in outcomes if not o.success)
    skipped = sum(1 for o in outcomes if o.success and o.skipped)
    unchanged = sum(1 for o in outcomes if o.success and o.decision == "converged")
    deployed = len(outcomes) - failed - skipped - unchanged

    verb = "Would deploy" if dry_run else "Deployed"
    parts = [f"{verb}: {deployed}", f"Unchanged: {unchanged}", f"Skipped: {skipped}"]
    if failed:
        parts.append(f"[error]Failed: {failed}[/error]")
        console.print(", ".join(parts))
    else:
        print_success(", ".join(parts))

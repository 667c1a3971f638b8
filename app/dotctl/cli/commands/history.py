"""History command for viewing past apply runs.

This module provides the `dotctl history` command, which lists the
recorded outcome of every resource deployed by earlier runs.
"""

import json
from datetime import datetime
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from dotctl.cli.display import format_decision, format_status
from dotctl.core.state import HistoryEntry, StateManager
from dotctl.utils.formatting import console, print_info

app = typer.Typer(
    name="history",
    help="View history of deployments.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def history(
    ctx: typer.Context,
    limit: Annotated[
        int,
        typer.Option(
            "--limit",
            "-n",
            help="Maximum number of entries to show.",
        ),
    ] = 20,
    resource: Annotated[
        str | None,
        typer.Option(
            "--resource",
            "-r",
            help="Only show entries for this resource.",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """Show history of deployments.

    Examples:
        dotctl history              # Show last 20 entries
        dotctl history -n 50        # Show last 50 entries
        dotctl history -r zshrc     # Only one resource
        dotctl history --json       # JSON output for scripting
    """
    if ctx.invoked_subcommand is not None:
        return

    state = StateManager()
    if resource is None:
        entries = state.get_history(limit=limit)
    else:
        entries = [e for e in state.get_history() if e.outcome.resource_id == resource][:limit]

    if not entries:
        print_info("No history entries found.")
        return

    if json_output:
        _print_json(entries)
    else:
        _print_table(entries)


def _print_table(entries: list[HistoryEntry]) -> None:
    table = Table(
        title="Deployment History",
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Run", style="muted")
    table.add_column("Timestamp", style="info")
    table.add_column("", width=6, justify="center")
    table.add_column("Resource")
    table.add_column("Action")
    table.add_column("Backup", style="muted")

    for entry in entries:
        outcome = entry.outcome
        table.add_row(
            entry.run_id[:8],
            _format_timestamp(entry.timestamp),
            format_status(outcome),
            outcome.resource_id,
            format_decision(outcome),
            escape(outcome.backup.backup_path) if outcome.backup else "",
        )

    console.print(table)


def _format_timestamp(iso_timestamp: str) -> str:
    """Format ISO timestamp for display.

    Args:
        iso_timestamp: ISO format timestamp string.

    Returns:
        Formatted timestamp string (YYYY-MM-DD HH:MM).
    """
    dt = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
    return dt.strftime("%Y-%m-%d %H:%M")


def _print_json(entries: list[HistoryEntry]) -> None:
    output = [entry.to_dict() for entry in entries]
    console.print(json.dumps(output, indent=2), markup=False, highlight=False, soft_wrap=True)

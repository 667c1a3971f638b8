"""CLI commands for dotctl.

This package contains all subcommand implementations.
"""

from dotctl.cli.commands import apply, detect, history, init, status, sync

__all__ = ["apply", "detect", "history", "init", "status", "sync"]

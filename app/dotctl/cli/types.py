"""Shared helpers for CLI commands.

Builds the reconciliation collaborators from a loaded manifest so that
each command wires them the same way.
"""

from pathlib import Path

import typer

from dotctl.core.paths import get_repository_cache_dir
from dotctl.core.platform import PlatformContext
from dotctl.core.reconciler import Reconciler
from dotctl.models.manifest import Manifest
from dotctl.models.resource import ManagedResource
from dotctl.repository.sync import local_cache_path
from dotctl.utils.formatting import print_error


def build_platform(manifest: Manifest) -> PlatformContext:
    """Capture the platform context selected by the manifest settings."""
    return PlatformContext.detect(manifest.settings.target_platform)


def build_reconciler(manifest: Manifest) -> Reconciler:
    """Create a Reconciler for the manifest's platform."""
    return Reconciler(build_platform(manifest))


def repository_checkout(manifest: Manifest) -> Path | None:
    """Local clone of the manifest's repository, if one is configured and synced."""
    if manifest.repository is None:
        return None
    path = local_cache_path(get_repository_cache_dir(), manifest.repository.url)
    return path if (path / ".git").exists() else None


def dotfiles_root_override(manifest: Manifest) -> str | None:
    """Dotfiles root to use instead of the configured one, if any."""
    checkout = repository_checkout(manifest)
    return str(checkout) if checkout is not None else None


def select_resources(manifest: Manifest, names: list[str] | None) -> list[ManagedResource]:
    """Pick resources by id, preserving manifest order.

    Raises:
        typer.Exit: If a requested id is not declared in the manifest.
    """
    resources = manifest.to_resources()
    if not names:
        return resources
    unknown = sorted(set(names) - {r.id for r in resources})
    if unknown:
        print_error(f"Unknown resource(s): {', '.join(unknown)}")
        raise typer.Exit(code=1)
    wanted = set(names)
    return [r for r in resources if r.id in wanted]

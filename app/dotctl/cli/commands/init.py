"""Init command implementation.

Creates a starter manifest.toml with global settings and one example
resource, ready to be edited.
"""

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from dotctl.core.manifest import ManifestError, manifest_exists, save_manifest
from dotctl.core.paths import get_manifest_path
from dotctl.models.manifest import Manifest, RepositoryConfig, ResourceEntry, Settings
from dotctl.models.resource import Strategy
from dotctl.utils.formatting import console, print_error, print_info, print_success, print_warning

app = typer.Typer(
    help="Create a starter manifest.",
    invoke_without_command=True,
)


def _create_manifest(dotfiles_root: str, repository: str | None = None) -> Manifest:
    """Create a starter manifest.

    Args:
        dotfiles_root: Directory holding the dotfiles sources.
        repository: Optional remote repository URL.

    Returns:
        New Manifest object with a single example resource.
    """
    return Manifest(
        settings=Settings(dotfiles_root=dotfiles_root),
        repository=RepositoryConfig(url=repository) if repository else None,
        resources={
            "gitconfig": ResourceEntry(
                source="git/gitconfig",
                target="{{.home_dir}}/.gitconfig",
                strategy=Strategy.SYMLINK,
            ),
        },
    )


def _show_manifest_summary(manifest: Manifest, output_path: Path) -> None:
    console.print()
    console.print("[bold]Manifest Summary[/bold]")
    console.print(f"  Dotfiles root: [info]{escape(manifest.settings.dotfiles_root)}[/info]")
    if manifest.repository is not None:
        console.print(f"  Repository: [info]{escape(manifest.repository.url)}[/info]")
    console.print(f"  Conflict policy: [muted]{manifest.settings.conflict_policy.value}[/muted]")
    console.print(f"  Resources: [bold]{len(manifest.resources)}[/bold]")
    console.print(f"  Output: [muted]{escape(str(output_path))}[/muted]")
    console.print()


def _may_replace(output_path: Path, *, force: bool, dry_run: bool) -> bool:
    """Decide whether an existing manifest may be replaced, explaining why not."""
    shown = escape(str(output_path))
    if dry_run:
        print_warning(f"{shown} exists and would need --force to be replaced.")
        return True
    if force:
        print_warning(f"Replacing {shown}")
        return True
    print_error(f"Manifest already exists: {shown}")
    print_info("Pass --force to replace it, or --output to write elsewhere.")
    return False


@app.callback(invoke_without_command=True)
def init_manifest(
    ctx: typer.Context,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output path for manifest file.",
        ),
    ] = None,
    dotfiles_root: Annotated[
        str,
        typer.Option(
            "--root",
            help="Directory holding your dotfiles.",
        ),
    ] = "~/dotfiles",
    repository: Annotated[
        str | None,
        typer.Option(
            "--repository",
            help="Remote dotfiles repository (URL or github.com/user/repo).",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing manifest without prompting.",
        ),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Show what would be created without writing files.",
        ),
    ] = False,
) -> None:
    """Create a starter manifest.

    Examples:
        dotctl init                               # Default location
        dotctl init --root ~/src/dotfiles         # Custom dotfiles root
        dotctl init --repository github.com/me/dotfiles
        dotctl init --force                       # Overwrite existing manifest
    """
    if ctx.invoked_subcommand is not None:
        return

    output_path = output or get_manifest_path()

    if manifest_exists(output_path) and not _may_replace(output_path, force=force, dry_run=dry_run):
        raise typer.Exit(code=1)

    manifest = _create_manifest(dotfiles_root, repository)
    _show_manifest_summary(manifest, output_path)

    if dry_run:
        print_info("Dry-run mode: No files written.")
        return

    try:
        saved_path = save_manifest(manifest, output_path)
    except ManifestError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e

    print_success(f"Manifest created: {escape(str(saved_path))}")
    print_info("Edit the \\[resources] section, then run 'dotctl apply --dry-run'.")

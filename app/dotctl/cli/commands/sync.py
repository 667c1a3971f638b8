"""Sync command implementation.

Clones the manifest's dotfiles repository into the local cache, or
fast-forwards an existing clone. Later apply runs use the clone as the
dotfiles root.
"""

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from dotctl.core.manifest import require_manifest
from dotctl.core.paths import ensure_repository_cache_dir
from dotctl.repository.sync import AuthConfig, GitRepositoryManager, RepositoryError, local_cache_path
from dotctl.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Clone or update the dotfiles repository.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def sync(
    ctx: typer.Context,
    manifest_path: Annotated[
        Path | None,
        typer.Option(
            "--manifest",
            "-m",
            help="Path to manifest file.",
        ),
    ] = None,
) -> None:
    """Clone or update the repository configured in the manifest.

    Tokens are read from the manifest or from GITHUB_TOKEN / GH_TOKEN.
    """
    if ctx.invoked_subcommand is not None:
        return

    manifest = require_manifest(manifest_path)
    repository = manifest.repository
    if repository is None:
        print_info("No \\[repository] configured in manifest. Nothing to sync.")
        return

    auth = AuthConfig(
        token=repository.token,
        username=repository.username,
        ssh_key_path=repository.ssh_key_path,
        ssh_passphrase=repository.ssh_passphrase,
    )

    try:
        local_path = local_cache_path(ensure_repository_cache_dir(), repository.url)
        print_info(f"Syncing {escape(repository.url)}")
        info = GitRepositoryManager().clone(repository.url, local_path, auth, repository.branch)
    except (RepositoryError, RuntimeError) as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e

    print_success(f"Repository ready: {escape(str(info.local_path))}")
    console.print(f"  Branch: [info]{info.branch}[/info]")
    console.print(f"  Commit: [muted]{info.last_commit[:12]}[/muted]")

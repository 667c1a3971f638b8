"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from typing import Annotated

import typer

from dotctl import __version__
from dotctl.cli.commands import apply, detect, history, init, status, sync
from dotctl.utils.formatting import configure_logging

app = typer.Typer(
    name="dotctl",
    help="Declarative, cross-platform dotfiles management.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"dotctl version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Only log errors.",
        ),
    ] = False,
) -> None:
    """dotctl - Declarative, cross-platform dotfiles management.

    Declare your dotfiles in a manifest and let dotctl link, copy or
    render them into place, backing up whatever was there before.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    configure_logging(verbose=verbose, quiet=quiet)


app.add_typer(init.app, name="init")
app.add_typer(apply.app, name="apply")
app.add_typer(status.app, name="status")
app.command("detect", help="Detect an installed application.")(detect.detect)
app.add_typer(sync.app, name="sync")
app.add_typer(history.app, name="history")


if __name__ == "__main__":
    app()

"""Detect command implementation.

Runs application detection the way a resource gate would, which helps
when writing `[resources.*.application]` sections.
"""

import json
from typing import Annotated

import typer
from rich.markup import escape

from dotctl.core.platform import PlatformContext
from dotctl.detection.detector import Detector
from dotctl.models.detection import DetectionMethod
from dotctl.utils.formatting import console, print_info, print_success


def detect(
    name: Annotated[str, typer.Argument(help="Application name, e.g. 'git'.")],
    method: Annotated[
        list[DetectionMethod] | None,
        typer.Option(
            "--method",
            "-M",
            help="Detection method to try, in order (repeatable).",
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
    """Detect whether an application is installed and at which version.

    Exits with code 1 when the application is not found.

    Examples:
        dotctl detect git
        dotctl detect code --method brew_cask --method file
    """
    result = Detector().detect(name, method or None, PlatformContext.detect())

    if json_output:
        console.print(
            json.dumps(result.to_dict(), indent=2), markup=False, highlight=False, soft_wrap=True
        )
    elif result.installed:
        print_success(f"{escape(name)} is installed (method: {result.method})")
        console.print(f"  Version: [info]{result.version}[/info]")
        if result.installation_path:
            console.print(f"  Path: [muted]{escape(result.installation_path)}[/muted]")
    else:
        print_info(f"{escape(name)} was not found.")

    if not result.installed:
        raise typer.Exit(code=1)

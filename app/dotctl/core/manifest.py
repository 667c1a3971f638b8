"""Manifest file I/O.

The manifest is TOML on disk and a validated Manifest model in memory.
Writes are atomic: a sibling temporary file is renamed over the target.
"""

import logging
import os
import tomllib
from pathlib import Path
from tempfile import NamedTemporaryFile

import tomli_w
from pydantic import ValidationError

from dotctl.core.errors import DotctlError
from dotctl.core.paths import get_manifest_path
from dotctl.models.manifest import Manifest

logger = logging.getLogger(__name__)


class ManifestError(DotctlError):
    """Base exception for manifest-related errors."""


class ManifestNotFoundError(ManifestError):
    """Raised when the manifest file does not exist."""


class ManifestParseError(ManifestError):
    """Raised when the manifest is not valid TOML."""


class ManifestValidationError(ManifestError):
    """Raised when the manifest does not match the schema.

    Attributes:
        problems: One "location: message" line per validation error.
    """

    def __init__(self, path: Path, problems: list[str]) -> None:
        self.problems = problems
        super().__init__(f"Invalid manifest {path}:\n  " + "\n  ".join(problems))


def _describe(error: ValidationError) -> list[str]:
    """Flatten pydantic errors into "resources.zshrc.file_mode: ..." lines."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "manifest"
        problems.append(f"{location}: {item['msg']}")
    return problems


def load_manifest(path: Path | None = None) -> Manifest:
    """Load and validate a manifest.

    Args:
        path: Manifest file; defaults to ~/.config/dotctl/manifest.toml.

    Returns:
        Validated Manifest.

    Raises:
        ManifestNotFoundError: If the file does not exist.
        ManifestParseError: If the TOML is malformed.
        ManifestValidationError: If a section or resource is invalid.
        ManifestError: If the file cannot be read.
    """
    manifest_path = path or get_manifest_path()
    try:
        with open(manifest_path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        msg = f"Manifest not found: {manifest_path}"
        raise ManifestNotFoundError(msg) from e
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {manifest_path}: {e}"
        raise ManifestParseError(msg) from e
    except OSError as e:
        msg = f"Cannot read manifest {manifest_path}: {e}"
        raise ManifestError(msg) from e

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        raise ManifestValidationError(manifest_path, _describe(e)) from e
    logger.debug("Loaded %d resources from %s", len(manifest.resources), manifest_path)
    return manifest


def save_manifest(manifest: Manifest, path: Path | None = None) -> Path:
    """Write a manifest atomically.

    Unset optional fields are omitted, since TOML has no null.

    Args:
        manifest: Manifest to write.
        path: Destination; defaults to ~/.config/dotctl/manifest.toml.

    Returns:
        Path written.

    Raises:
        ManifestError: If the file cannot be written.
    """
    manifest_path = path or get_manifest_path()
    data = manifest.model_dump(mode="json", exclude_none=True)

    tmp_path: Path | None = None
    try:
        manifest_path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(
            mode="wb",
            dir=manifest_path.parent,
            prefix=f".{manifest_path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(tmp_path, manifest_path)
    except OSError as e:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        msg = f"Failed to write manifest {manifest_path}: {e}"
        raise ManifestError(msg) from e

    return manifest_path


def manifest_exists(path: Path | None = None) -> bool:
    """Check whether a manifest file exists."""
    return (path or get_manifest_path()).exists()


def require_manifest(manifest_path: Path | None = None) -> Manifest:
    """Load the manifest for a CLI command or exit with a hint.

    Raises:
        typer.Exit: If the manifest cannot be loaded.
    """
    import typer
    from rich.markup import escape

    from dotctl.utils.formatting import print_error, print_info

    path = manifest_path or get_manifest_path()
    try:
        return load_manifest(path)
    except ManifestNotFoundError as e:
        print_error(escape(str(e)))
        print_info("Run 'dotctl init' to create a starter manifest.")
        raise typer.Exit(code=1) from e
    except ManifestError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e

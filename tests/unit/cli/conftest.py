"""Fixtures for CLI command tests."""

import os
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import patch

import pytest


@pytest.fixture
def xdg(tmp_path: Path) -> Iterator[Path]:
    """Point every XDG base directory into the temp dir."""
    base = tmp_path / "xdg"
    env = {
        "XDG_CONFIG_HOME": str(base / "config"),
        "XDG_STATE_HOME": str(base / "state"),
        "XDG_CACHE_HOME": str(base / "cache"),
    }
    with patch.dict(os.environ, env):
        yield base


@pytest.fixture
def write_manifest(tmp_path: Path, dotfiles: Path) -> Callable[[str], Path]:
    """Write a manifest whose settings point at the fake dotfiles root.

    The returned factory takes the ``[resources.*]`` TOML and returns the
    manifest path.
    """

    def factory(resources: str) -> Path:
        path = tmp_path / "manifest.toml"
        path.write_text(
            "[settings]\n"
            f'dotfiles_root = "{dotfiles}"\n'
            f'backup_directory = "{tmp_path / "backups"}"\n'
            "\n" + resources
        )
        return path

    return factory

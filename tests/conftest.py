"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

from datetime import UTC, datetime
from pathlib import Path

import pytest
from dotctl.core.platform import LINUX, PlatformContext
from dotctl.detection.detector import Detector
from dotctl.models.detection import DetectionMethod, DetectionResult
from dotctl.models.resource import GlobalPolicy


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Fake home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def dotfiles(tmp_path: Path) -> Path:
    """Fake dotfiles root with a few sources."""
    root = tmp_path / "dotfiles"
    (root / "zsh").mkdir(parents=True)
    (root / "zsh" / "zshrc").write_text("export EDITOR=nvim\n")
    (root / "git").mkdir()
    (root / "git" / "gitconfig").write_text("[user]\n\tname = Test\n")
    (root / "nvim").mkdir()
    (root / "nvim" / "init.lua").write_text("vim.o.number = true\n")
    (root / "nvim" / "lua").mkdir()
    (root / "nvim" / "lua" / "plugins.lua").write_text("return {}\n")
    return root


@pytest.fixture
def linux(home: Path) -> PlatformContext:
    """Linux platform context rooted at the fake home."""
    return PlatformContext.for_home(LINUX, home)


@pytest.fixture
def policy(dotfiles: Path, tmp_path: Path) -> GlobalPolicy:
    """Global policy using the fake dotfiles root and a temp backup dir."""
    return GlobalPolicy(
        dotfiles_root=str(dotfiles),
        backup_directory=str(tmp_path / "backups"),
    )


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed instant."""
    instant = datetime(2026, 3, 14, 15, 9, 26, 535897, tzinfo=UTC)
    return lambda: instant


@pytest.fixture
def make_detector():
    """Factory for detectors that find only the given applications."""

    def factory(versions: dict[str, str]) -> Detector:
        def handler(name: str, platform: PlatformContext) -> DetectionResult:
            if name in versions:
                return DetectionResult.found(
                    DetectionMethod.COMMAND,
                    version=versions[name],
                    installation_path=f"/usr/bin/{name}",
                )
            return DetectionResult(installed=False, method="")

        return Detector(
            handlers={DetectionMethod.COMMAND: handler, DetectionMethod.FILE: handler}
        )

    return factory

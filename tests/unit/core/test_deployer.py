"""Unit tests for the Deployer."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from dotctl.core.deployer import Deployer
from dotctl.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    RenderError,
    ResourceValidationError,
)
from dotctl.core.platform import PlatformContext
from dotctl.models.resource import Strategy
from dotctl.templates.renderer import TemplateRenderer


@pytest.fixture
def deployer(linux: PlatformContext) -> Deployer:
    return Deployer(renderer=TemplateRenderer(linux))


class TestPrepare:
    """Tests for Deployer.prepare validation."""

    def test_missing_source(self, deployer: Deployer, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError, match="does not exist"):
            deployer.prepare(tmp_path / "missing", tmp_path / "t", Strategy.COPY)

    def test_dangling_symlink_source(self, deployer: Deployer, tmp_path: Path) -> None:
        """A source that is a dangling symlink counts as missing."""
        source = tmp_path / "link"
        source.symlink_to(tmp_path / "nowhere")

        with pytest.raises(NotFoundError):
            deployer.prepare(source, tmp_path / "t", Strategy.SYMLINK)

    def test_template_directory_rejected(self, deployer: Deployer, dotfiles: Path) -> None:
        with pytest.raises(ResourceValidationError, match="must be a file"):
            deployer.prepare(dotfiles / "nvim", dotfiles / "t", Strategy.TEMPLATE)

    def test_template_without_renderer(self, dotfiles: Path) -> None:
        with pytest.raises(ResourceValidationError, match="renderer"):
            Deployer().prepare(dotfiles / "zsh" / "zshrc", dotfiles / "t", Strategy.TEMPLATE)

    def test_template_render_error(self, deployer: Deployer, tmp_path: Path) -> None:
        source = tmp_path / "broken.tmpl"
        source.write_text("{{ missing_var }}")

        with pytest.raises(RenderError):
            deployer.prepare(source, tmp_path / "out", Strategy.TEMPLATE, {})

    def test_prepare_does_not_mutate(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        deployer.prepare(dotfiles / "zsh" / "zshrc", home / ".zshrc", Strategy.COPY)

        assert list(home.iterdir()) == []


class TestApply:
    """Tests for each deployment strategy."""

    def test_symlink(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        source = dotfiles / "zsh" / "zshrc"
        target = home / ".zshrc"

        deployer.apply(deployer.prepare(source, target, Strategy.SYMLINK))

        assert target.is_symlink()
        assert os.readlink(target) == str(source)

    def test_copy_file_preserves_mode(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        source = dotfiles / "zsh" / "zshrc"
        os.chmod(source, 0o640)
        target = home / ".zshrc"

        deployer.apply(deployer.prepare(source, target, Strategy.COPY))

        assert not target.is_symlink()
        assert target.read_text() == source.read_text()
        assert os.stat(target).st_mode & 0o777 == 0o640

    def test_copy_directory(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        target = home / ".config" / "nvim"

        deployer.apply(deployer.prepare(dotfiles / "nvim", target, Strategy.COPY))

        assert (target / "init.lua").read_text() == "vim.o.number = true\n"
        assert (target / "lua" / "plugins.lua").exists()

    def test_template(self, deployer: Deployer, tmp_path: Path, home: Path) -> None:
        source = tmp_path / "gitconfig.tmpl"
        source.write_text("[user]\n\temail = {{ email }}\n")
        target = home / ".gitconfig"

        deployer.apply(
            deployer.prepare(source, target, Strategy.TEMPLATE, {"email": "me@example.com"})
        )

        assert target.read_text() == "[user]\n\temail = me@example.com\n"

    def test_replaces_existing_file(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        target = home / ".zshrc"
        target.write_text("old")

        deployer.apply(deployer.prepare(dotfiles / "zsh" / "zshrc", target, Strategy.SYMLINK))

        assert target.is_symlink()

    def test_replaces_existing_directory(
        self, deployer: Deployer, dotfiles: Path, home: Path
    ) -> None:
        target = home / "nvim"
        target.mkdir()
        (target / "stale.lua").write_text("old")

        deployer.apply(deployer.prepare(dotfiles / "nvim", target, Strategy.COPY))

        assert not (target / "stale.lua").exists()
        assert (target / "init.lua").exists()

    def test_creates_parent_directories(
        self, deployer: Deployer, dotfiles: Path, home: Path
    ) -> None:
        target = home / ".config" / "deep" / "zshrc"

        deployer.apply(deployer.prepare(dotfiles / "zsh" / "zshrc", target, Strategy.COPY))

        assert target.exists()

    def test_leaves_no_staging_files(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        deployer.apply(deployer.prepare(dotfiles / "zsh" / "zshrc", home / ".zshrc", Strategy.COPY))

        assert [p.name for p in home.iterdir()] == [".zshrc"]

    def test_dry_run_changes_nothing(self, linux: PlatformContext, dotfiles: Path, home: Path) -> None:
        deployer = Deployer(dry_run=True, renderer=TemplateRenderer(linux))
        target = home / ".zshrc"
        target.write_text("old")

        deployer.apply(deployer.prepare(dotfiles / "zsh" / "zshrc", target, Strategy.SYMLINK))

        assert not target.is_symlink()
        assert target.read_text() == "old"

    def test_permission_denied(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        """OS refusals surface as PermissionDeniedError and clean up staging."""
        prepared = deployer.prepare(dotfiles / "zsh" / "zshrc", home / ".zshrc", Strategy.COPY)

        with (
            patch("dotctl.core.deployer.os.replace", side_effect=PermissionError(13, "denied")),
            pytest.raises(PermissionDeniedError),
        ):
            deployer.apply(prepared)

        assert list(home.iterdir()) == []


class TestConvergence:
    """Tests for Deployer.is_converged."""

    def test_symlink_converged(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        prepared = deployer.prepare(dotfiles / "zsh" / "zshrc", home / ".zshrc", Strategy.SYMLINK)
        assert not deployer.is_converged(prepared)

        deployer.apply(prepared)

        assert deployer.is_converged(prepared)

    def test_copy_converged_by_content(
        self, deployer: Deployer, dotfiles: Path, home: Path
    ) -> None:
        target = home / ".zshrc"
        target.write_text("export EDITOR=nvim\n")
        prepared = deployer.prepare(dotfiles / "zsh" / "zshrc", target, Strategy.COPY)

        assert deployer.is_converged(prepared)

        target.write_text("different\n")
        assert not deployer.is_converged(prepared)

    def test_directory_converged(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        prepared = deployer.prepare(dotfiles / "nvim", home / "nvim", Strategy.COPY)
        deployer.apply(prepared)

        assert deployer.is_converged(prepared)

        (home / "nvim" / "extra.lua").write_text("x")
        assert not deployer.is_converged(prepared)

    def test_symlink_to_other_source_not_converged(
        self, deployer: Deployer, dotfiles: Path, home: Path
    ) -> None:
        target = home / ".zshrc"
        target.symlink_to(dotfiles / "git" / "gitconfig")
        prepared = deployer.prepare(dotfiles / "zsh" / "zshrc", target, Strategy.SYMLINK)

        assert not deployer.is_converged(prepared)


class TestDeploy:
    """Tests for the one-shot deploy helper."""

    def test_deploy_returns_outcome(self, deployer: Deployer, dotfiles: Path, home: Path) -> None:
        outcome = deployer.deploy(dotfiles / "git" / "gitconfig", home / ".gitconfig", Strategy.COPY)

        assert outcome.success
        assert outcome.applied_path == str(home / ".gitconfig")
        assert outcome.applied_mode is not None

"""Deployment of resources onto target paths.

Deployment is split into two phases:
1. prepare(): every validation (source existence, template rendering)
   with no filesystem mutation, identical in live and dry-run mode
2. apply(): the mutation itself, suppressed in dry-run mode

New content is staged next to the target and swapped in with os.replace(),
so the target either keeps its old content or holds the complete new one.
"""

import errno
import filecmp
import logging
import os
import shutil
import stat
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotctl.core.conflict import inspect_target
from dotctl.core.errors import NotFoundError, PermissionDeniedError, ResourceValidationError
from dotctl.core.permissions import format_mode
from dotctl.models.conflict import ExistingState
from dotctl.models.outcome import DeploymentOutcome, ReconcileState
from dotctl.models.resource import Strategy
from dotctl.templates.renderer import TemplateRenderer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PreparedDeployment:
    """A validated deployment, ready to apply.

    Attributes:
        source: Absolute source path.
        target: Absolute target path.
        strategy: Deployment strategy.
        source_is_dir: Whether the source is a directory.
        source_mode: Permission bits of the source.
        content: Rendered bytes for the template strategy, else None.
    """

    source: Path
    target: Path
    strategy: Strategy
    source_is_dir: bool
    source_mode: int
    content: bytes | None = None


def _trees_equal(left: Path, right: Path) -> bool:
    """Compare two directory trees by names and file contents."""
    comparison = filecmp.dircmp(left, right)
    if comparison.left_only or comparison.right_only or comparison.funny_files:
        return False
    _, mismatch, errors = filecmp.cmpfiles(left, right, comparison.common_files, shallow=False)
    if mismatch or errors:
        return False
    return all(_trees_equal(left / name, right / name) for name in comparison.common_dirs)


def _remove_entry(path: Path, state: ExistingState) -> None:
    if state == ExistingState.DIRECTORY:
        shutil.rmtree(path)
    elif state != ExistingState.ABSENT:
        path.unlink()


class Deployer:
    """Creates symlinks, copies and rendered templates.

    Attributes:
        _dry_run: If True, validate and report without touching the filesystem.
        _renderer: Template renderer used by the template strategy.
    """

    def __init__(self, *, dry_run: bool = False, renderer: TemplateRenderer | None = None) -> None:
        self._dry_run = dry_run
        self._renderer = renderer

    def prepare(
        self,
        source: Path,
        target: Path,
        strategy: Strategy,
        template_context: Mapping[str, Any] | None = None,
    ) -> PreparedDeployment:
        """Validate a deployment without mutating anything.

        Args:
            source: Absolute source path.
            target: Absolute target path.
            strategy: Deployment strategy.
            template_context: Variables for the template strategy.

        Returns:
            PreparedDeployment for apply().

        Raises:
            NotFoundError: If the source does not exist (including a
                dangling symlink as source).
            ResourceValidationError: If a template source is a directory or
                no renderer is configured.
            RenderError: If the template fails to render.
        """
        try:
            st = source.stat()
        except FileNotFoundError as e:
            msg = f"Source path does not exist: {source}"
            raise NotFoundError(msg) from e
        except PermissionError as e:
            msg = f"Cannot read source {source}: {e}"
            raise PermissionDeniedError(msg) from e

        source_is_dir = stat.S_ISDIR(st.st_mode)
        content: bytes | None = None

        if strategy == Strategy.TEMPLATE:
            if source_is_dir:
                msg = f"Template source must be a file: {source}"
                raise ResourceValidationError(msg)
            if self._renderer is None:
                msg = f"No template renderer configured for {source}"
                raise ResourceValidationError(msg)
            rendered = self._renderer.render_file(source, template_context or {})
            content = rendered.encode("utf-8")

        return PreparedDeployment(
            source=source,
            target=target,
            strategy=strategy,
            source_is_dir=source_is_dir,
            source_mode=stat.S_IMODE(st.st_mode),
            content=content,
        )

    def is_converged(self, prepared: PreparedDeployment) -> bool:
        """Check whether the target already matches the desired state."""
        target = prepared.target
        state = inspect_target(target)
        if prepared.strategy == Strategy.SYMLINK:
            return state == ExistingState.SYMLINK and os.path.realpath(target) == os.path.realpath(
                prepared.source
            )
        if prepared.content is not None:
            return state == ExistingState.REGULAR_FILE and target.read_bytes() == prepared.content
        if prepared.source_is_dir:
            return state == ExistingState.DIRECTORY and _trees_equal(prepared.source, target)
        return state == ExistingState.REGULAR_FILE and filecmp.cmp(
            prepared.source, target, shallow=False
        )

    def apply(self, prepared: PreparedDeployment) -> None:
        """Mutate the target to match ``prepared``.

        Any existing entry at the target is replaced; the caller is
        responsible for having taken a backup first.

        Raises:
            PermissionDeniedError: If the OS refuses the write or removal.
            OSError: For other filesystem failures.
        """
        target = prepared.target
        if self._dry_run:
            logger.info(
                "Dry-run: would %s %s -> %s",
                prepared.strategy.value,
                prepared.source,
                target,
            )
            return

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            existing = inspect_target(target)
            staging = target.with_name(f".{target.name}.dotctl-{uuid.uuid4().hex[:8]}")
            try:
                self._stage(prepared, staging)
                if existing == ExistingState.DIRECTORY or prepared.source_is_dir:
                    # os.replace cannot swap directories in place
                    _remove_entry(target, existing)
                os.replace(staging, target)
            except BaseException:
                _remove_entry(staging, inspect_target(staging))
                raise
        except PermissionError as e:
            msg = f"Permission denied deploying {target}: {e}"
            raise PermissionDeniedError(msg) from e
        except OSError as e:
            if e.errno in (errno.EACCES, errno.EPERM, errno.EROFS):
                msg = f"Permission denied deploying {target}: {e}"
                raise PermissionDeniedError(msg) from e
            raise

        logger.info("Deployed %s %s -> %s", prepared.strategy.value, prepared.source, target)

    def _stage(self, prepared: PreparedDeployment, staging: Path) -> None:
        if prepared.strategy == Strategy.SYMLINK:
            os.symlink(prepared.source, staging, target_is_directory=prepared.source_is_dir)
        elif prepared.source_is_dir:
            shutil.copytree(prepared.source, staging, symlinks=True)
        else:
            with open(staging, "xb") as out:
                if prepared.content is not None:
                    out.write(prepared.content)
                else:
                    with open(prepared.source, "rb") as src:
                        shutil.copyfileobj(src, out)
            os.chmod(staging, prepared.source_mode)

    def deploy(
        self,
        source: Path,
        target: Path,
        strategy: Strategy,
        template_context: Mapping[str, Any] | None = None,
    ) -> DeploymentOutcome:
        """Prepare and apply a single deployment.

        Args:
            source: Absolute source path.
            target: Absolute target path.
            strategy: Deployment strategy.
            template_context: Variables for the template strategy.

        Returns:
            Successful DeploymentOutcome for the target.

        Raises:
            NotFoundError: If the source does not exist.
            RenderError: If the template fails to render.
            PermissionDeniedError: If the OS refuses the mutation.
        """
        prepared = self.prepare(source, target, strategy, template_context)
        self.apply(prepared)
        applied_mode = None
        if prepared.strategy != Strategy.SYMLINK:
            applied_mode = format_mode(prepared.source_mode)
        return DeploymentOutcome(
            resource_id=target.name,
            success=True,
            applied_path=str(target),
            applied_mode=applied_mode,
            dry_run=self._dry_run,
            final_state=ReconcileState.DONE,
        )

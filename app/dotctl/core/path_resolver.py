"""Target path placeholder expansion.

Placeholders are replaced literally, not evaluated as templates. Each
token is a distinct string, so the order of substitution does not matter.
"""

import logging
from collections.abc import Callable, Mapping
from pathlib import Path

from dotctl.core.errors import ResourceValidationError
from dotctl.core.platform import PlatformContext

logger = logging.getLogger(__name__)

HOME_DIR = "{{.home_dir}}"
CONFIG_DIR = "{{.config_dir}}"
APP_SUPPORT_DIR = "{{.app_support_dir}}"
APPLICATION = "{{.application}}"


class PathResolver:
    """Resolves raw target strings into absolute paths.

    Supported placeholders:
    - ``{{.home_dir}}``: the home directory
    - ``{{.config_dir}}``: the user configuration directory
    - ``{{.app_support_dir}}``: the application support directory
    - ``{{.application}}``: the ``application`` entry of the vars mapping

    A leading ``~`` is expanded against the home directory. Relative
    results are anchored at the home directory.
    """

    def __init__(self, platform: PlatformContext) -> None:
        self._platform = platform
        self._system_dirs: dict[str, Callable[[], Path]] = {
            HOME_DIR: platform.home_dir,
            CONFIG_DIR: platform.config_dir,
            APP_SUPPORT_DIR: platform.app_support_dir,
        }

    def resolve(self, raw_path: str, variables: Mapping[str, str] | None = None) -> Path:
        """Expand placeholders and ``~`` into an absolute path.

        System directories are only looked up when their placeholder is
        present, so a missing directory is harmless unless referenced.

        Args:
            raw_path: Path string, possibly containing placeholders.
            variables: Extra values; ``application`` fills ``{{.application}}``.

        Returns:
            Absolute path.

        Raises:
            ResolutionError: If a referenced system directory is unknown.
            ResourceValidationError: If ``{{.application}}`` is used without
                an application name.
        """
        variables = variables or {}
        resolved = raw_path

        for token, lookup in self._system_dirs.items():
            if token in resolved:
                resolved = resolved.replace(token, str(lookup()))

        if APPLICATION in resolved:
            application = variables.get("application")
            if not application:
                msg = f"Path {raw_path!r} uses {APPLICATION} but no application is set"
                raise ResourceValidationError(msg)
            resolved = resolved.replace(APPLICATION, application)

        path = self._platform.expand_path(resolved)
        if not path.is_absolute():
            path = self._platform.home_dir() / path

        if resolved != raw_path:
            logger.debug("Resolved %s -> %s", raw_path, path)
        return path

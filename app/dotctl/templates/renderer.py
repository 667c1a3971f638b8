"""Template rendering with Jinja2.

Templates see a context composed, in order of increasing precedence, of:
1. ``system``: platform, architecture and well-known directories
2. user variables from the resource
3. the overlay for the current platform from ``platform_vars``

``platform_vars`` itself is also exposed so templates can reach other
platforms' values explicitly.
"""

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from dotctl.core.errors import RenderError, ResolutionError
from dotctl.core.platform import PlatformContext

logger = logging.getLogger(__name__)

TemplateFunction = Callable[..., Any]


def _default(value: Any, fallback: Any) -> Any:
    """Return ``fallback`` when ``value`` is empty or None."""
    if value is None or value == "":
        return fallback
    return value


def _homebrew_bin(platform: PlatformContext) -> str:
    if platform.is_macos:
        if platform.architecture in ("arm64", "aarch64"):
            return "/opt/homebrew/bin"
        return "/usr/local/bin"
    if platform.is_linux:
        return "/home/linuxbrew/.linuxbrew/bin"
    return ""


class TemplateRenderer:
    """Renders template text against a variable context.

    Undefined variables are errors, not empty strings, so a typo in a
    template fails the deployment instead of writing a broken dotfile.

    Built-in functions: ``upper``, ``lower``, ``title``, ``default``,
    ``configPath``, ``homebrewBin``, ``isMacOS``, ``isLinux``,
    ``isWindows``. Caller-supplied functions override built-ins of the
    same name.
    """

    def __init__(
        self,
        platform: PlatformContext,
        functions: Mapping[str, TemplateFunction] | None = None,
    ) -> None:
        self._platform = platform
        self._env = Environment(
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
        builtins: dict[str, TemplateFunction] = {
            "upper": str.upper,
            "lower": str.lower,
            "title": str.title,
            "default": _default,
            "configPath": self._config_path,
            "homebrewBin": lambda: _homebrew_bin(platform),
            "isMacOS": lambda: platform.is_macos,
            "isLinux": lambda: platform.is_linux,
            "isWindows": lambda: platform.is_windows,
        }
        builtins.update(functions or {})
        self._env.globals.update(builtins)
        for name in ("upper", "lower", "title"):
            self._env.filters[name] = builtins[name]

    def _config_path(self, app: str) -> str:
        return str(self._platform.config_dir() / app)

    def system_info(self) -> dict[str, Any]:
        """Describe the platform for the ``system`` context entry.

        Directories that cannot be determined are omitted.
        """
        info: dict[str, Any] = {
            "platform": self._platform.name,
            "architecture": self._platform.architecture,
        }
        for key, lookup in (
            ("home_dir", self._platform.home_dir),
            ("config_dir", self._platform.config_dir),
            ("app_support_dir", self._platform.app_support_dir),
        ):
            try:
                info[key] = str(lookup())
            except ResolutionError:
                logger.debug("Omitting %s from template context", key)
        return info

    def build_context(
        self,
        user_vars: Mapping[str, Any] | None = None,
        platform_vars: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Compose the template context.

        Args:
            user_vars: Variables declared on the resource.
            platform_vars: Overlays keyed by platform name.

        Returns:
            Context mapping for render().
        """
        platform_vars = platform_vars or {}
        context: dict[str, Any] = {"system": self.system_info()}
        context.update(user_vars or {})
        context.update(platform_vars.get(self._platform.name, {}))
        context["platform_vars"] = {name: dict(v) for name, v in platform_vars.items()}
        return context

    def render(self, template_text: str, context: Mapping[str, Any], name: str = "<string>") -> str:
        """Render template text.

        Args:
            template_text: Jinja2 template source.
            context: Variables available to the template.
            name: Template identifier used in error messages.

        Returns:
            Rendered text.

        Raises:
            RenderError: If the template has a syntax error, references an
                undefined variable, or a function raises.
        """
        try:
            template = self._env.from_string(template_text)
            return template.render(**context)
        except TemplateError as e:
            raise RenderError(name, str(e)) from e
        except Exception as e:
            raise RenderError(name, f"{type(e).__name__}: {e}") from e

    def render_file(self, path: Path, context: Mapping[str, Any]) -> str:
        """Read and render a template file.

        Raises:
            RenderError: If the file cannot be read or rendered.
        """
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RenderError(str(path), str(e)) from e
        return self.render(text, context, name=str(path))

"""Console color theme.

The bundled ``data/theme.toml`` provides the defaults; any subset of its
``[colors]`` table can be overridden in ``~/.config/dotctl/theme.toml``.
"""

import logging
import re
import tomllib
from functools import cache
from importlib import resources
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from rich.theme import Theme

from dotctl.core.paths import get_config_dir

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")


class ThemeColors(BaseModel):
    """Hex colors (#RGB or #RRGGBB) for each named style."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str = "#ffffff"
    muted: str = "#b2bec3"
    header: str = "#69B9A1"
    border: str = "#29526d"

    success: str = "#03b971"
    warning: str = "#f5b332"
    error: str = "#f53263"
    info: str = "#0ec1c8"

    # Reconciliation decisions
    added: str = "#c1ff62"
    removed: str = "#f53263"
    changed: str = "#0e8ac8"
    skipped: str = "#b2bec3"

    @field_validator("*", mode="before")
    @classmethod
    def validate_hex_color(cls, v: object, info: Any) -> str:
        if not isinstance(v, str) or not _HEX_COLOR.match(v.strip()):
            msg = f"{info.field_name}: expected a hex color like '#0ec1c8', got {v!r}"
            raise ValueError(msg)
        return v.strip()


def get_user_theme_path() -> Path:
    """Path of the optional user override file."""
    return get_config_dir() / "theme.toml"


def _read_colors(path: Path) -> dict[str, Any]:
    """Read the ``[colors]`` table of a theme file.

    Missing or unreadable files yield an empty table; problems other than
    absence are logged.
    """
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Ignoring theme file %s: %s", path, e)
        return {}
    colors = data.get("colors", {})
    if not isinstance(colors, dict):
        logger.warning("Ignoring theme file %s: [colors] must be a table", path)
        return {}
    return colors


def load_theme(user_path: Path | None = None) -> ThemeColors:
    """Merge user overrides onto the bundled colors.

    Args:
        user_path: Override file; defaults to the config directory's theme.toml.

    Returns:
        Validated colors; the built-in defaults if the merge is invalid.
    """
    bundled = resources.files("dotctl.data").joinpath("theme.toml")
    with resources.as_file(bundled) as bundled_path:
        colors = _read_colors(bundled_path)
    colors.update(_read_colors(user_path or get_user_theme_path()))
    try:
        return ThemeColors(**colors)
    except ValidationError as e:
        logger.warning("Invalid theme configuration, using defaults: %s", e)
        return ThemeColors()


def get_rich_theme(colors: ThemeColors | None = None) -> Theme:
    """Build the Rich theme used by the CLI consoles."""
    colors = colors or load_theme()
    styles = {name: str(value) for name, value in colors.model_dump().items()}
    styles["error"] = f"bold {colors.error}"
    styles["bold_header"] = f"bold {colors.header}"
    return Theme(styles)


@cache
def get_theme() -> Theme:
    """Rich theme, loaded once per process."""
    return get_rich_theme()

"""XDG-compliant path management for dotctl.

This module provides standardized paths following the XDG Base Directory
Specification for configuration, state, and cache storage.

XDG defaults:
- Config: ~/.config/dotctl/
- State: ~/.local/state/dotctl/
- Cache: ~/.cache/dotctl/
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "dotctl"


def _get_xdg_dir(env_var: str, default_subdir: str) -> Path:
    """Get XDG directory respecting environment variable override.

    Args:
        env_var: XDG environment variable name (e.g., "XDG_CONFIG_HOME").
        default_subdir: Default subdirectory under home (e.g., ".config").

    Returns:
        Path to the application-specific directory.
    """
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / default_subdir / APP_NAME


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/dotctl/ (or XDG_CONFIG_HOME/dotctl/).
    """
    return _get_xdg_dir("XDG_CONFIG_HOME", ".config")


def get_state_dir() -> Path:
    """Get the state directory path.

    State data includes the reconciliation history, which should persist
    between runs but is not configuration.

    Returns:
        Path to ~/.local/state/dotctl/ (or XDG_STATE_HOME/dotctl/).
    """
    return _get_xdg_dir("XDG_STATE_HOME", ".local/state")


def get_cache_dir() -> Path:
    """Get the cache directory path.

    Cache data includes clones of remote dotfiles repositories.

    Returns:
        Path to ~/.cache/dotctl/ (or XDG_CACHE_HOME/dotctl/).
    """
    return _get_xdg_dir("XDG_CACHE_HOME", ".cache")


def get_manifest_path() -> Path:
    """Get the default manifest file path.

    Returns:
        Path to ~/.config/dotctl/manifest.toml.
    """
    return get_config_dir() / "manifest.toml"


def get_history_path() -> Path:
    """Get the history file path.

    Returns:
        Path to ~/.local/state/dotctl/history.jsonl.
    """
    return get_state_dir() / "history.jsonl"


def get_repository_cache_dir() -> Path:
    """Get the directory holding cloned dotfiles repositories.

    Returns:
        Path to ~/.cache/dotctl/repositories/.
    """
    return get_cache_dir() / "repositories"


def _ensure_dir(path: Path, name: str) -> Path:
    """Create directory if it doesn't exist.

    Args:
        path: Directory path to create.
        name: Human-readable name for error messages.

    Returns:
        The created/existing directory path.

    Raises:
        RuntimeError: If directory cannot be created.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        msg = f"Cannot create {name} directory {path}: Permission denied"
        raise RuntimeError(msg) from e
    except OSError as e:
        msg = f"Cannot create {name} directory {path}: {e}"
        raise RuntimeError(msg) from e
    return path


def ensure_state_dir() -> Path:
    """Create the state directory if it doesn't exist.

    Raises:
        RuntimeError: If the directory cannot be created.
    """
    return _ensure_dir(get_state_dir(), "state")


def ensure_repository_cache_dir() -> Path:
    """Create the repository cache directory if it doesn't exist.

    Raises:
        RuntimeError: If the directory cannot be created.
    """
    return _ensure_dir(get_repository_cache_dir(), "repository cache")

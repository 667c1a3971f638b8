"""Desired-state models for managed resources.

These Pydantic models describe one declared dotfile deployment and the
global policy it runs under. They are validated once at the boundary
(manifest loading or direct construction) and are immutable afterwards.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dotctl.core.permissions import format_mode, parse_mode
from dotctl.models.detection import DEFAULT_DETECTION_METHODS, DetectionMethod


class Strategy(str, Enum):
    """Deployment mechanism for a resource."""

    SYMLINK = "symlink"
    COPY = "copy"
    TEMPLATE = "template"


class ConflictPolicy(str, Enum):
    """Rule for handling a target path that already exists.

    Attributes:
        OVERWRITE: Replace whatever is there.
        SKIP: Leave the existing entry alone.
        BACKUP: Snapshot the existing entry, then replace it.
        MERGE: Merge into an existing regular file where possible.
        PROMPT: Ask the user; not available in unattended runs.
    """

    OVERWRITE = "overwrite"
    SKIP = "skip"
    BACKUP = "backup"
    MERGE = "merge"
    PROMPT = "prompt"


class BackupFormat(str, Enum):
    """Backup naming scheme.

    Attributes:
        TIMESTAMPED: One new backup per run, never overwritten.
        SIMPLE: Exactly one backup per target, overwritten each run.
    """

    TIMESTAMPED = "timestamped"
    SIMPLE = "simple"


DEFAULT_BACKUP_DIRECTORY = "~/.dotfiles-backups"


class BackupPolicy(BaseModel):
    """Backup settings for a resource.

    Attributes:
        enabled: Whether backups may be taken.
        directory: Backup directory; falls back to the global policy.
        format: Naming scheme for backups.
        compression: Gzip the backup after the raw copy succeeds.
        metadata: Write a JSON ``.meta`` sidecar next to each backup.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: Annotated[bool, Field(description="Enable backups")] = True
    directory: Annotated[str | None, Field(description="Backup directory")] = None
    format: Annotated[BackupFormat, Field(description="Backup naming scheme")] = (
        BackupFormat.TIMESTAMPED
    )
    compression: Annotated[bool, Field(description="Gzip backups")] = False
    metadata: Annotated[bool, Field(description="Write .meta sidecar files")] = False


class ApplicationGate(BaseModel):
    """Precondition on an external application's presence and version.

    Attributes:
        name: Application name to detect.
        min_version: Lowest acceptable version (inclusive).
        max_version: Highest acceptable version (inclusive).
        skip_if_missing: Skip the resource when the gate fails.
        warn_if_missing: Warn and continue when the gate fails.
        detection_methods: Methods to try, in order; falls back to the
            global policy's methods.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: Annotated[str, Field(min_length=1, description="Required application")]
    min_version: Annotated[str | None, Field(description="Minimum version")] = None
    max_version: Annotated[str | None, Field(description="Maximum version")] = None
    skip_if_missing: Annotated[bool, Field(description="Skip when missing")] = False
    warn_if_missing: Annotated[bool, Field(description="Warn when missing")] = False
    detection_methods: Annotated[
        tuple[DetectionMethod, ...] | None,
        Field(description="Ordered detection methods"),
    ] = None

    @field_validator("min_version", "max_version", mode="before")
    @classmethod
    def empty_version_is_unset(cls, v: object) -> object:
        """Treat empty version bounds as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def has_bounds(self) -> bool:
        """Whether any version bound is specified."""
        return self.min_version is not None or self.max_version is not None


class ManagedResource(BaseModel):
    """Desired state for one deployed dotfile.

    Attributes:
        id: Unique resource identifier, used in logs and backup names.
        source: Source path, absolute or relative to the dotfiles root.
        target: Target path; may contain placeholders and a leading ``~``.
        strategy: Deployment mechanism.
        is_template: Render the source as a template (copy strategy only).
        template_vars: User variables for template rendering.
        platform_vars: Per-platform variable overlays keyed by platform name.
        file_mode: Octal mode for files, e.g. "0644". Modes are applied through
            symlinks, so with the symlink strategy they change the source file.
        directory_mode: Octal mode for directories, e.g. "0755".
        recursive: Apply modes throughout a directory tree.
        conflict_policy: Conflict rule; falls back to the global policy.
        backup: Backup settings.
        application: Optional application gate.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: Annotated[str, Field(min_length=1, description="Resource identifier")]
    source: Annotated[str, Field(min_length=1, description="Source path")]
    target: Annotated[str, Field(min_length=1, description="Target path")]
    strategy: Annotated[Strategy, Field(description="Deployment strategy")] = Strategy.SYMLINK
    is_template: Annotated[bool, Field(description="Render source as template")] = False
    template_vars: Annotated[
        dict[str, Any],
        Field(default_factory=dict, description="Template variables"),
    ]
    platform_vars: Annotated[
        dict[str, dict[str, Any]],
        Field(default_factory=dict, description="Platform-specific template variables"),
    ]
    file_mode: Annotated[str | None, Field(description="Octal file mode")] = None
    directory_mode: Annotated[str | None, Field(description="Octal directory mode")] = None
    recursive: Annotated[bool, Field(description="Apply modes recursively")] = False
    conflict_policy: Annotated[
        ConflictPolicy | None,
        Field(description="Conflict resolution policy"),
    ] = None
    backup: Annotated[
        BackupPolicy,
        Field(default_factory=BackupPolicy, description="Backup policy"),
    ]
    application: Annotated[
        ApplicationGate | None,
        Field(description="Application gate"),
    ] = None

    @field_validator("target", "source")
    @classmethod
    def path_not_blank(cls, v: str) -> str:
        """Reject whitespace-only paths."""
        if not v.strip():
            msg = "path cannot be blank"
            raise ValueError(msg)
        return v

    @field_validator("file_mode", "directory_mode")
    @classmethod
    def normalize_mode(cls, v: str | None) -> str | None:
        """Validate and normalize octal mode strings to four digits."""
        if v is None:
            return None
        return format_mode(parse_mode(v))

    @model_validator(mode="after")
    def validate_template_flag(self) -> ManagedResource:
        """Reject templates combined with the symlink strategy."""
        if self.is_template and self.strategy == Strategy.SYMLINK:
            msg = "is_template requires the copy or template strategy, not symlink"
            raise ValueError(msg)
        return self

    @property
    def effective_strategy(self) -> Strategy:
        """Strategy after folding the is_template flag into it."""
        if self.is_template:
            return Strategy.TEMPLATE
        return self.strategy


class GlobalPolicy(BaseModel):
    """Run-wide settings applied to every resource.

    Attributes:
        conflict_policy: Default conflict rule.
        backup_directory: Default backup directory.
        dry_run: Validate and decide without mutating the filesystem.
        detect_applications: When False, every gate sees method="disabled".
        detection_methods: Default ordered detection methods.
        dotfiles_root: Base directory for relative source paths.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    conflict_policy: Annotated[
        ConflictPolicy,
        Field(description="Default conflict resolution"),
    ] = ConflictPolicy.BACKUP
    backup_directory: Annotated[
        str,
        Field(description="Default backup directory"),
    ] = DEFAULT_BACKUP_DIRECTORY
    dry_run: Annotated[bool, Field(description="Dry-run mode")] = False
    detect_applications: Annotated[bool, Field(description="Enable detection")] = True
    detection_methods: Annotated[
        tuple[DetectionMethod, ...],
        Field(description="Default detection methods"),
    ] = DEFAULT_DETECTION_METHODS
    dotfiles_root: Annotated[str | None, Field(description="Dotfiles root")] = None

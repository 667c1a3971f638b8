"""Manifest models for declarative dotfiles configuration.

This module defines the Pydantic models representing the manifest.toml
structure that describes the desired dotfiles state.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from dotctl.models.detection import DEFAULT_DETECTION_METHODS, DetectionMethod
from dotctl.models.resource import (
    DEFAULT_BACKUP_DIRECTORY,
    ApplicationGate,
    BackupPolicy,
    ConflictPolicy,
    GlobalPolicy,
    ManagedResource,
    Strategy,
)

TargetPlatform = Literal["auto", "macos", "linux", "windows"]


class Settings(BaseModel):
    """Global settings section of the manifest.

    Attributes:
        dotfiles_root: Base directory for relative source paths.
        conflict_policy: Default conflict resolution policy.
        backup_directory: Default backup directory.
        dry_run: Always run in dry-run mode.
        detect_applications: Enable application detection for gates.
        detection_methods: Default ordered detection methods.
        target_platform: Platform whose directory layout to use.
        max_workers: Maximum number of resources reconciled in parallel.
    """

    model_config = ConfigDict(extra="forbid")

    dotfiles_root: Annotated[str, Field(description="Dotfiles root directory")] = "~/dotfiles"
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
        list[DetectionMethod],
        Field(
            default_factory=lambda: list(DEFAULT_DETECTION_METHODS),
            description="Default detection methods",
        ),
    ]
    target_platform: Annotated[
        TargetPlatform,
        Field(description="Target platform"),
    ] = "auto"
    max_workers: Annotated[int, Field(ge=1, le=64, description="Parallel workers")] = 4


class RepositoryConfig(BaseModel):
    """Optional remote dotfiles repository.

    Attributes:
        url: Clone URL or GitHub shorthand.
        branch: Branch to check out.
        token: Personal access token.
        username: Username for token authentication.
        ssh_key_path: SSH private key path.
        ssh_passphrase: SSH key passphrase.
    """

    model_config = ConfigDict(extra="forbid")

    url: Annotated[str, Field(min_length=1, description="Repository URL")]
    branch: Annotated[str | None, Field(description="Branch")] = None
    token: Annotated[str | None, Field(description="Personal access token")] = None
    username: Annotated[str | None, Field(description="Token username")] = None
    ssh_key_path: Annotated[str | None, Field(description="SSH key path")] = None
    ssh_passphrase: Annotated[str | None, Field(description="SSH key passphrase")] = None


class ResourceEntry(BaseModel):
    """A resource as written in the manifest, keyed by its id.

    Attributes mirror ManagedResource minus the id.
    """

    model_config = ConfigDict(extra="forbid")

    source: Annotated[str, Field(min_length=1, description="Source path")]
    target: Annotated[str, Field(min_length=1, description="Target path")]
    strategy: Annotated[Strategy, Field(description="Deployment strategy")] = Strategy.SYMLINK
    is_template: Annotated[bool, Field(description="Render as template")] = False
    template_vars: Annotated[dict[str, Any], Field(default_factory=dict)]
    platform_vars: Annotated[dict[str, dict[str, Any]], Field(default_factory=dict)]
    file_mode: Annotated[str | None, Field(description="Octal file mode")] = None
    directory_mode: Annotated[str | None, Field(description="Octal directory mode")] = None
    recursive: Annotated[bool, Field(description="Apply modes recursively")] = False
    conflict_policy: Annotated[ConflictPolicy | None, Field(description="Conflict policy")] = None
    backup: Annotated[BackupPolicy | None, Field(description="Backup policy")] = None
    application: Annotated[ApplicationGate | None, Field(description="Application gate")] = None


class Manifest(BaseModel):
    """Complete manifest representing desired dotfiles state.

    Attributes:
        settings: Global settings.
        repository: Optional remote repository providing the dotfiles root.
        resources: Resources keyed by id.
    """

    model_config = ConfigDict(extra="forbid")

    settings: Annotated[Settings, Field(default_factory=Settings, description="Settings")]
    repository: Annotated[
        RepositoryConfig | None,
        Field(description="Remote dotfiles repository"),
    ] = None
    resources: Annotated[
        dict[str, ResourceEntry],
        Field(default_factory=dict, description="Managed resources"),
    ]

    @model_validator(mode="after")
    def validate_resources(self) -> Manifest:
        """Build every resource once so declaration errors surface at load time.

        Problems are reported as ``resources.<id>.<field>: <message>``.
        """
        problems: list[str] = []
        for resource_id, entry in self.resources.items():
            try:
                self._build_resource(resource_id, entry)
            except ValidationError as e:
                for item in e.errors():
                    location = ".".join(["resources", resource_id, *(str(p) for p in item["loc"])])
                    problems.append(f"{location}: {item['msg']}")
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def _build_resource(self, resource_id: str, entry: ResourceEntry) -> ManagedResource:
        data = entry.model_dump(exclude_none=True, exclude={"backup"})
        backup = entry.backup or BackupPolicy()
        if backup.directory is None:
            backup = backup.model_copy(update={"directory": self.settings.backup_directory})
        return ManagedResource(id=resource_id, backup=backup, **data)

    def to_resources(self) -> list[ManagedResource]:
        """Convert manifest entries into validated ManagedResource values.

        Resources without their own backup directory inherit the global one.
        """
        return [
            self._build_resource(resource_id, entry)
            for resource_id, entry in self.resources.items()
        ]

    def to_policy(self, *, dry_run: bool = False, dotfiles_root: str | None = None) -> GlobalPolicy:
        """Build the global policy for a run.

        Args:
            dry_run: Force dry-run mode on top of the manifest setting.
            dotfiles_root: Override for the dotfiles root (e.g. a synced clone).
        """
        settings = self.settings
        return GlobalPolicy(
            conflict_policy=settings.conflict_policy,
            backup_directory=settings.backup_directory,
            dry_run=dry_run or settings.dry_run,
            detect_applications=settings.detect_applications,
            detection_methods=tuple(settings.detection_methods),
            dotfiles_root=dotfiles_root or settings.dotfiles_root,
        )

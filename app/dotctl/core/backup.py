"""Backups of occupied targets taken before destructive mutation.

A backup is fully written before this module returns; if anything goes
wrong while copying, the partial snapshot is removed and BackupError is
raised. The original path is only ever read here.
"""

import errno
import gzip
import hashlib
import json
import logging
import os
import re
import shutil
import tarfile
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from dotctl.core.conflict import inspect_target
from dotctl.core.errors import BackupError
from dotctl.core.permissions import format_mode
from dotctl.models.conflict import ExistingState
from dotctl.models.outcome import BackupRecord
from dotctl.models.resource import BackupFormat, BackupPolicy

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".backup"
META_SUFFIX = ".meta"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(slots=True)
class BackupResult:
    """A backup record plus non-fatal problems met while producing it.

    Attributes:
        record: The backup that now exists on disk (or would, in dry-run).
        warnings: Compression or metadata failures.
    """

    record: BackupRecord
    warnings: list[str] = field(default_factory=list)


def _sanitize(resource_id: str) -> str:
    return _UNSAFE_CHARS.sub("_", resource_id).strip("._") or "resource"


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _creatable_dir_problem(directory: Path) -> str | None:
    """Why ``directory`` could not be created, or None if it looks creatable."""
    if directory.is_dir():
        return None if os.access(directory, os.W_OK | os.X_OK) else os.strerror(errno.EACCES)
    ancestor = directory
    while not ancestor.exists() and not ancestor.is_symlink():
        if ancestor.parent == ancestor:
            return None
        ancestor = ancestor.parent
    if not ancestor.is_dir():
        return os.strerror(errno.ENOTDIR)
    if not os.access(ancestor, os.W_OK | os.X_OK):
        return os.strerror(errno.EACCES)
    return None


def _remove(path: Path) -> None:
    """Remove a file, symlink or directory tree if it exists."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


class BackupManager:
    """Snapshots targets into a backup directory.

    Naming:
    - timestamped: ``<name>.backup.<YYYY-MM-DD-HHMMSS-ffffff>.<resource id>``,
      a new entry per run that never overwrites an earlier one
    - simple: ``<name>.backup``, replaced on every run

    Compressed backups get a ``.gz`` suffix (``.tar.gz`` for directories).

    Attributes:
        _dry_run: If True, compute the backup path without writing anything.
        _clock: Source of the current time.
    """

    def __init__(
        self,
        *,
        dry_run: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._dry_run = dry_run
        self._clock = clock or (lambda: datetime.now(UTC))

    def backup(
        self,
        path: Path,
        policy: BackupPolicy,
        *,
        backup_dir: Path,
        resource_id: str,
    ) -> BackupResult:
        """Snapshot ``path`` into ``backup_dir``.

        Args:
            path: Occupied target to back up.
            policy: Backup settings (format, compression, metadata).
            backup_dir: Resolved backup directory.
            resource_id: Resource identifier, part of timestamped names.

        Returns:
            BackupResult whose record names an existing on-disk snapshot.

        Raises:
            BackupError: If the snapshot cannot be fully written.
        """
        state = inspect_target(path)
        if state == ExistingState.ABSENT:
            msg = f"Cannot back up {path}: path does not exist"
            raise BackupError(msg)

        now = self._clock()
        if policy.format == BackupFormat.SIMPLE:
            candidate = backup_dir / f"{path.name}{BACKUP_MARKER}"
        else:
            stamp = now.strftime("%Y-%m-%d-%H%M%S-%f")
            candidate = backup_dir / f"{path.name}{BACKUP_MARKER}.{stamp}.{_sanitize(resource_id)}"

        problem = _creatable_dir_problem(backup_dir)
        if problem is not None:
            msg = f"Cannot create backup directory {backup_dir}: {problem}"
            raise BackupError(msg)

        if self._dry_run:
            logger.info("Dry-run: would back up %s to %s", path, candidate)
            return BackupResult(
                BackupRecord(
                    original_path=str(path),
                    backup_path=str(candidate),
                    timestamp=now.isoformat(),
                    format=policy.format.value,
                )
            )

        try:
            backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Cannot create backup directory {backup_dir}: {e.strerror or e}"
            raise BackupError(msg) from e

        if policy.format == BackupFormat.SIMPLE:
            backup_path = self._write_simple(path, state, candidate)
        else:
            backup_path = self._write_unique(path, state, candidate)
        logger.info("Backed up %s to %s", path, backup_path)

        result = BackupResult(
            BackupRecord(
                original_path=str(path),
                backup_path=str(backup_path),
                timestamp=now.isoformat(),
                format=policy.format.value,
            )
        )

        if policy.compression and state != ExistingState.SYMLINK:
            result = self._compress(result, state)

        if policy.metadata:
            self._write_metadata(path, state, result)

        return result

    def _write_unique(self, source: Path, state: ExistingState, candidate: Path) -> Path:
        """Copy into a name no other run holds, adding a counter on collision."""
        attempt = candidate
        for counter in range(1, 1000):
            try:
                self._copy_exclusive(source, state, attempt)
                return attempt
            except FileExistsError:
                attempt = candidate.with_name(f"{candidate.name}-{counter}")
        msg = f"Cannot find a free backup name for {source} in {candidate.parent}"
        raise BackupError(msg)

    def _write_simple(self, source: Path, state: ExistingState, final: Path) -> Path:
        """Copy to a temporary sibling, then swap it in place of the old backup."""
        staging = final.with_name(f"{final.name}.tmp-{uuid.uuid4().hex[:8]}")
        self._copy_exclusive(source, state, staging)
        try:
            for stale in (final, *self._compressed_variants(final)):
                _remove(stale)
            os.replace(staging, final)
        except OSError as e:
            _remove(staging)
            msg = f"Failed to replace backup {final}: {e}"
            raise BackupError(msg) from e
        return final

    @staticmethod
    def _compressed_variants(path: Path) -> tuple[Path, ...]:
        return (
            path.with_name(path.name + ".gz"),
            path.with_name(path.name + ".tar.gz"),
        )

    def _copy_exclusive(self, source: Path, state: ExistingState, dest: Path) -> None:
        """Copy ``source`` to ``dest``, failing with FileExistsError if taken.

        Raises:
            FileExistsError: If ``dest`` already exists.
            BackupError: If the copy fails part way; the partial copy is removed.
        """
        created = False
        try:
            if state == ExistingState.SYMLINK:
                os.symlink(os.readlink(source), dest)
                created = True
            elif state == ExistingState.DIRECTORY:
                dest.mkdir()
                created = True
                shutil.copytree(source, dest, symlinks=True, dirs_exist_ok=True)
            else:
                with open(dest, "xb") as out:
                    created = True
                    with open(source, "rb") as src:
                        shutil.copyfileobj(src, out)
                shutil.copystat(source, dest)
        except FileExistsError:
            if created:
                _remove(dest)
                msg = f"Failed to back up {source}: destination appeared during copy"
                raise BackupError(msg) from None
            raise
        except (OSError, shutil.Error) as e:
            if created:
                try:
                    _remove(dest)
                except OSError as cleanup_error:
                    logger.warning("Could not remove partial backup %s: %s", dest, cleanup_error)
            msg = f"Failed to back up {source}: {e}"
            raise BackupError(msg) from e

    def _compress(self, result: BackupResult, state: ExistingState) -> BackupResult:
        """Gzip the raw backup; on failure keep it uncompressed and warn."""
        raw = Path(result.record.backup_path)
        if state == ExistingState.DIRECTORY:
            compressed = raw.with_name(raw.name + ".tar.gz")
        else:
            compressed = raw.with_name(raw.name + ".gz")

        try:
            if state == ExistingState.DIRECTORY:
                with tarfile.open(compressed, "w:gz") as tar:
                    tar.add(raw, arcname=raw.name)
                try:
                    shutil.rmtree(raw)
                except OSError as e:
                    logger.warning("Could not remove raw backup %s after archiving: %s", raw, e)
                    result.warnings.append(f"leftover raw backup files in {raw}: {e}")
            else:
                with open(raw, "rb") as src, gzip.open(compressed, "wb") as out:
                    shutil.copyfileobj(src, out)
                shutil.copymode(raw, compressed)
                raw.unlink()
        except (OSError, tarfile.TarError) as e:
            logger.warning("Compression of %s failed, keeping uncompressed backup: %s", raw, e)
            if compressed.exists() and raw.exists():
                compressed.unlink()
            result.warnings.append(f"backup compression failed, kept uncompressed backup: {e}")
            return result

        record = result.record
        return BackupResult(
            BackupRecord(
                original_path=record.original_path,
                backup_path=str(compressed),
                timestamp=record.timestamp,
                format=record.format,
                compressed=True,
            ),
            result.warnings,
        )

    def _write_metadata(self, source: Path, state: ExistingState, result: BackupResult) -> None:
        """Write the ``.meta`` JSON sidecar; failures become warnings."""
        record = result.record
        backup_path = Path(record.backup_path)
        meta_path = backup_path.with_name(backup_path.name + META_SUFFIX)
        try:
            st = os.lstat(source)
            is_file = state == ExistingState.REGULAR_FILE
            metadata = {
                "original_path": record.original_path,
                "backup_path": record.backup_path,
                "timestamp": record.timestamp,
                "format": record.format,
                "checksum": _sha256(source) if is_file else None,
                "compressed": record.compressed,
                "original_size": st.st_size if is_file else None,
                "backup_size": os.lstat(backup_path).st_size,
                "file_mode": format_mode(st.st_mode),
            }
            meta_path.write_text(json.dumps(metadata, indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to write backup metadata %s: %s", meta_path, e)
            result.warnings.append(f"could not write backup metadata: {e}")


def read_metadata(backup_path: Path) -> dict[str, object] | None:
    """Load the ``.meta`` sidecar for a backup, if present.

    Args:
        backup_path: Path of the backup (not of the sidecar).

    Returns:
        Parsed metadata, or None if there is no readable sidecar.
    """
    meta_path = backup_path.with_name(backup_path.name + META_SUFFIX)
    try:
        data = json.loads(meta_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Unreadable backup metadata %s: %s", meta_path, e)
        return None
    return data if isinstance(data, dict) else None

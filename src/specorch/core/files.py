"""Atomic file operations with backup and rollback.

Writes go to a temporary file in the target's directory and are committed with
``os.replace``, so readers only ever see the old or the new bytes. Backups are
timestamped copies kept in a separate directory and pruned oldest first.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".backup."


@dataclass
class WriteResult:
    """Result of an atomic write."""

    success: bool
    file_path: Path
    error: str | None = None
    backup_path: Path | None = None


@dataclass
class BackupResult:
    """Result of a backup operation."""

    success: bool
    backup_path: Path | None = None
    error: str | None = None


def atomic_write(
    file_path: Path,
    content: str,
    validate: Callable[[str], bool] | None = None,
    create_dirs: bool = True,
    encoding: str = "utf-8",
) -> WriteResult:
    """Write content to a file with write-to-temp-then-replace.

    Args:
        file_path: Target file.
        content: Full replacement content.
        validate: Optional check run before the commit; False aborts the write.
        create_dirs: Create missing parent directories.
        encoding: Text encoding.

    Returns:
        WriteResult. On failure the target is untouched and no temp file remains.
    """
    file_path = Path(file_path)
    temp_path: Path | None = None

    try:
        if create_dirs:
            file_path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(
            dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
        )
        temp_path = Path(temp_name)

        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        if validate is not None and not validate(content):
            return WriteResult(success=False, file_path=file_path, error="Content validation failed")

        if file_path.exists():
            shutil.copymode(file_path, temp_path)

        os.replace(temp_path, file_path)
        temp_path = None

        return WriteResult(success=True, file_path=file_path)

    except (OSError, UnicodeError) as e:
        return WriteResult(success=False, file_path=file_path, error=f"Failed to write file: {e}")
    finally:
        if temp_path is not None:
            _discard(temp_path)


def safe_read(file_path: Path, encoding: str = "utf-8") -> str | None:
    """Read a file exactly as stored, returning None if it cannot be read.

    Line endings are not translated.
    """
    try:
        with open(file_path, encoding=encoding, newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError):
        return None


def normalize_line_endings(text: str) -> str:
    """Convert CRLF and CR line endings to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _backup_prefix(file_path: Path) -> str:
    return f"{Path(file_path).name}{BACKUP_MARKER}"


def create_backup(file_path: Path, backup_dir: Path, max_backups: int = 10) -> BackupResult:
    """Copy a file's current bytes to a timestamped backup.

    Backup names are ``{filename}.backup.{UTC timestamp}-{counter}{suffix}`` so that
    lexicographic order is chronological order.
    """
    file_path = Path(file_path)
    backup_dir = Path(backup_dir)

    if not file_path.is_file():
        return BackupResult(success=False, error="Source file does not exist")

    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        # Same-microsecond backups get the next counter so nothing is overwritten
        counter = 0
        while True:
            backup_path = backup_dir / (
                f"{_backup_prefix(file_path)}{stamp}-{counter:03d}{file_path.suffix}"
            )
            if not backup_path.exists():
                break
            counter += 1

        shutil.copy2(file_path, backup_path)
    except OSError as e:
        return BackupResult(success=False, error=f"Failed to create backup: {e}")

    # The backup just taken is always kept
    prune_backups(file_path, backup_dir, max(max_backups, 1))

    return BackupResult(success=True, backup_path=backup_path)


def list_backups(file_path: Path, backup_dir: Path) -> list[Path]:
    """List backups of a file, newest first."""
    backup_dir = Path(backup_dir)
    if not backup_dir.is_dir():
        return []

    prefix = _backup_prefix(file_path)
    backups = [p for p in backup_dir.iterdir() if p.is_file() and p.name.startswith(prefix)]
    return sorted(backups, key=lambda p: p.name, reverse=True)


def prune_backups(file_path: Path, backup_dir: Path, max_backups: int) -> list[Path]:
    """Delete backups beyond ``max_backups``, oldest first.

    Returns:
        The backups that were removed.
    """
    removed: list[Path] = []
    for stale in list_backups(file_path, backup_dir)[max(max_backups, 0):]:
        try:
            stale.unlink()
            removed.append(stale)
        except OSError as e:
            logger.warning("Could not prune backup %s: %s", stale, e)
    return removed


def restore_from_backup(backup_path: Path, target_path: Path) -> WriteResult:
    """Atomically restore a file's bytes from one of its backups."""
    backup_path = Path(backup_path)
    target_path = Path(target_path)
    if not backup_path.is_file():
        return WriteResult(success=False, file_path=target_path, error="Backup file does not exist")

    temp_path: Path | None = None
    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            dir=target_path.parent, prefix=f".{target_path.name}.", suffix=".tmp"
        )
        os.close(fd)
        temp_path = Path(temp_name)

        shutil.copy2(backup_path, temp_path)
        os.replace(temp_path, target_path)
        temp_path = None
        return WriteResult(success=True, file_path=target_path)
    except OSError as e:
        return WriteResult(success=False, file_path=target_path, error=f"Failed to restore: {e}")
    finally:
        if temp_path is not None:
            _discard(temp_path)


def atomic_write_with_backup(
    file_path: Path,
    content: str,
    backup_dir: Path,
    max_backups: int = 10,
    validate: Callable[[str], bool] | None = None,
) -> WriteResult:
    """Back up an existing file, then atomically replace it.

    Brand-new files are written without a backup.
    """
    file_path = Path(file_path)
    backup_path: Path | None = None

    if file_path.exists():
        backup = create_backup(file_path, backup_dir, max_backups)
        if not backup.success:
            return WriteResult(
                success=False, file_path=file_path, error=f"Backup failed: {backup.error}"
            )
        backup_path = backup.backup_path

    result = atomic_write(file_path, content, validate=validate)
    result.backup_path = backup_path
    return result


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove temporary file %s: %s", path, e)

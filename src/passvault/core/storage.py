"""
Storage module for the encrypted vault file

Structure Map for reference:
==============================
 - <config_dir>/
      - vault.enc                 (container, see core/container.py)
      - .vault.enc.<random>.tmp   (only while a save is in flight)
      - backups/
          - vault-YYYYmmdd-HHMMSS-ffffff.enc
==============================
For reference:
> Every write goes to a sibling temp file first and is then renamed over the
  target, so the vault path only ever holds a complete old file or a complete
  new one.
> The rename is the commit point. A crash before it leaves the old file, a
  crash after it leaves the new one.

"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from . import container
from .exceptions import VaultNotFoundError, VaultStorageError

logger = logging.getLogger(__name__)

DIR_MODE = 0o700
FILE_MODE = 0o600
BACKUP_PREFIX = "vault-"
BACKUP_SUFFIX = ".enc"


def ensure_private_dir(path: Path) -> None:
    """Create ``path`` (and parents) with owner-only permissions if missing."""
    try:
        path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
    except OSError as exc:
        raise VaultStorageError(f"failed to create directory {path}: {exc}") from exc


def _fsync_dir(path: Path) -> None:
    # Persist the rename itself; not supported on every platform.
    if os.name != "posix":
        return
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write(path: Path | str, data: bytes) -> None:
    """
    Write ``data`` to ``path`` via temp file + rename.

    - parent directory is created with 0700 if missing
    - temp file lives in the same directory (same filesystem) with 0600
    - on any failure the temp file is removed and the error re-raised as
      VaultStorageError; the previous file at ``path`` is untouched
    """
    path = Path(path)
    ensure_private_dir(path.parent)

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
    except OSError as exc:
        raise VaultStorageError(f"failed to create temp file in {path.parent}: {exc}") from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            os.chmod(tmp_path, FILE_MODE)
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise VaultStorageError(f"failed to write {path}: {exc}") from exc

    try:
        _fsync_dir(path.parent)
    except OSError as exc:
        # the rename already happened; durability of the directory entry is best-effort
        logger.warning("could not fsync %s: %s", path.parent, exc)


class VaultFile:
    """Repository for a single vault container on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> bytes:
        """Return the whole container."""
        try:
            return self.path.read_bytes()
        except FileNotFoundError as exc:
            raise VaultNotFoundError(f"no vault at {self.path}") from exc
        except OSError as exc:
            raise VaultStorageError(f"failed to read {self.path}: {exc}") from exc

    def read_params(self) -> bytes:
        """
        Return the serialized KDF record, reading only header + params.

        The sealed payload is never read, so this is cheap to call before
        every save.
        """
        try:
            with open(self.path, "rb") as f:
                header = f.read(container.HEADER_SIZE)
                params_len = container.read_header(header)
                return container.peek_params(header + f.read(params_len))
        except FileNotFoundError as exc:
            raise VaultNotFoundError(f"no vault at {self.path}") from exc
        except OSError as exc:
            raise VaultStorageError(f"failed to read {self.path}: {exc}") from exc

    def write(self, data: bytes) -> None:
        atomic_write(self.path, data)
        logger.info("vault saved to %s (%d bytes)", self.path, len(data))

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise VaultStorageError(f"failed to delete {self.path}: {exc}") from exc


class BackupPolicy:
    """Copy the current vault aside before it is overwritten."""

    def __init__(self, backup_dir: Path | str, max_backups: int = 10, interval_hours: float = 0):
        self.backup_dir = Path(backup_dir).expanduser()
        self.max_backups = max_backups
        self.interval = timedelta(hours=interval_hours)

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """True when no backup exists younger than ``interval``."""
        if not self.interval:
            return True
        backups = self.list_backups()
        if not backups:
            return True
        now = now or datetime.now(timezone.utc)
        newest = datetime.fromtimestamp(backups[-1].stat().st_mtime, timezone.utc)
        return now - newest >= self.interval

    def list_backups(self) -> List[Path]:
        """Existing backups, oldest first."""
        if not self.backup_dir.is_dir():
            return []
        found = [
            p
            for p in self.backup_dir.iterdir()
            if p.is_file() and p.name.startswith(BACKUP_PREFIX) and p.name.endswith(BACKUP_SUFFIX)
        ]
        return sorted(found, key=lambda p: p.name)

    def _next_name(self, now: datetime) -> Path:
        stamp = now.strftime("%Y%m%d-%H%M%S-%f")
        candidate = self.backup_dir / f"{BACKUP_PREFIX}{stamp}{BACKUP_SUFFIX}"
        n = 1
        while candidate.exists():
            candidate = self.backup_dir / f"{BACKUP_PREFIX}{stamp}-{n}{BACKUP_SUFFIX}"
            n += 1
        return candidate

    def backup(self, source: Path, now: Optional[datetime] = None) -> Optional[Path]:
        """Copy ``source`` into the backup dir and prune; no-op if it DNE or not due."""
        if not source.is_file() or not self.is_due(now):
            return None
        ensure_private_dir(self.backup_dir)
        destination = self._next_name(now or datetime.now(timezone.utc))
        try:
            shutil.copyfile(source, destination)
            os.chmod(destination, FILE_MODE)
        except OSError as exc:
            raise VaultStorageError(f"backup to {destination} failed: {exc}") from exc
        logger.info("vault backed up to %s", destination)
        self.prune()
        return destination

    def prune(self) -> None:
        if self.max_backups <= 0:
            return
        backups = self.list_backups()
        for old in backups[: max(0, len(backups) - self.max_backups)]:
            try:
                old.unlink()
            except OSError as exc:
                raise VaultStorageError(f"failed to prune backup {old}: {exc}") from exc

"""Unit tests for atomic vault persistence and backups."""

import os
import stat
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from passvault.core import container
from passvault.core.exceptions import CorruptVaultError, VaultNotFoundError, VaultStorageError
from passvault.core.storage import BackupPolicy, VaultFile, atomic_write


def _mode(path):
    return stat.S_IMODE(os.stat(path).st_mode)


def _temp_files(directory):
    return [p for p in directory.iterdir() if p.name.endswith(".tmp")]


# ==============================================================================
# atomic_write
# ==============================================================================

def test_atomic_write_creates_private_parent(tmp_path):
    target = tmp_path / "nested" / "dir" / "vault.enc"
    atomic_write(target, b"payload")

    assert target.read_bytes() == b"payload"
    assert _mode(target) == 0o600
    assert _mode(target.parent) == 0o700
    assert _temp_files(target.parent) == []


def test_atomic_write_replaces_existing(tmp_path):
    target = tmp_path / "vault.enc"
    target.write_bytes(b"old")
    atomic_write(target, b"new contents")
    assert target.read_bytes() == b"new contents"
    assert _temp_files(tmp_path) == []


def test_crash_before_rename_keeps_old_file(tmp_path):
    """A failing rename leaves the original byte-for-byte and no temp file."""
    target = tmp_path / "vault.enc"
    target.write_bytes(b"original vault")

    with patch("passvault.core.storage.os.replace", side_effect=OSError("disk gone")):
        with pytest.raises(VaultStorageError):
            atomic_write(target, b"replacement that never lands")

    assert target.read_bytes() == b"original vault"
    assert _temp_files(tmp_path) == []


def test_crash_during_write_keeps_old_file(tmp_path):
    target = tmp_path / "vault.enc"
    target.write_bytes(b"original vault")

    with patch("passvault.core.storage.os.fsync", side_effect=OSError("io error")):
        with pytest.raises(VaultStorageError):
            atomic_write(target, b"new")

    assert target.read_bytes() == b"original vault"
    assert _temp_files(tmp_path) == []


def test_crash_after_rename_leaves_new_file(tmp_path):
    """Once the rename happened the new content is in place even if later steps fail."""
    target = tmp_path / "vault.enc"
    target.write_bytes(b"original vault")

    with patch("passvault.core.storage._fsync_dir", side_effect=OSError("dir fsync")):
        atomic_write(target, b"new vault")

    assert target.read_bytes() == b"new vault"


def test_temp_file_is_sibling(tmp_path):
    target = tmp_path / "vault.enc"
    seen = {}
    real_replace = os.replace

    def spy(src, dst):
        seen["src"] = src
        return real_replace(src, dst)

    with patch("passvault.core.storage.os.replace", side_effect=spy):
        atomic_write(target, b"x")

    tmp = seen["src"]
    assert os.path.dirname(tmp) == str(tmp_path)
    assert os.path.basename(tmp) != "vault.enc"


def test_unwritable_directory_is_reported(tmp_path):
    with patch("passvault.core.storage.tempfile.mkstemp", side_effect=PermissionError("denied")):
        with pytest.raises(VaultStorageError):
            atomic_write(tmp_path / "vault.enc", b"x")


# ==============================================================================
# VaultFile
# ==============================================================================

def test_vault_file_read_missing(tmp_path):
    vf = VaultFile(tmp_path / "missing.enc")
    assert vf.exists() is False
    with pytest.raises(VaultNotFoundError):
        vf.read()
    with pytest.raises(VaultNotFoundError):
        vf.read_params()


def test_vault_file_round_trip(tmp_path):
    vf = VaultFile(tmp_path / "vault.enc")
    data = container.encode(b"sealed-bytes" * 10, b'{"p":1}')
    vf.write(data)
    assert vf.exists()
    assert vf.read() == data
    assert vf.read_params() == b'{"p":1}'


def test_vault_file_read_params_validates_header(tmp_path):
    vf = VaultFile(tmp_path / "vault.enc")
    vf.path.write_bytes(b"garbage")
    with pytest.raises(CorruptVaultError) as exc_info:
        vf.read_params()
    assert exc_info.value.reason == CorruptVaultError.TOO_SMALL


def test_vault_file_delete_is_idempotent(tmp_path):
    vf = VaultFile(tmp_path / "vault.enc")
    vf.write(b"x")
    vf.delete()
    vf.delete()
    assert not vf.exists()


# ==============================================================================
# BackupPolicy
# ==============================================================================

def test_backup_copies_and_prunes(tmp_path):
    source = tmp_path / "vault.enc"
    source.write_bytes(b"v1")
    policy = BackupPolicy(tmp_path / "backups", max_backups=2)

    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    made = [policy.backup(source, now=start + timedelta(seconds=i)) for i in range(4)]

    remaining = policy.list_backups()
    assert remaining == made[2:]
    assert remaining[0].read_bytes() == b"v1"
    assert _mode(remaining[0]) == 0o600


def test_backup_of_missing_source_is_noop(tmp_path):
    policy = BackupPolicy(tmp_path / "backups")
    assert policy.backup(tmp_path / "nope.enc") is None
    assert policy.list_backups() == []


def test_backup_same_timestamp_gets_unique_name(tmp_path):
    source = tmp_path / "vault.enc"
    source.write_bytes(b"v")
    policy = BackupPolicy(tmp_path / "backups", max_backups=0)
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    first = policy.backup(source, now=now)
    second = policy.backup(source, now=now)
    assert first != second
    assert len(policy.list_backups()) == 2


def test_backup_interval(tmp_path):
    source = tmp_path / "vault.enc"
    source.write_bytes(b"v")
    policy = BackupPolicy(tmp_path / "backups", interval_hours=24)

    assert policy.backup(source) is not None
    assert policy.backup(source) is None
    later = datetime.now(timezone.utc) + timedelta(hours=25)
    assert policy.is_due(later)

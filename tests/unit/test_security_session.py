"""
Unit tests for the vault unlock session.
"""

from unittest.mock import patch

import pytest

from passvault.core import container
from passvault.core.exceptions import (
    CorruptVaultError,
    DecryptionFailedError,
    StaleVaultError,
    TooManyAttemptsError,
    VaultLockedError,
    VaultNotFoundError,
)
from passvault.core.models import Entry
from passvault.core.storage import BackupPolicy
from passvault.security.kdf import KeyDerivationParams, deserialize_params, generate_salt
from passvault.security.session import VaultSession


PASSWORD = "CorrectHorse1!"


def fast_params():
    return KeyDerivationParams(salt=generate_salt(), iterations=1, memory=8, parallelism=1)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(tmp_path, clock):
    """A locked session pointing at a not-yet-created vault."""
    return VaultSession(tmp_path / "vault.enc", params_factory=fast_params,
                        max_unlock_attempts=3, unlock_cooldown=60, clock=clock)


@pytest.fixture
def created(session):
    session.create_vault(PASSWORD)
    session.vault.add_entry(Entry(name="GitHub", username="octo", password="hunter2"))
    session.save()
    session.lock()
    return session


# ==============================================================================
# Tests: Create / Unlock / Lock
# ==============================================================================

def test_create_vault_writes_container(session):
    vault = session.create_vault(PASSWORD)
    assert session.is_unlocked
    assert vault.entries == []

    data = session.path.read_bytes()
    assert data[:8] == container.MAGIC
    params = deserialize_params(container.peek_params(data))
    assert params.iterations == 1
    assert params.memory == 8


def test_unlock_round_trip(created):
    vault = created.unlock(PASSWORD)
    (entry,) = vault.entries
    assert (entry.name, entry.username, entry.password) == ("GitHub", "octo", "hunter2")
    assert created.failed_attempts == 0


def test_unlock_uses_stored_params(created):
    """The params factory must not be consulted on unlock."""
    created.params_factory = lambda: pytest.fail("unlock derived with fresh params")
    created.unlock(PASSWORD)


def test_unlock_missing_vault(session):
    with pytest.raises(VaultNotFoundError):
        session.unlock(PASSWORD)


def test_unlock_corrupt_file(session):
    session.path.write_bytes(b"NOTAVAULT" * 4)
    with pytest.raises(CorruptVaultError):
        session.unlock(PASSWORD)
    assert not session.is_unlocked


def test_wrong_password(created):
    with pytest.raises(DecryptionFailedError):
        created.unlock("WrongPassword")
    assert not created.is_unlocked
    assert created.failed_attempts == 1


def test_vault_property_when_locked(session):
    with pytest.raises(VaultLockedError):
        session.vault


def test_lock_zeroes_key_and_wipes_vault(created):
    vault = created.unlock(PASSWORD)
    key = created._key
    entry = vault.entries[0]

    created.lock()

    assert key == bytearray(len(key))
    assert entry.password == ""
    assert created._key is None
    assert not created.is_unlocked
    created.lock()


def test_context_manager_locks(created):
    with created as s:
        s.unlock(PASSWORD)
        assert s.is_unlocked
    assert not created.is_unlocked


def test_open_or_create(session):
    session.open_or_create(PASSWORD)
    assert session.exists()
    session.lock()
    session.open_or_create(PASSWORD)
    assert session.is_unlocked


def test_plaintext_buffer_is_zeroed(created):
    seen = []

    with patch("passvault.security.session.zero_bytes", side_effect=seen.append):
        created.unlock(PASSWORD)

    # the decrypted JSON payload, not just the 32-byte key
    assert any(isinstance(b, bytearray) and len(b) > 32 for b in seen)


# ==============================================================================
# Tests: Throttling
# ==============================================================================

def test_throttle_after_repeated_failures(created, clock):
    for _ in range(3):
        with pytest.raises(DecryptionFailedError):
            created.unlock("nope")

    with pytest.raises(TooManyAttemptsError) as exc_info:
        created.unlock(PASSWORD)
    assert exc_info.value.retry_after == pytest.approx(60)

    clock.now += 61
    created.unlock(PASSWORD)
    assert created.is_unlocked


def test_success_resets_failure_count(created):
    with pytest.raises(DecryptionFailedError):
        created.unlock("nope")
    created.unlock(PASSWORD)
    assert created.failed_attempts == 0


# ==============================================================================
# Tests: Save
# ==============================================================================

def test_save_when_locked(session):
    with pytest.raises(VaultLockedError):
        session.save()


def test_save_persists_changes(created, tmp_path):
    vault = created.unlock(PASSWORD)
    vault.add_entry(Entry(name="Mail"))
    created.save()
    created.lock()

    other = VaultSession(tmp_path / "vault.enc", params_factory=fast_params)
    assert sorted(e.name for e in other.unlock(PASSWORD).entries) == ["GitHub", "Mail"]


def test_save_keeps_params_and_refreshes_nonce(created):
    created.unlock(PASSWORD)
    before = created.path.read_bytes()
    created.save()
    after = created.path.read_bytes()

    assert container.peek_params(before) == container.peek_params(after)
    assert before != after


def test_save_refuses_after_external_rekey(created, tmp_path):
    created.unlock(PASSWORD)

    other = VaultSession(tmp_path / "vault.enc", params_factory=fast_params)
    other.unlock(PASSWORD)
    other.change_password(PASSWORD, "AnotherPass2@")
    other.lock()

    with pytest.raises(StaleVaultError):
        created.save()


def test_save_rewrites_vanished_file(created):
    created.unlock(PASSWORD)
    created.path.unlink()
    created.save()
    assert created.exists()


def test_save_with_backup(tmp_path):
    policy = BackupPolicy(tmp_path / "backups")
    session = VaultSession(tmp_path / "vault.enc", params_factory=fast_params, backup=policy)
    session.create_vault(PASSWORD)
    assert policy.list_backups() == []

    session.save()
    (backup,) = policy.list_backups()
    assert container.peek_params(backup.read_bytes()) == container.peek_params(session.path.read_bytes())


# ==============================================================================
# Tests: Change password
# ==============================================================================

def test_change_password(created):
    created.unlock(PASSWORD)
    old_params = container.peek_params(created.path.read_bytes())

    created.change_password(PASSWORD, "AnotherPass2@")

    assert container.peek_params(created.path.read_bytes()) != old_params
    created.lock()
    with pytest.raises(DecryptionFailedError):
        created.unlock(PASSWORD)
    assert created.unlock("AnotherPass2@").entries[0].name == "GitHub"


def test_change_password_checks_current(created):
    created.unlock(PASSWORD)
    before = created.path.read_bytes()
    with pytest.raises(DecryptionFailedError):
        created.change_password("not it", "AnotherPass2@")
    assert created.path.read_bytes() == before
    assert created.is_unlocked


def test_change_password_when_locked(created):
    with pytest.raises(VaultLockedError):
        created.change_password(PASSWORD, "x")

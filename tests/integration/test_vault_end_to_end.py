"""
End-to-end vault lifecycle against real files and real Argon2id.

Most tests use cheap KDF parameters; one runs the production defaults to make
sure a vault created with them opens again.
"""

import json

import pytest

from passvault.core import container
from passvault.core.exceptions import CorruptVaultError, DecryptionFailedError
from passvault.core.models import Entry, EntryType, Folder
from passvault.security.crypto import decrypt
from passvault.security.kdf import (
    KeyDerivationParams,
    default_params,
    derive_key,
    deserialize_params,
    generate_salt,
)
from passvault.security.session import VaultSession


MASTER = "CorrectHorse1!"


def fast_params():
    return KeyDerivationParams(salt=generate_salt(), iterations=1, memory=8, parallelism=1)


@pytest.fixture
def vault_file(tmp_path):
    path = tmp_path / "vault.enc"
    session = VaultSession(path, params_factory=fast_params)
    vault = session.create_vault(MASTER)
    folder = vault.add_folder(Folder("Dev"))
    vault.add_entry(Entry(name="GitHub", username="octocat", password="p@ss", uri="https://github.com",
                          folder_id=folder.id, tags=["code"]))
    session.save()
    session.lock()
    return path


def test_entry_survives_save_and_reopen(vault_file):
    session = VaultSession(vault_file)
    vault = session.unlock(MASTER)

    (entry,) = vault.entries
    assert entry.name == "GitHub"
    assert entry.username == "octocat"
    assert entry.password == "p@ss"
    assert entry.uri == "https://github.com"
    assert vault.folder_path(entry.folder_id) == "Dev"
    assert entry.tags == ["code"]
    session.lock()


def test_wrong_password_fails(vault_file):
    with pytest.raises(DecryptionFailedError):
        VaultSession(vault_file).unlock("WrongPassword")


def test_only_stored_params_open_the_file(vault_file):
    """Deriving with any other parameter set, even the same password, cannot decrypt."""
    blob, ciphertext = container.decode(vault_file.read_bytes())
    stored = deserialize_params(blob)

    payload = json.loads(decrypt(ciphertext, derive_key(MASTER, stored)))
    assert payload["entries"][0]["name"] == "GitHub"

    other = KeyDerivationParams(salt=generate_salt(), iterations=1, memory=8, parallelism=1)
    with pytest.raises(DecryptionFailedError):
        decrypt(ciphertext, derive_key(MASTER, other))


def test_tampered_file_fails_closed(vault_file):
    data = bytearray(vault_file.read_bytes())
    data[-1] ^= 0x01
    vault_file.write_bytes(bytes(data))
    with pytest.raises(DecryptionFailedError):
        VaultSession(vault_file).unlock(MASTER)

    vault_file.write_bytes(b"PMVAULT2" + bytes(data[8:]))
    with pytest.raises(CorruptVaultError) as exc_info:
        VaultSession(vault_file).unlock(MASTER)
    assert exc_info.value.reason == CorruptVaultError.BAD_MAGIC


def test_many_entry_types_round_trip(tmp_path):
    path = tmp_path / "vault.enc"
    session = VaultSession(path, params_factory=fast_params)
    vault = session.create_vault(MASTER)
    for entry_type in EntryType:
        vault.add_entry(Entry(name=entry_type.label, type=entry_type, notes="n"))
    session.save()
    before = vault.to_dict()
    session.lock()

    assert VaultSession(path).unlock(MASTER).to_dict() == before


def test_default_params_round_trip(tmp_path):
    path = tmp_path / "vault.enc"
    session = VaultSession(path, params_factory=default_params)
    session.create_vault(MASTER)
    session.vault.add_entry(Entry(name="GitHub", password="p@ss"))
    session.save()
    session.lock()

    stored = deserialize_params(container.peek_params(path.read_bytes()))
    assert (stored.iterations, stored.memory, stored.parallelism) == (3, 65536, 4)

    reopened = VaultSession(path)
    assert reopened.unlock(MASTER).entries[0].password == "p@ss"
    reopened.lock()

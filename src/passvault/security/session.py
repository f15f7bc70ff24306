"""Unlock session for a single vault file.

A VaultSession owns the only in-memory copy of the vault key, the KDF
parameters it was derived with and the decrypted Vault. Everything that
touches them goes through one re-entrant lock, since the UI thread and the
auto-lock / clipboard timers call in on independent schedules.

    unlock(password)    peek params on disk -> derive -> decrypt -> parse
    create_vault(pw)    fresh params -> derive -> empty vault -> save
    save()              peek params on disk (must match) -> seal -> atomic write
    lock()              zero key, drop params and vault

The key is a bytearray and is overwritten with zeros on every exit path.
Decrypted plaintext comes back from the cipher as immutable bytes, so it is
copied into a bytearray that is zeroed after parsing; the immutable original
is dropped immediately (best-effort).
"""
from __future__ import annotations

import hmac
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from passvault.core import container
from passvault.core.exceptions import (
    DecryptionFailedError,
    StaleVaultError,
    TooManyAttemptsError,
    VaultLockedError,
    VaultNotFoundError,
)
from passvault.core.models import Vault, vault_from_bytes, vault_to_bytes
from passvault.core.storage import BackupPolicy, VaultFile
from .crypto import decrypt, encrypt, zero_bytes
from .kdf import (
    KeyDerivationParams,
    default_params,
    derive_key,
    deserialize_params,
    serialize_params,
)

logger = logging.getLogger(__name__)


class VaultSession:
    def __init__(
        self,
        path: Path | str,
        params_factory: Callable[[], KeyDerivationParams] = default_params,
        max_unlock_attempts: int = 5,
        unlock_cooldown: float = 300,
        backup: Optional[BackupPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.file = VaultFile(path)
        self.params_factory = params_factory
        self.max_unlock_attempts = max_unlock_attempts
        self.unlock_cooldown = unlock_cooldown
        self.backup = backup
        self._clock = clock

        self._lock = threading.RLock()
        self._key: Optional[bytearray] = None
        self._params_blob: Optional[bytes] = None
        self._vault: Optional[Vault] = None

        self._failed_attempts = 0
        self._blocked_until: Optional[float] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self.file.path

    @property
    def is_unlocked(self) -> bool:
        with self._lock:
            return self._key is not None and self._vault is not None

    @property
    def vault(self) -> Vault:
        """The open vault; raises VaultLockedError when locked."""
        with self._lock:
            if self._vault is None:
                raise VaultLockedError("vault is locked")
            return self._vault

    @property
    def failed_attempts(self) -> int:
        return self._failed_attempts

    def exists(self) -> bool:
        return self.file.exists()

    # ------------------------------------------------------------------
    # Unlock throttling
    # ------------------------------------------------------------------

    def _check_throttle(self) -> None:
        if self._blocked_until is None:
            return
        remaining = self._blocked_until - self._clock()
        if remaining > 0:
            raise TooManyAttemptsError(remaining)
        self._blocked_until = None

    def _record_failure(self) -> None:
        self._failed_attempts += 1
        logger.warning("failed unlock attempt %d for %s", self._failed_attempts, self.path)
        if self.max_unlock_attempts > 0 and self._failed_attempts >= self.max_unlock_attempts:
            self._blocked_until = self._clock() + self.unlock_cooldown
            self._failed_attempts = 0
            logger.warning("unlock blocked for %ss after repeated failures", self.unlock_cooldown)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_vault(self, password: str) -> Vault:
        """Create and persist a new empty vault, leaving the session unlocked."""
        with self._lock:
            self.zero_and_clear()
            params = self.params_factory()
            key = derive_key(password, params)
            vault = Vault()
            blob = serialize_params(params)
            try:
                self._write(vault, key, blob)
            except BaseException:
                zero_bytes(key)
                raise
            self._key, self._params_blob, self._vault = key, blob, vault
            logger.info("created new vault at %s", self.path)
            return vault

    def unlock(self, password: str) -> Vault:
        """
        Decrypt the vault on disk with ``password``.

        The key is derived with the parameters stored in the file, never with
        fresh defaults. A wrong password and a tampered payload both raise
        DecryptionFailedError.
        """
        with self._lock:
            self._check_throttle()
            self.zero_and_clear()

            data = self.file.read()
            blob, ciphertext = container.decode(data)
            params = deserialize_params(blob)
            key = derive_key(password, params)
            try:
                vault = self._open(ciphertext, key)
            except DecryptionFailedError:
                zero_bytes(key)
                self._record_failure()
                raise
            except BaseException:
                zero_bytes(key)
                raise

            self._failed_attempts = 0
            self._key, self._params_blob, self._vault = key, blob, vault
            logger.info("vault unlocked (%d entries)", len(vault.entries))
            return vault

    def open_or_create(self, password: str) -> Vault:
        """Unlock an existing vault, or create one if the file does not exist yet."""
        with self._lock:
            if self.exists():
                return self.unlock(password)
            return self.create_vault(password)

    def save(self, vault: Optional[Vault] = None) -> None:
        """
        Seal and atomically write the open vault (or ``vault``, which then
        becomes the open one).

        The parameter record on disk is re-read first; if another process has
        rekeyed the file since we unlocked, our key no longer matches and the
        save is refused with StaleVaultError.
        """
        with self._lock:
            if self._key is None:
                raise VaultLockedError("cannot save a locked vault")
            if vault is not None:
                self._vault = vault
            if self._vault is None:
                raise VaultLockedError("no vault is open")

            try:
                on_disk = self.file.read_params()
            except VaultNotFoundError:
                logger.warning("vault file %s vanished; writing it again", self.path)
            else:
                if not hmac.compare_digest(on_disk, self._params_blob):
                    raise StaleVaultError(
                        f"{self.path} was rekeyed by another process; unlock again before saving"
                    )

            self._write(self._vault, self._key, self._params_blob)

    def change_password(self, old_password: str, new_password: str) -> None:
        """Re-encrypt the open vault under ``new_password`` with fresh parameters."""
        with self._lock:
            if self._key is None or self._vault is None:
                raise VaultLockedError("unlock the vault before changing its password")

            check = derive_key(old_password, deserialize_params(self._params_blob))
            try:
                if not hmac.compare_digest(check, self._key):
                    raise DecryptionFailedError("current password is incorrect")
            finally:
                zero_bytes(check)

            params = self.params_factory()
            new_key = derive_key(new_password, params)
            new_blob = serialize_params(params)
            try:
                self._write(self._vault, new_key, new_blob)
            except BaseException:
                zero_bytes(new_key)
                raise

            zero_bytes(self._key)
            self._key, self._params_blob = new_key, new_blob
            logger.info("master password changed for %s", self.path)

    def zero_and_clear(self) -> None:
        """Zero the key and drop every reference to decrypted state. Idempotent."""
        with self._lock:
            zero_bytes(self._key)
            self._key = None
            self._params_blob = None
            if self._vault is not None:
                self._vault.wipe()
            self._vault = None

    def lock(self) -> None:
        with self._lock:
            was_unlocked = self._key is not None
            self.zero_and_clear()
        if was_unlocked:
            logger.info("vault locked")

    def __enter__(self) -> "VaultSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.lock()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open(self, ciphertext: bytes, key: bytearray) -> Vault:
        plaintext = bytearray(decrypt(ciphertext, key))
        try:
            return vault_from_bytes(plaintext)
        finally:
            zero_bytes(plaintext)

    def _write(self, vault: Vault, key: bytearray, params_blob: bytes) -> None:
        plaintext = vault_to_bytes(vault)
        try:
            sealed = encrypt(plaintext, key)
        finally:
            zero_bytes(plaintext)
        data = container.encode(sealed, params_blob)
        if self.backup is not None and self.file.exists():
            self.backup.backup(self.file.path)
        self.file.write(data)

"""AES-256-GCM sealing of opaque byte buffers.

Sealed layout (no header, the container adds one):
- 12 bytes: random nonce
- N bytes: ciphertext
- 16 bytes: GCM authentication tag

Any failure to open a sealed blob is reported as one generic
``DecryptionFailedError`` so callers cannot tell a wrong key from a
corrupted file.
"""
from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from passvault.core.exceptions import (
    DecryptionFailedError,
    InvalidKeySizeError,
    RandomSourceUnavailableError,
)


KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


def random_bytes(length: int) -> bytes:
    """Return ``length`` bytes from the OS CSPRNG."""
    try:
        return os.urandom(length)
    except (NotImplementedError, OSError) as exc:
        raise RandomSourceUnavailableError(f"OS random source unavailable: {exc}") from exc


def _check_key(key: bytes | bytearray) -> None:
    if len(key) != KEY_SIZE:
        raise InvalidKeySizeError(
            f"invalid key size: expected {KEY_SIZE} bytes, got {len(key)}"
        )


def encrypt(plaintext: bytes | bytearray, key: bytes | bytearray) -> bytes:
    """
    Seal ``plaintext`` under ``key`` and return ``nonce || ciphertext || tag``.

    A fresh 96-bit nonce is drawn for every call.
    """
    _check_key(key)
    nonce = random_bytes(NONCE_SIZE)
    aead = AESGCM(bytes(key))
    return nonce + aead.encrypt(nonce, bytes(plaintext), None)


def decrypt(sealed: bytes, key: bytes | bytearray) -> bytes:
    """
    Open a blob produced by :func:`encrypt`.

    Raises ``InvalidKeySizeError`` for a bad key and ``DecryptionFailedError``
    for everything else (truncation, tampering, wrong key).
    """
    _check_key(key)
    if len(sealed) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionFailedError()
    nonce, ct = sealed[:NONCE_SIZE], sealed[NONCE_SIZE:]
    aead = AESGCM(bytes(key))
    try:
        return aead.decrypt(nonce, ct, None)
    except InvalidTag:
        raise DecryptionFailedError() from None


def zero_bytes(buf: bytearray | memoryview | None) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    if buf is None:
        return
    for i in range(len(buf)):
        buf[i] = 0

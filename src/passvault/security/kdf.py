"""Argon2id password-to-key derivation and its on-disk parameter record."""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass

from argon2.low_level import Type, hash_secret_raw

from passvault.core.exceptions import CorruptVaultError
from .crypto import random_bytes


ALGORITHM = "argon2id"
SALT_SIZE = 32
DEFAULT_ITERATIONS = 3
DEFAULT_MEMORY_KB = 64 * 1024
DEFAULT_PARALLELISM = 4
DEFAULT_KEY_LENGTH = 32


@dataclass(frozen=True)
class KeyDerivationParams:
    """Argon2id cost parameters plus salt; travels with every vault file."""

    salt: bytes
    iterations: int = DEFAULT_ITERATIONS
    memory: int = DEFAULT_MEMORY_KB
    parallelism: int = DEFAULT_PARALLELISM
    key_length: int = DEFAULT_KEY_LENGTH
    algorithm: str = ALGORITHM

    def to_dict(self) -> dict:
        return {
            "algorithm": self.algorithm,
            "iterations": self.iterations,
            "memory": self.memory,
            "parallelism": self.parallelism,
            "salt": base64.b64encode(self.salt).decode("ascii"),
            "key_length": self.key_length,
        }


def generate_salt(length: int = SALT_SIZE) -> bytes:
    """Return a cryptographically secure random salt."""
    return random_bytes(length)


def default_params() -> KeyDerivationParams:
    """Recommended parameters with a fresh salt; used on create and password change."""
    return KeyDerivationParams(salt=generate_salt())


def derive_key(password: str | bytes, params: KeyDerivationParams) -> bytearray:
    """
    Derive the vault key from ``password`` using exactly ``params``.

    Returns a mutable buffer so the session can zero it on lock.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")

    raw = hash_secret_raw(
        secret=password,
        salt=params.salt,
        time_cost=params.iterations,
        memory_cost=params.memory,
        parallelism=params.parallelism,
        hash_len=params.key_length,
        type=Type.ID,
    )
    return bytearray(raw)


def serialize_params(params: KeyDerivationParams) -> bytes:
    """Encode params as compact UTF-8 JSON for the container header."""
    return json.dumps(params.to_dict(), separators=(",", ":")).encode("utf-8")


def deserialize_params(data: bytes) -> KeyDerivationParams:
    """Decode a parameter record; reject anything that cannot reproduce a key."""
    try:
        raw = json.loads(data.decode("utf-8"))
        algorithm = raw["algorithm"]
        params = KeyDerivationParams(
            salt=base64.b64decode(raw["salt"], validate=True),
            iterations=int(raw["iterations"]),
            memory=int(raw["memory"]),
            parallelism=int(raw["parallelism"]),
            key_length=int(raw["key_length"]),
            algorithm=algorithm,
        )
    except (UnicodeDecodeError, ValueError, KeyError, TypeError, binascii.Error) as exc:
        raise CorruptVaultError(CorruptVaultError.BAD_PARAMS, str(exc)) from exc

    if params.algorithm != ALGORITHM:
        raise CorruptVaultError(
            CorruptVaultError.BAD_PARAMS, f"unsupported algorithm {params.algorithm!r}"
        )
    if min(params.iterations, params.memory, params.parallelism, params.key_length) <= 0:
        raise CorruptVaultError(CorruptVaultError.BAD_PARAMS, "non-positive cost factor")
    if not params.salt:
        raise CorruptVaultError(CorruptVaultError.BAD_PARAMS, "empty salt")
    return params

"""Binary container for vault files.

Layout (integers little-endian):
- 8 bytes: magic b'PMVAULT1'
- 4 bytes: format version (1)
- 4 bytes: length N of the KDF parameter record
- N bytes: KDF parameter record (JSON, see security.kdf)
- rest: sealed payload (nonce || ciphertext || tag)

Decoding checks, in order: minimum size, magic, version, parameter length.
Each failure raises CorruptVaultError naming the check.
"""
from __future__ import annotations

import struct
from typing import Tuple

from .exceptions import CorruptVaultError


MAGIC = b"PMVAULT1"
VERSION = 1

_PREFIX = struct.Struct("<II")
HEADER_SIZE = len(MAGIC) + _PREFIX.size


def encode(ciphertext: bytes, params: bytes) -> bytes:
    """Assemble a vault file from a serialized KDF record and a sealed payload."""
    buf = bytearray()
    buf += MAGIC
    buf += _PREFIX.pack(VERSION, len(params))
    buf += params
    buf += ciphertext
    return bytes(buf)


def read_header(data: bytes) -> int:
    """Validate the fixed-size header and return the declared parameter length."""
    if len(data) < HEADER_SIZE:
        raise CorruptVaultError(
            CorruptVaultError.TOO_SMALL, f"{len(data)} bytes, need at least {HEADER_SIZE}"
        )
    if data[: len(MAGIC)] != MAGIC:
        raise CorruptVaultError(CorruptVaultError.BAD_MAGIC, "not a vault file")

    version, params_len = _PREFIX.unpack_from(data, len(MAGIC))
    if version != VERSION:
        raise CorruptVaultError(
            CorruptVaultError.BAD_VERSION, f"unsupported version {version}"
        )
    return params_len


def _read_params(data: bytes) -> Tuple[bytes, int]:
    # Validate header and return (params, offset of payload).
    params_len = read_header(data)
    end = HEADER_SIZE + params_len
    if end > len(data):
        raise CorruptVaultError(
            CorruptVaultError.TRUNCATED_PARAMS,
            f"declares {params_len} parameter bytes, {len(data) - HEADER_SIZE} remain",
        )
    return bytes(data[HEADER_SIZE:end]), end


def decode(data: bytes) -> Tuple[bytes, bytes]:
    """Split a vault file into ``(params, ciphertext)``."""
    params, offset = _read_params(data)
    return params, bytes(data[offset:])


def peek_params(data: bytes) -> bytes:
    """Return the KDF record only; never touches the sealed payload."""
    params, _ = _read_params(data)
    return params

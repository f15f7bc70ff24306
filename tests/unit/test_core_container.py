"""Unit tests for the vault container codec."""

import struct

import pytest

from passvault.core import container
from passvault.core.exceptions import CorruptVaultError


PARAMS = b'{"algorithm":"argon2id"}'
SEALED = b"\x00" * 12 + b"ciphertext" + b"\x11" * 16


def test_layout_is_fixed():
    data = container.encode(SEALED, PARAMS)
    assert data[:8] == b"PMVAULT1"
    assert struct.unpack("<I", data[8:12])[0] == 1
    assert struct.unpack("<I", data[12:16])[0] == len(PARAMS)
    assert data[16:16 + len(PARAMS)] == PARAMS
    assert data[16 + len(PARAMS):] == SEALED


@pytest.mark.parametrize(
    "params, sealed",
    [(PARAMS, SEALED), (b"", b""), (b"p", b""), (b"", b"c" * 100), (bytes(range(256)), bytes(1000))],
)
def test_round_trip(params, sealed):
    assert container.decode(container.encode(sealed, params)) == (params, sealed)


def test_peek_params_ignores_payload():
    data = container.encode(SEALED, PARAMS)
    assert container.peek_params(data) == PARAMS
    # header + params alone are enough
    assert container.peek_params(data[: container.HEADER_SIZE + len(PARAMS)]) == PARAMS


@pytest.mark.parametrize("length", [0, 1, 8, 15])
def test_too_small(length):
    data = container.encode(SEALED, PARAMS)[:length]
    with pytest.raises(CorruptVaultError) as exc_info:
        container.decode(data)
    assert exc_info.value.reason == CorruptVaultError.TOO_SMALL


def test_bad_magic():
    data = b"NOTVAULT" + container.encode(SEALED, PARAMS)[8:]
    with pytest.raises(CorruptVaultError) as exc_info:
        container.decode(data)
    assert exc_info.value.reason == CorruptVaultError.BAD_MAGIC


@pytest.mark.parametrize("version", [0, 2, 0xFFFFFFFF])
def test_version_gate(version):
    data = bytearray(container.encode(SEALED, PARAMS))
    data[8:12] = struct.pack("<I", version)
    for op in (container.decode, container.peek_params):
        with pytest.raises(CorruptVaultError) as exc_info:
            op(bytes(data))
        assert exc_info.value.reason == CorruptVaultError.BAD_VERSION


def test_checks_run_in_order():
    # bad magic AND bad version: magic is reported first
    data = b"XXXXXXXX" + struct.pack("<II", 9, 0)
    with pytest.raises(CorruptVaultError) as exc_info:
        container.decode(data)
    assert exc_info.value.reason == CorruptVaultError.BAD_MAGIC


def test_truncated_params():
    data = container.encode(b"", PARAMS)[:-1]
    with pytest.raises(CorruptVaultError) as exc_info:
        container.peek_params(data)
    assert exc_info.value.reason == CorruptVaultError.TRUNCATED_PARAMS


def test_declared_length_larger_than_file():
    data = b"PMVAULT1" + struct.pack("<II", 1, 1000) + b"short"
    with pytest.raises(CorruptVaultError) as exc_info:
        container.decode(data)
    assert exc_info.value.reason == CorruptVaultError.TRUNCATED_PARAMS
    assert "truncated-params" in str(exc_info.value)

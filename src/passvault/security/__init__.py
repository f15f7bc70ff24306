"""Security layer for PassVault.

- AES-256-GCM sealing of the vault payload
- Argon2id key derivation with parameters stored alongside the vault
- the unlock session that owns the key and the decrypted vault
"""

from .crypto import encrypt, decrypt, zero_bytes
from .kdf import KeyDerivationParams, default_params, derive_key, serialize_params, deserialize_params
from .session import VaultSession

__all__ = [
    "encrypt",
    "decrypt",
    "zero_bytes",
    "KeyDerivationParams",
    "default_params",
    "derive_key",
    "serialize_params",
    "deserialize_params",
    "VaultSession",
]

"""
Exceptions for PassVault
This is placed such that there is a general error catcher
"""


class PassVaultError(Exception):
    # general container for errors
    pass


class CryptoError(PassVaultError):
    # raised when a cryptographic primitive cannot complete
    pass


class InvalidKeySizeError(CryptoError):
    # raised when a key is not exactly 32 bytes (caller misuse)
    pass


class DecryptionFailedError(CryptoError):
    # raised for any failed decryption: wrong key, tampering, truncation.
    # never distinguishes between them

    def __init__(self, message: str = "wrong password or corrupted file"):
        super().__init__(message)


# unlock() surfaces a failed decryption under this name to the UI
WrongPasswordError = DecryptionFailedError


class RandomSourceUnavailableError(CryptoError):
    # raised when the OS random source cannot produce bytes
    pass


class CorruptVaultError(PassVaultError):
    # raised when the vault container fails a structural check

    TOO_SMALL = "too-small"
    BAD_MAGIC = "bad-magic"
    BAD_VERSION = "bad-version"
    TRUNCATED_PARAMS = "truncated-params"
    BAD_PARAMS = "bad-params"
    BAD_PAYLOAD = "bad-payload"

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        message = f"corrupt vault file ({reason})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class VaultStorageError(PassVaultError):
    # raised if directory creation, temp-file write or rename fails
    pass


class VaultNotFoundError(VaultStorageError):
    # raised when the vault file DNE
    pass


class VaultLockedError(PassVaultError):
    # raised when an operation needs an unlocked session
    pass


class StaleVaultError(PassVaultError):
    # raised when the file on disk was re-keyed after this session unlocked it
    pass


class TooManyAttemptsError(PassVaultError):
    # raised while unlock attempts are in cooldown

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"too many failed unlock attempts; retry in {int(retry_after) + 1}s")


class ValidationError(PassVaultError):
    # raised on invalid user input (empty names, short passwords, ...)
    pass


class DuplicateEntryError(ValidationError):
    # raised when adding an entry whose id already exists in the vault
    pass


class FolderCycleError(ValidationError):
    # raised when a folder would become its own ancestor
    pass


class TOTPError(PassVaultError):
    # raised on a malformed TOTP secret, parameter or otpauth URI
    pass


class ConfigError(PassVaultError):
    # raised when the configuration file cannot be parsed
    pass

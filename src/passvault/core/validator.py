"""
Password strength estimation and master password rules
"""

from __future__ import annotations

import math
from enum import IntEnum
from typing import Tuple

from .exceptions import ValidationError


MIN_MASTER_PASSWORD_LENGTH = 8
GUESSES_PER_SECOND = 1_000_000_000

COMMON_PASSWORDS = (
    "password", "123456", "12345678", "qwerty", "abc123",
    "monkey", "1234567", "letmein", "trustno1", "dragon",
    "baseball", "111111", "iloveyou", "master", "sunshine",
    "ashley", "bailey", "passw0rd", "shadow", "123123",
    "654321", "superman", "qazwsx", "michael", "football",
)


class Strength(IntEnum):
    WEAK = 0
    FAIR = 1
    GOOD = 2
    STRONG = 3
    EXCELLENT = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


def calculate_entropy(password: str) -> float:
    """Bits of entropy assuming each character is drawn from the classes present."""
    if not password:
        return 0.0
    pool = 0
    if any(c.islower() for c in password):
        pool += 26
    if any(c.isupper() for c in password):
        pool += 26
    if any(c.isdigit() for c in password):
        pool += 10
    if any(not (c.islower() or c.isupper() or c.isdigit()) for c in password):
        pool += 32
    return len(password) * math.log2(pool)


def strength_from_entropy(entropy: float) -> Strength:
    if entropy < 40:
        return Strength.WEAK
    if entropy < 60:
        return Strength.FAIR
    if entropy < 80:
        return Strength.GOOD
    if entropy < 100:
        return Strength.STRONG
    return Strength.EXCELLENT


def password_strength(password: str) -> Strength:
    return strength_from_entropy(calculate_entropy(password))


_UNITS = (
    (60, 1, "seconds"),
    (3600, 60, "minutes"),
    (86400, 3600, "hours"),
    (31536000, 86400, "days"),
    (31536000e3, 31536000, "years"),
    (31536000e6, 31536000e3, "thousand years"),
    (31536000e9, 31536000e6, "million years"),
)


def estimate_crack_time(entropy: float) -> str:
    """Human-readable average brute-force time at one billion guesses/s."""
    if entropy <= 0:
        return "instantly"
    try:
        seconds = 2.0 ** entropy / GUESSES_PER_SECOND / 2.0
    except OverflowError:
        seconds = math.inf
    if seconds < 1:
        return "instantly"
    for limit, divisor, unit in _UNITS:
        if seconds < limit:
            return f"{seconds / divisor:.0f} {unit}"
    if math.isinf(seconds):
        return "effectively forever"
    return f"{seconds / 31536000e9:.0f} billion years"


def validate_password(password: str, min_length: int = MIN_MASTER_PASSWORD_LENGTH) -> Tuple[bool, Strength, str]:
    """Return ``(ok, strength, message)``; message is empty when ok."""
    if len(password) < min_length:
        return False, Strength.WEAK, f"Password must be at least {min_length} characters"

    lowered = password.lower()
    for common in COMMON_PASSWORDS:
        if common in lowered:
            return False, Strength.WEAK, "Password is too common"

    strength = password_strength(password)
    if strength is Strength.WEAK:
        return False, strength, "Password is too weak"
    return True, strength, ""


def validate_master_password(password: str, confirm: str, min_length: int = MIN_MASTER_PASSWORD_LENGTH) -> None:
    """Checks a new master password before a vault is created or rekeyed."""
    if password != confirm:
        raise ValidationError("Passwords do not match")
    if len(password) < min_length:
        raise ValidationError(f"Master password must be at least {min_length} characters")

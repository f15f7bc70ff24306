"""
Random password and passphrase generation

All randomness comes from the ``secrets`` module.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from typing import List

from .exceptions import ValidationError


UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()-_=+[]{}|;:,.<>?"
AMBIGUOUS = "0O1lI"

MIN_PASSWORD_LENGTH = 4

# Subset of the EFF long wordlist
WORDLIST = (
    "aardvark", "absurd", "accrue", "acme", "adrift", "adult", "afflict", "ahead",
    "aimless", "algae", "allow", "alone", "amuse", "angel", "armor", "arrow",
    "bamboo", "basket", "battery", "beach", "beaver", "beside", "between", "beyond",
    "cable", "camera", "campus", "canyon", "captain", "castle", "casual", "caught",
    "damage", "dance", "danger", "daring", "dash", "dawn", "decent", "decide",
    "eagle", "earth", "easy", "echo", "edge", "effort", "eight", "either",
    "fabric", "face", "fact", "fade", "faint", "false", "fancy", "fatal",
    "galaxy", "game", "gap", "garden", "gather", "gave", "gear", "general",
    "habit", "half", "hammer", "hand", "handle", "hang", "happen", "happy",
    "ice", "icon", "idea", "ideal", "identify", "idle", "ignore", "image",
    "jacket", "jazz", "join", "joint", "joke", "judge", "juice", "jump",
    "keep", "ketchup", "kettle", "keyboard", "kickoff", "kitchen", "kite",
    "label", "ladder", "lady", "lagoon", "lamp", "language", "large", "laser",
    "machine", "macro", "madness", "magic", "magnet", "maiden", "mailbox", "major",
    "nanny", "napkin", "narrow", "nation", "native", "nature", "naval", "necklace",
    "oak", "oasis", "oath", "object", "observe", "obtain", "ocean",
    "pacific", "package", "pager", "palace", "palm", "panel", "panic",
    "quantum", "quarter", "queen", "query", "question", "queue", "quick", "quiet",
    "race", "radar", "radio", "rage", "railway", "rainbow", "random", "range",
    "sack", "sacred", "saddle", "safari", "safe", "safety", "saga", "sage",
    "table", "tackle", "tactics", "tadpole", "talent", "talking", "tango", "tank",
    "ultimate", "umbrella", "umpire", "unable", "uncover", "undergo", "unfair", "unfold",
    "vacancy", "vaccine", "vacuum", "vague", "valid", "valley", "valve", "vampire",
    "wage", "wagon", "waist", "wallet", "walnut", "walrus", "warfare", "warm",
    "xerox", "xray",
    "yacht", "yarn", "year", "yellow", "yield", "yodel", "yoga",
    "zebra", "zenith", "zero", "zigzag", "zinc", "zipper", "zombie", "zone",
)


@dataclass
class PasswordConfig:
    length: int = 16
    include_upper: bool = True
    include_lower: bool = True
    include_numbers: bool = True
    include_symbols: bool = True
    exclude_ambiguous: bool = True
    min_upper: int = 1
    min_lower: int = 1
    min_numbers: int = 1
    min_symbols: int = 1


@dataclass
class PassphraseConfig:
    word_count: int = 4
    separator: str = "-"
    capitalize: bool = True
    include_number: bool = True


def _strip(chars: str, exclude_ambiguous: bool) -> str:
    if not exclude_ambiguous:
        return chars
    return "".join(c for c in chars if c not in AMBIGUOUS)


def _shuffle(chars: List[str]) -> None:
    # Fisher-Yates with the CSPRNG; random.shuffle is not suitable here
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]


def generate_password(config: PasswordConfig | None = None) -> str:
    """
    Generate a password honouring the per-class minimums.

    Raises ValidationError when the configuration cannot be satisfied.
    """
    config = config or PasswordConfig()
    if config.length < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password length must be at least {MIN_PASSWORD_LENGTH}")

    classes = [
        (config.include_upper, config.min_upper, _strip(UPPERCASE, config.exclude_ambiguous)),
        (config.include_lower, config.min_lower, _strip(LOWERCASE, config.exclude_ambiguous)),
        (config.include_numbers, config.min_numbers, _strip(DIGITS, config.exclude_ambiguous)),
        (config.include_symbols, config.min_symbols, SYMBOLS),
    ]
    enabled = [(minimum, chars) for include, minimum, chars in classes if include]
    if not enabled:
        raise ValidationError("No character sets selected")
    if sum(max(0, minimum) for minimum, _ in enabled) > config.length:
        raise ValidationError("Minimum requirements exceed password length")

    pool = "".join(chars for _, chars in enabled)
    password = []
    for minimum, chars in enabled:
        password.extend(secrets.choice(chars) for _ in range(max(0, minimum)))
    password.extend(secrets.choice(pool) for _ in range(config.length - len(password)))
    _shuffle(password)
    return "".join(password)


def generate_passphrase(config: PassphraseConfig | None = None) -> str:
    config = config or PassphraseConfig()
    if config.word_count < 1:
        raise ValidationError("Word count must be at least 1")

    words = [secrets.choice(WORDLIST) for _ in range(config.word_count)]
    if config.capitalize:
        words = [w.capitalize() for w in words]
    if config.include_number:
        words.append(f"{secrets.randbelow(100):02d}")
    return config.separator.join(words)

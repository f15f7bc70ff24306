"""
TOTP (RFC 6238) code generation and otpauth:// URI handling

    otpauth://totp/<issuer>:<account>?secret=<base32>&issuer=..&period=..&digits=..&algorithm=..

Only ``secret`` is mandatory. period/digits/algorithm default to 30/6/SHA1
and are left out of generated URIs when they hold those defaults.

Code generation is pyotp's; the URI codec is ours because labels carrying
an issuer that differs from the ``issuer`` parameter must still parse.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Tuple, Union
from urllib.parse import parse_qs, quote, unquote, urlencode, urlparse

import pyotp

from .exceptions import TOTPError


DEFAULT_PERIOD = 30
DEFAULT_DIGITS = 6
DEFAULT_ALGORITHM = "SHA1"
SECRET_LENGTH = 32  # base32 characters, 160 bits

_ALGORITHMS = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}

Timestamp = Union[int, float, datetime]


def _to_unix(at: Timestamp) -> int:
    if isinstance(at, datetime):
        if at.tzinfo is None:
            raise TOTPError("naive datetime; pass an aware datetime or a Unix timestamp")
        return int(at.timestamp())
    return int(at)


def normalize_secret(secret: str) -> str:
    """Uppercase Base32 with spaces, dashes and padding removed."""
    cleaned = secret.replace(" ", "").replace("-", "").upper().rstrip("=")
    if not cleaned:
        raise TOTPError("empty TOTP secret")
    return cleaned


def decode_secret(secret: str) -> bytes:
    """Base32-decode a secret; case-insensitive, spaces ignored, padding optional."""
    cleaned = normalize_secret(secret)
    try:
        return base64.b32decode(cleaned + "=" * (-len(cleaned) % 8))
    except (binascii.Error, ValueError) as exc:
        raise TOTPError(f"invalid base32 secret: {exc}") from None


def generate_secret(length: int = SECRET_LENGTH) -> str:
    """Fresh random secret, Base32 without padding."""
    return pyotp.random_base32(length=length)


@dataclass
class TOTPConfig:
    secret: str
    period: int = DEFAULT_PERIOD
    digits: int = DEFAULT_DIGITS
    algorithm: str = DEFAULT_ALGORITHM
    issuer: str = ""
    account: str = ""

    def __post_init__(self):
        self.algorithm = self.algorithm.upper()
        if self.algorithm not in _ALGORITHMS:
            raise TOTPError(f"unsupported algorithm {self.algorithm!r}")
        if self.period <= 0:
            raise TOTPError(f"period must be positive, got {self.period}")
        if not 1 <= self.digits <= 10:
            raise TOTPError(f"digits must be between 1 and 10, got {self.digits}")

    def _otp(self) -> pyotp.TOTP:
        decode_secret(self.secret)
        return pyotp.TOTP(
            normalize_secret(self.secret),
            digits=self.digits,
            digest=_ALGORITHMS[self.algorithm],
            interval=self.period,
        )

    def generate_code_at(self, at: Timestamp) -> Tuple[str, int]:
        """Return ``(code, seconds_remaining)`` for the window containing ``at``."""
        unix = _to_unix(at)
        code = self._otp().generate_otp(unix // self.period)
        return code, self.period - (unix % self.period)

    def generate_code(self) -> Tuple[str, int]:
        return self.generate_code_at(time.time())

    def validate_at(self, code: str, at: Timestamp) -> bool:
        """Accept the window of ``at`` and one window either side."""
        code = code.strip().replace(" ", "")
        if len(code) != self.digits or not (code.isascii() and code.isdigit()):
            return False
        otp = self._otp()
        counter = _to_unix(at) // self.period
        for step in (-1, 0, 1):
            if counter + step < 0:
                continue
            if hmac.compare_digest(otp.generate_otp(counter + step), code):
                return True
        return False

    def validate(self, code: str) -> bool:
        return self.validate_at(code, time.time())

    def to_uri(self) -> str:
        # a colon inside either part is escaped; the literal one separates them
        account = quote(self.account, safe="@")
        label = f"{quote(self.issuer, safe='@')}:{account}" if self.issuer else account
        query = {"secret": self.secret}
        if self.issuer:
            query["issuer"] = self.issuer
        if self.period != DEFAULT_PERIOD:
            query["period"] = str(self.period)
        if self.digits != DEFAULT_DIGITS:
            query["digits"] = str(self.digits)
        if self.algorithm != DEFAULT_ALGORITHM:
            query["algorithm"] = self.algorithm
        return f"otpauth://totp/{label}?{urlencode(query, quote_via=quote)}"


def _int_param(params, name: str, default: int) -> int:
    values = params.get(name)
    if not values:
        return default
    try:
        return int(values[0])
    except ValueError:
        raise TOTPError(f"invalid {name}: {values[0]!r}") from None


def parse_uri(uri: str) -> TOTPConfig:
    """Parse an otpauth://totp/ URI into a TOTPConfig."""
    parsed = urlparse(uri.strip())
    if parsed.scheme != "otpauth":
        raise TOTPError(f"invalid scheme {parsed.scheme!r}, expected 'otpauth'")
    if parsed.netloc != "totp":
        raise TOTPError(f"invalid type {parsed.netloc!r}, expected 'totp'")

    params = parse_qs(parsed.query)
    secret = (params.get("secret") or [""])[0]
    if not secret:
        raise TOTPError("missing secret parameter")

    issuer = (params.get("issuer") or [""])[0]
    account = ""
    # split before unquoting so an escaped colon stays part of its name
    label = parsed.path.lstrip("/")
    if ":" in label:
        label_issuer, account = label.split(":", 1)
        if not issuer:
            issuer = unquote(label_issuer)
        account = unquote(account)
    else:
        account = unquote(label)
        # some exporters escape the separator as well
        if issuer and account.startswith(f"{issuer}:"):
            account = account[len(issuer) + 1:]

    return TOTPConfig(
        secret=secret,
        period=_int_param(params, "period", DEFAULT_PERIOD),
        digits=_int_param(params, "digits", DEFAULT_DIGITS),
        algorithm=(params.get("algorithm") or [DEFAULT_ALGORITHM])[0],
        issuer=issuer,
        account=account,
    )


def config_for_secret(value: str) -> TOTPConfig:
    """Entries may store either a bare secret or a full otpauth URI."""
    if value.strip().lower().startswith("otpauth://"):
        return parse_uri(value)
    return TOTPConfig(secret=value.strip())

"""Unit tests for TOTP generation and otpauth URIs."""

import base64
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from passvault.core.exceptions import TOTPError
from passvault.core.totp import (
    TOTPConfig,
    config_for_secret,
    decode_secret,
    generate_secret,
    parse_uri,
)


RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"  # "12345678901234567890"


def _b32(raw: bytes) -> str:
    return base64.b32encode(raw).decode("ascii")


# ==============================================================================
# Code generation
# ==============================================================================

def test_rfc_vector_at_59():
    code, remaining = TOTPConfig(secret=RFC_SECRET).generate_code_at(59)
    assert code == "287082"
    assert remaining == 1


@pytest.mark.parametrize(
    "at, algorithm, secret, expected",
    [
        # RFC 6238 appendix B, 8 digits
        (59, "SHA1", b"12345678901234567890", "94287082"),
        (1111111109, "SHA1", b"12345678901234567890", "07081804"),
        (1234567890, "SHA1", b"12345678901234567890", "89005924"),
        (59, "SHA256", b"12345678901234567890123456789012", "46119246"),
        (59, "SHA512", b"1234567890123456789012345678901234567890123456789012345678901234", "90693936"),
        (20000000000, "SHA512", b"1234567890123456789012345678901234567890123456789012345678901234", "47863826"),
    ],
)
def test_rfc6238_appendix_vectors(at, algorithm, secret, expected):
    config = TOTPConfig(secret=_b32(secret), digits=8, algorithm=algorithm)
    assert config.generate_code_at(at)[0] == expected


def test_accepts_aware_datetime():
    at = datetime.fromtimestamp(59, timezone.utc)
    assert TOTPConfig(secret=RFC_SECRET).generate_code_at(at)[0] == "287082"


def test_rejects_naive_datetime():
    with pytest.raises(TOTPError):
        TOTPConfig(secret=RFC_SECRET).generate_code_at(datetime(2024, 1, 1))


def test_code_is_zero_padded():
    config = TOTPConfig(secret=RFC_SECRET, digits=10)
    for t in range(0, 3000, 30):
        code, _ = config.generate_code_at(t)
        assert len(code) == 10
        assert code.isdigit()


def test_time_remaining_counts_to_boundary():
    config = TOTPConfig(secret=RFC_SECRET, period=60)
    assert config.generate_code_at(0)[1] == 60
    assert config.generate_code_at(59)[1] == 1
    assert config.generate_code_at(60)[1] == 60


def test_generate_code_uses_current_time():
    config = TOTPConfig(secret=RFC_SECRET)
    with patch("passvault.core.totp.time.time", return_value=59.9):
        assert config.generate_code() == ("287082", 1)


# ==============================================================================
# Validation window
# ==============================================================================

def test_tolerance_is_exactly_one_step():
    config = TOTPConfig(secret=RFC_SECRET)
    t = 1_700_000_000
    code, _ = config.generate_code_at(t)

    assert config.validate_at(code, t)
    assert config.validate_at(code, t + 30)
    assert config.validate_at(code, t - 30)
    assert not config.validate_at(code, t + 60)
    assert not config.validate_at(code, t - 60)


@pytest.mark.parametrize("bad", ["", "12345", "1234567", "abcdef", "٢٨٧٠٨٢", "２８７０８２"])
def test_malformed_codes_rejected(bad):
    assert TOTPConfig(secret=RFC_SECRET).validate_at(bad, 59) is False


def test_validate_now():
    config = TOTPConfig(secret=RFC_SECRET)
    with patch("passvault.core.totp.time.time", return_value=59):
        assert config.validate("287082")


# ==============================================================================
# Secrets and config validation
# ==============================================================================

def test_secret_normalization():
    expected = b"12345678901234567890"
    assert decode_secret(RFC_SECRET.lower()) == expected
    assert decode_secret("GEZD GNBV GY3T QOJQ GEZD GNBV GY3T QOJQ") == expected
    assert decode_secret("JBSWY3DPEHPK3PXP") == decode_secret("JBSWY3DPEHPK3PXP====")


@pytest.mark.parametrize("secret", ["", "!!!!", "1111"])
def test_invalid_secret(secret):
    with pytest.raises(TOTPError):
        TOTPConfig(secret=secret).generate_code_at(0)


@pytest.mark.parametrize(
    "kwargs",
    [{"algorithm": "MD5"}, {"period": 0}, {"period": -30}, {"digits": 0}, {"digits": 11}],
)
def test_invalid_config(kwargs):
    with pytest.raises(TOTPError):
        TOTPConfig(secret=RFC_SECRET, **kwargs)


def test_algorithm_case_insensitive():
    assert TOTPConfig(secret=RFC_SECRET, algorithm="sha256").algorithm == "SHA256"


def test_generate_secret():
    secret = generate_secret()
    assert len(decode_secret(secret)) == 20
    assert secret != generate_secret()


# ==============================================================================
# URI codec
# ==============================================================================

def test_parse_full_uri():
    config = parse_uri(
        "otpauth://totp/ACME%20Co:john@example.com?secret=JBSWY3DPEHPK3PXP"
        "&issuer=ACME%20Co&period=60&digits=8&algorithm=SHA256"
    )
    assert config.secret == "JBSWY3DPEHPK3PXP"
    assert config.issuer == "ACME Co"
    assert config.account == "john@example.com"
    assert config.period == 60
    assert config.digits == 8
    assert config.algorithm == "SHA256"


def test_parse_defaults():
    config = parse_uri("otpauth://totp/alice?secret=JBSWY3DPEHPK3PXP")
    assert (config.period, config.digits, config.algorithm) == (30, 6, "SHA1")
    assert config.account == "alice"
    assert config.issuer == ""


def test_label_issuer_only_fills_missing_query_issuer():
    assert parse_uri("otpauth://totp/Label:bob?secret=AAAA").issuer == "Label"
    assert parse_uri("otpauth://totp/Label:bob?secret=AAAA&issuer=Query").issuer == "Query"


def test_label_splits_on_first_colon():
    config = parse_uri("otpauth://totp/Org:user:with:colons?secret=AAAA")
    assert config.issuer == "Org"
    assert config.account == "user:with:colons"


@pytest.mark.parametrize(
    "uri",
    [
        "https://totp/x?secret=AAAA",
        "otpauth://hotp/x?secret=AAAA",
        "otpauth://totp/x",
        "otpauth://totp/x?secret=",
        "otpauth://totp/x?secret=AAAA&period=abc",
        "otpauth://totp/x?secret=AAAA&digits=six",
    ],
)
def test_parse_rejects(uri):
    with pytest.raises(TOTPError):
        parse_uri(uri)


def test_to_uri_omits_defaults():
    uri = TOTPConfig(secret="JBSWY3DPEHPK3PXP", account="alice").to_uri()
    assert uri == "otpauth://totp/alice?secret=JBSWY3DPEHPK3PXP"


@pytest.mark.parametrize(
    "config",
    [
        TOTPConfig(secret="JBSWY3DPEHPK3PXP", period=60, digits=8, algorithm="SHA512", issuer="ACME Co", account="john@example.com"),
        TOTPConfig(secret="GEZDGNBVGY3TQOJQ", period=45, digits=7, algorithm="SHA256", issuer="Ex&mple=1", account="a b"),
        TOTPConfig(secret="JBSWY3DPEHPK3PXP", issuer="ACME:EU", account="alice"),
        TOTPConfig(secret="JBSWY3DPEHPK3PXP", issuer="ACME", account="team:ops"),
        TOTPConfig(secret="JBSWY3DPEHPK3PXP", account="no:issuer"),
        TOTPConfig(secret="JBSWY3DPEHPK3PXP", issuer="ACME", account=" alice "),
        TOTPConfig(secret="JBSWY3DPEHPK3PXP", account=" alice "),
    ],
)
def test_uri_round_trip(config):
    parsed = parse_uri(config.to_uri())
    assert (parsed.issuer, parsed.account) == (config.issuer, config.account)
    assert parsed == config


def test_issuer_colon_is_escaped_in_label():
    uri = TOTPConfig(secret="AAAA", issuer="ACME:EU", account="alice").to_uri()
    assert uri.startswith("otpauth://totp/ACME%3AEU:alice?")


def test_escaped_separator_with_query_issuer():
    config = parse_uri("otpauth://totp/ACME%3Aalice?secret=AAAA&issuer=ACME")
    assert (config.issuer, config.account) == ("ACME", "alice")


def test_config_for_secret():
    assert config_for_secret(" JBSWY3DPEHPK3PXP ").secret == "JBSWY3DPEHPK3PXP"
    assert config_for_secret("otpauth://totp/x?secret=AAAA&digits=8").digits == 8

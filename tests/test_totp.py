"""Unit tests for auth/totp.py -- RFC 6238 codes over HMAC-SHA256.

Covers:
- generate() matches the RFC 6238 SHA-256 reference vectors (last 6 digits)
- verify() accepts only the current 30-second step (no leeway)
- verify() rejects wrong length, non-digit, and non-ASCII tokens without raising
- generate_secret() is unpadded base32 of 20 bytes
- provisioning_uri() carries secret, issuer, algorithm, digits and period
"""

import base64
from urllib.parse import parse_qs, urlparse

import pytest

from auth import totp

# RFC 6238 Appendix B uses the 32-byte ASCII seed for the SHA-256 column.
RFC_SECRET = base64.b32encode(b"12345678901234567890123456789012").decode().rstrip("=")


@pytest.mark.parametrize(
    "timestamp, expected",
    [
        (59, "119246"),
        (1111111109, "084774"),
        (1111111111, "062674"),
        (1234567890, "819424"),
        (2000000000, "698825"),
    ],
)
def test_generate_matches_rfc6238_sha256_vectors(timestamp, expected):
    assert totp.generate(RFC_SECRET, timestamp) == expected


def test_verify_accepts_current_step_only():
    # 1111111109 and 1111111111 fall in adjacent 30-second steps.
    assert totp.verify(RFC_SECRET, "084774", 1111111109)
    assert totp.verify(RFC_SECRET, "084774", 1111111080)  # start of the same step
    assert not totp.verify(RFC_SECRET, "084774", 1111111111)
    assert not totp.verify(RFC_SECRET, "062674", 1111111109)


def test_verify_tolerates_surrounding_whitespace():
    secret = totp.generate_secret()
    code = totp.generate(secret, 1_700_000_000)
    assert totp.verify(secret, f" {code}\n", 1_700_000_000)


@pytest.mark.parametrize("token", ["", "12345", "1234567", "abcdef", "１２３４５６"])
def test_verify_rejects_malformed_tokens(token):
    assert totp.verify(totp.generate_secret(), token, 1_700_000_000) is False


def test_generate_secret_is_unpadded_base32():
    secret = totp.generate_secret()
    assert "=" not in secret
    assert len(totp._decode_secret(secret)) == totp.SECRET_BYTES
    assert totp.generate_secret() != secret


def test_provisioning_uri():
    uri = totp.provisioning_uri("JBSWY3DPEHPK3PXP", "alice", "MyPlayPlanet")
    parsed = urlparse(uri)
    assert parsed.scheme == "otpauth"
    assert parsed.netloc == "totp"
    assert parsed.path == "/MyPlayPlanet%3Aalice"
    query = parse_qs(parsed.query)
    assert query["secret"] == ["JBSWY3DPEHPK3PXP"]
    assert query["issuer"] == ["MyPlayPlanet"]
    assert query["algorithm"] == ["SHA256"]
    assert query["digits"] == ["6"]
    assert query["period"] == ["30"]

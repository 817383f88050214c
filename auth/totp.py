"""
auth/totp.py -- Time-based one-time passwords (RFC 6238).

Codes are 6 digits over HMAC-SHA256 with a 30-second step. Verification has
no leeway window: only the code for the step containing `timestamp` is
accepted, so a code from the previous or next step fails.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import struct
import time
from typing import Optional
from urllib.parse import quote, urlencode

DIGITS = 6
INTERVAL = 30
SECRET_BYTES = 20


def generate_secret() -> str:
    """Return a random base32-encoded secret (no padding)."""
    return base64.b32encode(secrets.token_bytes(SECRET_BYTES)).decode("ascii").rstrip("=")


def _decode_secret(secret: str) -> bytes:
    return base64.b32decode(secret.upper() + "=" * ((8 - len(secret) % 8) % 8))


def _hotp(key: bytes, counter: int) -> str:
    digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha256).digest()

    # Dynamic truncation
    offset = digest[-1] & 0x0F
    code = struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF
    return str(code % 10**DIGITS).zfill(DIGITS)


def generate(secret: str, timestamp: Optional[float] = None) -> str:
    """Return the code for the 30-second step containing `timestamp` (default: now)."""
    if timestamp is None:
        timestamp = time.time()
    return _hotp(_decode_secret(secret), int(timestamp // INTERVAL))


def verify(secret: str, token: str, timestamp: Optional[float] = None) -> bool:
    """Check `token` against the current step only."""
    token = token.strip()
    # compare_digest rejects non-ASCII str input with TypeError
    if len(token) != DIGITS or not token.isascii():
        return False
    return hmac.compare_digest(generate(secret, timestamp), token)


def provisioning_uri(secret: str, account_name: str, issuer: str) -> str:
    """Build the otpauth:// URI an authenticator app scans to enrol the secret."""
    label = quote(f"{issuer}:{account_name}")
    query = urlencode(
        {
            "secret": secret,
            "issuer": issuer,
            "algorithm": "SHA256",
            "digits": DIGITS,
            "period": INTERVAL,
        }
    )
    return f"otpauth://totp/{label}?{query}"

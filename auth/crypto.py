"""
auth/crypto.py -- Password-derived keys and encryption of secrets at rest.

Key hierarchy:
  password + account salt --Argon2id--> 32-byte derived key
  derived key + fresh salt --Argon2id--> stored password hash (PHC string)
  derived key --XChaCha20-Poly1305--> encrypted TOTP secret

The raw password is never stored, and neither is the derived key. A correct
password re-derives the same key from the account's salt; that key both
verifies against the stored hash and decrypts the TOTP secret.

Argon2id parameters match the argon2 reference defaults (t=2, m=19 MiB, p=1).
They are part of the on-disk format: changing them makes every existing
account's key unrecoverable.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import base64
import binascii
import os

from argon2 import PasswordHasher, Type
from argon2.exceptions import HashingError, InvalidHashError, VerificationError
from argon2.low_level import hash_secret_raw
from nacl.bindings import (
    crypto_aead_xchacha20poly1305_ietf_decrypt,
    crypto_aead_xchacha20poly1305_ietf_encrypt,
    crypto_aead_xchacha20poly1305_ietf_NPUBBYTES,
)
from nacl.exceptions import CryptoError as NaclCryptoError

ARGON2_TIME_COST = 2
ARGON2_MEMORY_COST = 19456  # KiB
ARGON2_PARALLELISM = 1
KEY_LENGTH = 32
SALT_SIZE = 16
NONCE_SIZE = crypto_aead_xchacha20poly1305_ietf_NPUBBYTES  # 24 bytes

_hasher = PasswordHasher(
    time_cost=ARGON2_TIME_COST,
    memory_cost=ARGON2_MEMORY_COST,
    parallelism=ARGON2_PARALLELISM,
    hash_len=KEY_LENGTH,
    salt_len=SALT_SIZE,
    type=Type.ID,
)


class CryptoError(Exception):
    """Key derivation, decoding, or authenticated decryption failed."""


def generate_salt() -> str:
    """Return a fresh base64-encoded 16-byte salt for key derivation."""
    return base64.b64encode(os.urandom(SALT_SIZE)).decode("ascii")


def derive_key(password: str, salt: str) -> bytes:
    """Derive the 32-byte account key from a password and a base64 salt.

    Deterministic for a (password, salt) pair.
    """
    try:
        raw_salt = base64.b64decode(salt, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CryptoError("salt is not valid base64") from exc
    try:
        return hash_secret_raw(
            secret=password.encode("utf-8"),
            salt=raw_salt,
            time_cost=ARGON2_TIME_COST,
            memory_cost=ARGON2_MEMORY_COST,
            parallelism=ARGON2_PARALLELISM,
            hash_len=KEY_LENGTH,
            type=Type.ID,
        )
    except HashingError as exc:
        raise CryptoError("key derivation failed") from exc


def hash_key(key: bytes) -> str:
    """Hash a derived key under a fresh random salt. Returns the encoded PHC string."""
    return _hasher.hash(key)


def verify_key(encoded: str, key: bytes) -> bool:
    """Constant-time check of a derived key against a stored hash.

    Returns False on mismatch and on an unparsable stored hash; the caller
    turns either into the same Unauthorized response.
    """
    try:
        return _hasher.verify(encoded, key)
    except (VerificationError, InvalidHashError):
        return False


def encrypt(key: bytes, plaintext: str) -> str:
    """Encrypt under a 32-byte key. Returns "base64(nonce):base64(ciphertext||tag)"."""
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = crypto_aead_xchacha20poly1305_ietf_encrypt(plaintext.encode("utf-8"), None, nonce, key)
    return f"{base64.b64encode(nonce).decode('ascii')}:{base64.b64encode(ciphertext).decode('ascii')}"


def decrypt(key: bytes, data: str) -> str:
    """Authenticate and decrypt the output of encrypt().

    Raises CryptoError for a malformed envelope, a wrong key, or tampered
    ciphertext. Never returns unauthenticated plaintext.
    """
    encoded_nonce, sep, encoded_ciphertext = data.partition(":")
    if not sep:
        raise CryptoError("ciphertext envelope is malformed")
    try:
        nonce = base64.b64decode(encoded_nonce, validate=True)
        ciphertext = base64.b64decode(encoded_ciphertext, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CryptoError("ciphertext envelope is not valid base64") from exc
    if len(nonce) != NONCE_SIZE:
        raise CryptoError("nonce has the wrong length")
    try:
        plaintext = crypto_aead_xchacha20poly1305_ietf_decrypt(ciphertext, None, nonce, key)
    except NaclCryptoError as exc:
        raise CryptoError("authentication failed") from exc
    return plaintext.decode("utf-8")

"""
auth/authentication.py -- Password + TOTP verification and secret management.

Every function takes an Account and works in memory only. Persistence is the
caller's job: after regenerate_secret(), toggle_totp() or change_password()
the caller saves the mutated Account with AuthStore.update_account().

Login state machine:
  1. Derive the key from (password, account.nonce).
  2. Verify the key against account.password. Mismatch -> Unauthorized.
  3. Locked account -> Unauthorized.
  4. TOTP disabled -> success.
  5. TOTP enabled, no token -> Forbidden("TOTP is required").
     TOTP enabled, token -> decrypt the secret with the derived key and
     compare against the current 30-second code. Mismatch -> Unauthorized.

Timing equalization: authenticate() always runs the full derive + verify
pair, even for unknown usernames, against a dummy salt and hash computed once
at import. Response time does not reveal whether a username exists.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from auth import crypto, totp
from auth.models import Account
from core.errors import Forbidden, Unauthorized

if TYPE_CHECKING:
    from auth.store import AuthStore

logger = logging.getLogger("playplanet.auth")

_DUMMY_SALT: str = crypto.generate_salt()
_DUMMY_HASH: str = crypto.hash_key(crypto.derive_key("playplanet_timing_dummy", _DUMMY_SALT))


def obtain_encryption_key(account: Account, password: str) -> bytes:
    """Re-derive the account's 32-byte key from a freshly supplied password."""
    try:
        return crypto.derive_key(password, account.nonce)
    except crypto.CryptoError as exc:
        logger.warning("Key derivation failed for account %s: %s", account.id, exc)
        raise Unauthorized() from exc


def _verified_key(account: Account, password: str) -> bytes:
    key = obtain_encryption_key(account, password)
    if not crypto.verify_key(account.password, key):
        raise Unauthorized()
    return key


def _read_secret_with_key(account: Account, key: bytes) -> str:
    try:
        return crypto.decrypt(key, account.secret)
    except crypto.CryptoError as exc:
        raise Unauthorized() from exc


def login(account: Account, password: str, token: Optional[str] = None) -> None:
    """Verify a login attempt. Returns None on success, raises on failure."""
    key = _verified_key(account, password)
    if account.locked:
        raise Unauthorized()
    if not account.totp:
        return
    if not token:
        raise Forbidden("TOTP is required")
    if not totp.verify(_read_secret_with_key(account, key), token):
        raise Unauthorized()


def authenticate(store: AuthStore, username: str, password: str, token: Optional[str] = None) -> Account:
    """Look up an account by username and run login() against it.

    Unknown usernames fail with the same Unauthorized as a wrong password,
    after doing the same amount of key-derivation work.
    """
    account = store.get_account_by_username(username)
    if account is None:
        # Equalize timing -- do NOT return before running the KDF
        crypto.verify_key(_DUMMY_HASH, crypto.derive_key(password, _DUMMY_SALT))
        raise Unauthorized()
    try:
        login(account, password, token)
    except Unauthorized:
        logger.info("Failed login for account %s", account.id)
        raise
    return account


def regenerate_secret(account: Account, password: str) -> str:
    """Replace the TOTP secret with a fresh one encrypted under the current key.

    The password must be the account's current password; a wrong password
    raises Unauthorized instead of encrypting under a key nobody can re-derive.
    Returns the new plaintext secret so the caller can show enrolment data.
    """
    key = _verified_key(account, password)
    secret = totp.generate_secret()
    account.secret = crypto.encrypt(key, secret)
    return secret


def read_secret(account: Account, password: str) -> str:
    """Decrypt and return the raw TOTP secret. Fails closed on a wrong password."""
    return _read_secret_with_key(account, obtain_encryption_key(account, password))


def new_account(username: str, password: str) -> Account:
    """Build a not-yet-persisted account with derived-key hash and encrypted TOTP secret."""
    salt = crypto.generate_salt()
    key = crypto.derive_key(password, salt)
    return Account(
        username=username,
        password=crypto.hash_key(key),
        secret=crypto.encrypt(key, totp.generate_secret()),
        nonce=salt,
    )


def toggle_totp(account: Account, password: str, token: str) -> bool:
    """Flip the TOTP requirement after proving possession of password and authenticator.

    The check runs as if TOTP were already enabled, so enabling requires a
    valid code just like disabling does. Returns the new state.
    """
    previous = account.totp
    account.totp = True
    try:
        login(account, password, token)
    finally:
        account.totp = previous
    account.totp = not previous
    return account.totp


def change_password(account: Account, old_password: str, new_password: str, token: Optional[str] = None) -> None:
    """Re-key the account under a new password.

    A fresh salt is generated, so the derived key changes even if the new
    password equals the old one. The TOTP secret is carried over unchanged,
    re-encrypted under the new key.
    """
    login(account, old_password, token)
    secret = read_secret(account, old_password)

    salt = crypto.generate_salt()
    key = crypto.derive_key(new_password, salt)
    account.nonce = salt
    account.password = crypto.hash_key(key)
    account.secret = crypto.encrypt(key, secret)

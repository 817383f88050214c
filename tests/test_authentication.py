"""Unit tests for auth/authentication.py -- login state machine and secret management.

Covers:
- new_account() stores no plaintext: hash of the derived key, encrypted secret
- login() succeeds with the right password and TOTP disabled
- login() raises Unauthorized for a wrong password and for a locked account
- TOTP enabled: no token -> Forbidden, wrong or out-of-window token -> Unauthorized, right token -> OK
- authenticate() gives the same Unauthorized for unknown user and wrong password
- regenerate_secret() verifies the password and replaces the secret
- read_secret() fails closed on a wrong password
- toggle_totp() needs a valid code in both directions and leaves state untouched on failure
- change_password(): old password stops working, new one works, TOTP secret survives
"""

import time

import pytest

from auth import authentication, crypto, totp
from auth.models import Account
from core.errors import Forbidden, Unauthorized
from conftest import PASSWORD


def _enable_totp(account: Account) -> str:
    secret = authentication.read_secret(account, PASSWORD)
    account.totp = True
    return secret


# ---------------------------------------------------------------------------
# Account construction
# ---------------------------------------------------------------------------


def test_new_account_stores_no_plaintext():
    account = authentication.new_account("alice", PASSWORD)
    assert account.password != PASSWORD
    assert account.password.startswith("$argon2id$")
    key = crypto.derive_key(PASSWORD, account.nonce)
    assert crypto.verify_key(account.password, key)
    secret = crypto.decrypt(key, account.secret)
    assert secret != account.secret
    assert len(totp._decode_secret(secret)) == totp.SECRET_BYTES
    assert account.totp is False
    assert account.locked is False


# ---------------------------------------------------------------------------
# login()
# ---------------------------------------------------------------------------


def test_login_without_totp():
    account = authentication.new_account("alice", PASSWORD)
    assert authentication.login(account, PASSWORD) is None


def test_login_wrong_password():
    account = authentication.new_account("alice", PASSWORD)
    with pytest.raises(Unauthorized):
        authentication.login(account, "wrong password")


def test_login_locked_account():
    account = authentication.new_account("alice", PASSWORD)
    account.locked = True
    with pytest.raises(Unauthorized):
        authentication.login(account, PASSWORD)


def test_login_totp_required():
    account = authentication.new_account("alice", PASSWORD)
    _enable_totp(account)
    with pytest.raises(Forbidden) as exc_info:
        authentication.login(account, PASSWORD)
    assert exc_info.value.status_code == 403
    assert exc_info.value.message == "TOTP is required"


def test_login_totp_wrong_token():
    account = authentication.new_account("alice", PASSWORD)
    secret = _enable_totp(account)
    wrong = str((int(totp.generate(secret)) + 1) % 10**6).zfill(6)
    with pytest.raises(Unauthorized):
        authentication.login(account, PASSWORD, wrong)


def test_login_totp_correct_token():
    account = authentication.new_account("alice", PASSWORD)
    secret = _enable_totp(account)
    authentication.login(account, PASSWORD, totp.generate(secret))


def test_login_totp_wrong_password_checked_first():
    account = authentication.new_account("alice", PASSWORD)
    _enable_totp(account)
    with pytest.raises(Unauthorized):
        authentication.login(account, "wrong password")


# ---------------------------------------------------------------------------
# authenticate()
# ---------------------------------------------------------------------------


def test_authenticate_returns_account(store, make_account):
    created = make_account("bob")
    account = authentication.authenticate(store, "bob", PASSWORD)
    assert account.id == created.id


def test_authenticate_unknown_user_and_wrong_password_are_identical(store, make_account):
    make_account("carol")
    with pytest.raises(Unauthorized) as unknown:
        authentication.authenticate(store, "nobody", PASSWORD)
    with pytest.raises(Unauthorized) as wrong:
        authentication.authenticate(store, "carol", "wrong password")
    assert unknown.value.message == wrong.value.message == "Unauthorized"


# ---------------------------------------------------------------------------
# Secret management
# ---------------------------------------------------------------------------


def test_regenerate_secret_replaces_secret():
    account = authentication.new_account("alice", PASSWORD)
    before = authentication.read_secret(account, PASSWORD)
    stored_before = account.secret
    returned = authentication.regenerate_secret(account, PASSWORD)
    assert account.secret != stored_before
    assert returned != before
    assert authentication.read_secret(account, PASSWORD) == returned


def test_regenerate_secret_wrong_password_leaves_secret():
    account = authentication.new_account("alice", PASSWORD)
    stored_before = account.secret
    with pytest.raises(Unauthorized):
        authentication.regenerate_secret(account, "wrong password")
    assert account.secret == stored_before


def test_read_secret_wrong_password():
    account = authentication.new_account("alice", PASSWORD)
    with pytest.raises(Unauthorized):
        authentication.read_secret(account, "wrong password")


# ---------------------------------------------------------------------------
# toggle_totp()
# ---------------------------------------------------------------------------


def test_toggle_totp_on_and_off():
    account = authentication.new_account("alice", PASSWORD)
    secret = authentication.read_secret(account, PASSWORD)
    assert authentication.toggle_totp(account, PASSWORD, totp.generate(secret)) is True
    assert account.totp is True
    assert authentication.toggle_totp(account, PASSWORD, totp.generate(secret)) is False
    assert account.totp is False


def test_toggle_totp_wrong_token_keeps_state():
    account = authentication.new_account("alice", PASSWORD)
    with pytest.raises(Unauthorized):
        authentication.toggle_totp(account, PASSWORD, "000000x")
    assert account.totp is False


def test_toggle_totp_empty_token_is_forbidden():
    account = authentication.new_account("alice", PASSWORD)
    with pytest.raises(Forbidden):
        authentication.toggle_totp(account, PASSWORD, "")
    assert account.totp is False


# ---------------------------------------------------------------------------
# change_password()
# ---------------------------------------------------------------------------


def test_change_password_rekeys_and_keeps_secret():
    account = authentication.new_account("alice", PASSWORD)
    secret = authentication.read_secret(account, PASSWORD)
    old_nonce = account.nonce

    authentication.change_password(account, PASSWORD, "new password 1")

    assert account.nonce != old_nonce
    with pytest.raises(Unauthorized):
        authentication.login(account, PASSWORD)
    authentication.login(account, "new password 1")
    assert authentication.read_secret(account, "new password 1") == secret


def test_change_password_same_password_changes_salt():
    account = authentication.new_account("alice", PASSWORD)
    old_nonce, old_hash = account.nonce, account.password
    authentication.change_password(account, PASSWORD, PASSWORD)
    assert account.nonce != old_nonce
    assert account.password != old_hash
    authentication.login(account, PASSWORD)


def test_change_password_requires_totp_when_enabled():
    account = authentication.new_account("alice", PASSWORD)
    secret = _enable_totp(account)
    with pytest.raises(Forbidden):
        authentication.change_password(account, PASSWORD, "new password 1")
    authentication.change_password(account, PASSWORD, "new password 1", totp.generate(secret))
    authentication.login(account, "new password 1", totp.generate(secret))


def test_change_password_wrong_old_password():
    account = authentication.new_account("alice", PASSWORD)
    with pytest.raises(Unauthorized):
        authentication.change_password(account, "wrong password", "new password 1")
    authentication.login(account, PASSWORD)


def test_login_totp_previous_and_next_window_rejected():
    account = authentication.new_account("alice", PASSWORD)
    secret = _enable_totp(account)
    now = time.time()
    for offset in (-60, 60):
        stale = totp.generate(secret, now + offset)
        if stale == totp.generate(secret, now):
            continue  # 1-in-a-million collision with the live code
        with pytest.raises(Unauthorized):
            authentication.login(account, PASSWORD, stale)

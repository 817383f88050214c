"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own
domain shape; the store, the authentication service, and the session
manager do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from core.ids import RecordId


@dataclass
class Account:
    """A human identity that can log in.

    password is NOT a password hash. It is the Argon2id hash of the key
    derived from (password, nonce); see auth/crypto.py for the hierarchy.
    secret is the TOTP secret encrypted under that same derived key, as
    "base64(nonce):base64(ciphertext)". nonce is the key-derivation salt,
    unrelated to the encryption nonce embedded in secret.

    id is None before the record is written to the database.
    """

    username: str
    password: str
    secret: str
    nonce: str
    totp: bool = False
    locked: bool = False
    uuid: str | None = None  # external identity linkage, set after signup
    id: RecordId | None = None
    created_at: str | None = None


class SessionKind(str, Enum):
    HUMAN = "human"
    MACHINE = "machine"


@dataclass(frozen=True)
class SessionTarget:
    """Who a session belongs to.

    HUMAN targets carry the account identifier ("account:<id>"); MACHINE
    targets carry an API client id.
    """

    kind: SessionKind
    id: str

    @classmethod
    def human(cls, account_id: RecordId) -> SessionTarget:
        return cls(SessionKind.HUMAN, str(account_id))

    @classmethod
    def machine(cls, client_id: str) -> SessionTarget:
        return cls(SessionKind.MACHINE, client_id)


@dataclass
class Session:
    """A bearer credential. id is the local part of "session:<id>" and is the bearer token.

    iat, exp and refresh_exp are integer epoch seconds.
    """

    id: str
    target: SessionTarget
    iat: int
    exp: int
    refresh_token: str
    refresh_exp: int

    @property
    def record_id(self) -> RecordId:
        return RecordId("session", self.id)

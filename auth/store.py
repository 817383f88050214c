"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
AuthStore is the repository; _row_to_account / _row_to_session are the mappers.
Services and routes never touch SQL directly.

Graph model:
  Account -HAS-> Permission is stored as a row in the `has` edge table,
  (in_id, out_id) = ("account:<id>", "permission:<name>"). UNIQUE(in_id, out_id)
  makes edge creation idempotent: a second grant is a no-op, not a duplicate.

Security:
  All queries use bound parameters. No f-strings in SQL.

Single session per target:
  replace_session() deletes every session of the target and inserts the new
  one inside one transaction. Two concurrent logins for the same target are
  still serialised only by the database's write lock; the loser's session may
  be deleted by the winner's transaction (last write wins).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Account, Session, SessionKind, SessionTarget
from core.config import get_settings
from core.ids import RecordId, random_id

logger = logging.getLogger("playplanet.store")

ACCOUNT_ID_LENGTH = 20

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "account",
    _metadata,
    Column("id", String(64), primary_key=True),  # local part of "account:<id>"
    Column("username", String(255), nullable=False, unique=True),
    Column("uuid", Text),  # external identity linkage, NULL until linked
    Column("password", Text, nullable=False),  # Argon2id hash of the derived key
    Column("secret", Text, nullable=False),  # encrypted TOTP secret
    Column("nonce", String(64), nullable=False),  # key-derivation salt (base64)
    Column("totp", Integer, nullable=False, server_default="0"),
    Column("locked", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "session",
    _metadata,
    Column("id", String(64), primary_key=True),  # bearer token
    Column("target_type", String(16), nullable=False),  # "human" | "machine"
    Column("target_id", Text, nullable=False),
    Column("iat", Integer, nullable=False),
    Column("exp", Integer, nullable=False),
    Column("refresh_token", String(128), nullable=False),
    Column("refresh_exp", Integer, nullable=False),
    Index("ix_session_target", "target_type", "target_id"),
)

_permissions = Table(
    "permission",
    _metadata,
    Column("id", String(100), primary_key=True),  # dotted capability name
)

_has = Table(
    "has",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("in_id", Text, nullable=False),  # "account:<id>"
    Column("out_id", Text, nullable=False),  # "permission:<name>"
    UniqueConstraint("in_id", "out_id", name="uq_has_edge"),
)

# Edge existence is answered by the database as a single boolean row.
_HAS_EDGE_SQL = text("SELECT EXISTS (SELECT 1 FROM has WHERE in_id = :account AND out_id = :permission) AS result")


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for Account, Session, Permission, and HAS edges.

    Usage:
        store = AuthStore()
        account = store.create_account(new_account("alice", "secretpw"))
        store.get_account_by_username("alice")
        store.close()

    The engine is the shared, pooled connection handle. Each method opens its
    own connection; only replace_session() spans more than one statement.
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> Account:
        """Insert a new account and return it with id and created_at assigned.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        Callers (signup) catch IntegrityError and report a conflict.
        """
        account_id = RecordId("account", random_id(ACCOUNT_ID_LENGTH))
        created_at = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account_id.id,
                    username=account.username,
                    uuid=account.uuid,
                    password=account.password,
                    secret=account.secret,
                    nonce=account.nonce,
                    totp=1 if account.totp else 0,
                    locked=1 if account.locked else 0,
                    created_at=created_at,
                )
            )
            conn.commit()
        account.id = account_id
        account.created_at = created_at
        return account

    def get_account(self, account_id: RecordId) -> Account | None:
        """Look up an account by identifier. Returns None if not found."""
        if account_id.table != "account":
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id.id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_username(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_account(self, account: Account) -> bool:
        """Overwrite every mutable field of a persisted account.

        Used after in-memory mutations (secret regeneration, TOTP toggle,
        password change, username change). Raises IntegrityError when a
        username change collides. Returns False if the account does not exist.
        """
        if account.id is None:
            raise ValueError("account has not been persisted")
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account.id.id)
                .values(
                    username=account.username,
                    uuid=account.uuid,
                    password=account.password,
                    secret=account.secret,
                    nonce=account.nonce,
                    totp=1 if account.totp else 0,
                    locked=1 if account.locked else 0,
                )
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def replace_session(self, session: Session) -> None:
        """Delete every session of session.target, then insert session, in one transaction."""
        with self.engine.begin() as conn:
            deleted = conn.execute(
                _sessions.delete().where(
                    (_sessions.c.target_type == session.target.kind.value)
                    & (_sessions.c.target_id == session.target.id)
                )
            )
            conn.execute(_sessions.insert().values(**_session_values(session)))
        if deleted.rowcount:
            logger.info("Ended %d previous session(s) for %s target", deleted.rowcount, session.target.kind.value)

    def get_session(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_session_for_target(self, target: SessionTarget) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select().where(
                    (_sessions.c.target_type == target.kind.value) & (_sessions.c.target_id == target.id)
                )
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def count_sessions_for_target(self, target: SessionTarget) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                text("SELECT COUNT(*) FROM session WHERE target_type = :kind AND target_id = :id"),
                {"kind": target.kind.value, "id": target.id},
            ).scalar()
        return result or 0

    def update_session(self, session: Session, refresh_token: str) -> bool:
        """Persist rotated timestamps and refresh token.

        The write only lands while the row still holds refresh_token, so a
        token can be redeemed once. Returns False if the session is gone or
        the token was already rotated.
        """
        values = _session_values(session)
        del values["id"]
        stmt = (
            _sessions.update()
            .where(_sessions.c.id == session.id, _sessions.c.refresh_token == refresh_token)
            .values(**values)
        )
        with self.engine.connect() as conn:
            result = conn.execute(stmt)
            conn.commit()
        return result.rowcount > 0

    def delete_session(self, session_id: str) -> bool:
        """Delete a session. Returns False if it did not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Permissions and HAS edges
    # ------------------------------------------------------------------

    def list_permission_ids(self) -> list[str]:
        """Return the names of every persisted permission record."""
        with self.engine.connect() as conn:
            rows = conn.execute(_permissions.select().order_by(_permissions.c.id)).fetchall()
        return [row.id for row in rows]

    def create_permissions(self, names: list[str]) -> list[str]:
        """Insert permission records, skipping any another writer created first.

        Returns the names this call actually inserted.
        """
        created: list[str] = []
        with self.engine.connect() as conn:
            for name in names:
                try:
                    conn.execute(_permissions.insert().values(id=name))
                    conn.commit()
                except IntegrityError:
                    conn.rollback()
                    continue
                created.append(name)
        return created

    def has_edge(self, source: RecordId, target: RecordId) -> bool | None:
        """Return whether a HAS edge exists from source to target.

        Returns None only if the database returned no row at all, which the
        authorization service treats as an internal error.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_HAS_EDGE_SQL, {"account": str(source), "permission": str(target)}).fetchone()
        if row is None:
            return None
        return bool(row.result)

    def create_edge(self, source: RecordId, target: RecordId) -> bool:
        """Create a HAS edge. Returns False when the edge already existed."""
        with self.engine.connect() as conn:
            try:
                conn.execute(_has.insert().values(in_id=str(source), out_id=str(target)))
                conn.commit()
            except IntegrityError:
                conn.rollback()
                return False
        return True

    def list_edges(self, source: RecordId) -> list[str]:
        """Return the target identifiers of every HAS edge leaving source."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _has.select().where(_has.c.in_id == str(source)).order_by(_has.c.out_id)
            ).fetchall()
        return [row.out_id for row in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query (used by /health)."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=RecordId("account", row.id),
        username=row.username,
        uuid=row.uuid,
        password=row.password,
        secret=row.secret,
        nonce=row.nonce,
        totp=bool(row.totp),
        locked=bool(row.locked),
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        target=SessionTarget(SessionKind(row.target_type), row.target_id),
        iat=row.iat,
        exp=row.exp,
        refresh_token=row.refresh_token,
        refresh_exp=row.refresh_exp,
    )


def _session_values(session: Session) -> dict:
    return {
        "id": session.id,
        "target_type": session.target.kind.value,
        "target_id": session.target.id,
        "iat": session.iat,
        "exp": session.exp,
        "refresh_token": session.refresh_token,
        "refresh_exp": session.refresh_exp,
    }

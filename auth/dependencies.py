"""
auth/dependencies.py -- FastAPI Depends() factories that gate routes on a session.

require_session(permission) builds a dependency that:
  1. Reads "Authorization: Bearer <session id>". Missing header -> 401.
  2. Validates the session (expired sessions are deleted on the spot).
  3. Human target: loads the account, rejects locked accounts, and checks
     the permission. DEFAULT means "any authenticated account".
  4. Machine target: skips the permission check when
     settings.machine_sessions_bypass_permissions is set; otherwise only
     DEFAULT-gated routes admit machine sessions.
  5. Returns an AuthContext and stores session/account on request.state.

require_account(permission) wraps require_session() and additionally
rejects machine sessions, for handlers that operate on "the current account".

Usage:
    @router.post("/news")
    def create(ctx: AuthContext = Depends(require_session(NEWS_CREATE))): ...

auth/dependencies.py may import from fastapi because it is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from auth.models import Account, Session, SessionKind
from auth.permissions import DEFAULT, Permission, has_permission
from auth.session import SessionManager
from auth.store import AuthStore
from core.config import get_settings
from core.errors import Unauthorized
from core.ids import RecordId

logger = logging.getLogger("playplanet.auth")


@dataclass
class AuthContext:
    """What a gated handler receives: the live session and, for humans, the account."""

    session: Session
    account: Account | None = None


def bearer_token(request: Request) -> str:
    """Return the session id from the Authorization header, or raise Unauthorized.

    The last space-separated part of the header is the token, so both
    "Bearer <id>" and a bare "<id>" are accepted.
    """
    header = request.headers.get("Authorization", "")
    token = header.split(" ")[-1].strip() if header else ""
    if not token:
        raise Unauthorized()
    return token


def resolve_session(request: Request, permission: Permission = DEFAULT) -> AuthContext:
    """Run the full session -> account -> permission chain for one request."""
    store: AuthStore = request.app.state.auth_store
    sessions: SessionManager = request.app.state.session_manager

    session = sessions.is_session_valid(bearer_token(request))

    if session.target.kind is SessionKind.HUMAN:
        account = store.get_account(RecordId.parse(session.target.id, "account"))
        if account is None or account.locked:
            raise Unauthorized()
        has_permission(store, account, permission)
        context = AuthContext(session=session, account=account)
    else:
        if permission != DEFAULT and not get_settings().machine_sessions_bypass_permissions:
            raise Unauthorized()
        context = AuthContext(session=session)

    request.state.session = context.session
    request.state.account = context.account
    return context


def require_session(permission: Permission = DEFAULT):
    """Build a dependency that admits any valid session allowed by permission."""

    def dependency(request: Request) -> AuthContext:
        return resolve_session(request, permission)

    return dependency


def require_account(permission: Permission = DEFAULT):
    """Build a dependency that admits only human sessions allowed by permission."""

    def dependency(request: Request) -> AuthContext:
        context = resolve_session(request, permission)
        if context.account is None:
            raise Unauthorized()
        return context

    return dependency

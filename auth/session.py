"""
auth/session.py -- Session lifecycle: issue, validate, refresh, revoke.

A session is a bearer credential bound to one target (a human account or a
machine client). Rules:

  - At most one live session per target. init() removes the target's old
    sessions and stores the new one in the same transaction.
  - Expiry is lazy. No background sweep exists; a session whose exp has
    passed is deleted the next time anyone presents it.
  - The refresh token is single-use. A successful refresh rotates iat, exp,
    refresh_token and refresh_exp. A wrong refresh token is treated as a
    compromise signal: the session is ended, not just the request refused.
  - A refresh token is only redeemable until refresh_exp.

Persisted state is only ever "row exists" (active) or "row absent"
(ended / expired-and-collected).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from auth.models import Session, SessionTarget
from core.errors import Unauthorized
from core.ids import random_id

if TYPE_CHECKING:
    from auth.store import AuthStore

logger = logging.getLogger("playplanet.session")

SESSION_LENGTH = 3600
REFRESH_LENGTH = 5400
SESSION_ID_LENGTH = 32
REFRESH_TOKEN_LENGTH = 64


class SessionManager:
    """Issues and checks sessions against an AuthStore.

    clock returns epoch seconds; tests pass a controllable clock to move time
    past exp or refresh_exp without sleeping.
    """

    def __init__(
        self,
        store: AuthStore,
        session_length: int = SESSION_LENGTH,
        refresh_length: int = REFRESH_LENGTH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.session_length = session_length
        self.refresh_length = refresh_length
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    def _stamp(self, session: Session) -> None:
        now = self._now()
        session.iat = now
        session.exp = now + self.session_length
        session.refresh_token = random_id(REFRESH_TOKEN_LENGTH)
        session.refresh_exp = now + self.refresh_length

    def init(self, target: SessionTarget) -> Session:
        """Start a new session for target, ending any session it already had."""
        session = Session(id=random_id(SESSION_ID_LENGTH), target=target, iat=0, exp=0, refresh_token="", refresh_exp=0)
        self._stamp(session)
        self.store.replace_session(session)
        logger.info("Started %s session", target.kind.value)
        return session

    def get(self, session_id: str) -> Session | None:
        return self.store.get_session(session_id)

    def is_session_valid(self, session_id: str) -> Session:
        """Load a session by id and check it. Returns the live session or raises Unauthorized."""
        session = self.get(session_id) if session_id else None
        if session is None:
            raise Unauthorized()
        self.is_valid(session)
        return session

    def is_valid(self, session: Session) -> None:
        """Raise Unauthorized (and delete the row) if the session has expired."""
        if self._now() >= session.exp:
            self.end(session)
            logger.info("Collected expired %s session", session.target.kind.value)
            raise Unauthorized()

    def refresh(self, session_id: str, refresh_token: str) -> Session:
        """Rotate a session's lifetime and refresh token.

        A mismatched token or an elapsed refresh window ends the session.
        """
        session = self.get(session_id) if session_id else None
        if session is None:
            raise Unauthorized()

        if not hmac.compare_digest(session.refresh_token.encode(), refresh_token.encode()):
            self.end(session)
            logger.warning("Refresh token mismatch -- %s session revoked", session.target.kind.value)
            raise Unauthorized()
        if self._now() >= session.refresh_exp:
            self.end(session)
            raise Unauthorized()

        presented = session.refresh_token
        self._stamp(session)
        if not self.store.update_session(session, presented):
            # Another refresh redeemed the token, or the session ended, after our read.
            self.end(session)
            logger.warning("Refresh token already redeemed -- %s session revoked", session.target.kind.value)
            raise Unauthorized()
        return session

    def end(self, session: Session) -> None:
        """Delete the session. Ending an already-ended session is a no-op."""
        self.store.delete_session(session.id)

    def fetch_for_target(self, target: SessionTarget) -> Session | None:
        return self.store.get_session_for_target(target)

    def end_for_target(self, target: SessionTarget) -> None:
        """Log a target out. Raises Unauthorized if it has no session."""
        session = self.fetch_for_target(target)
        if session is None:
            raise Unauthorized()
        self.end(session)

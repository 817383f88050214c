"""
auth/permissions.py -- Fixed permission catalog and account authorization.

The catalog is static: every capability is a module-level constant built
once at import and never mutated. There is no runtime registration.

DEFAULT ("none") is a sentinel meaning "a session is required, no specific
capability". has_permission() passes it unconditionally and it is never
persisted or granted.

Grants are HAS edges from account to permission (see auth/store.py). Edge
creation is idempotent, so granting twice leaves one edge.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from core.errors import BadRequest, InternalServerError, Unauthorized
from core.ids import RecordId

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AuthStore

logger = logging.getLogger("playplanet.permissions")


@dataclass(frozen=True)
class Permission:
    id: str  # dotted capability name, e.g. "news.create"

    @property
    def record_id(self) -> RecordId:
        return RecordId("permission", self.id)

    def __str__(self) -> str:
        return self.id


DEFAULT = Permission("none")

NEWS_CREATE = Permission("news.create")
NEWS_UPDATE = Permission("news.update")
NEWS_DELETE = Permission("news.delete")
NEWS_GET_ALL = Permission("news.get.all")
# --------------------------------
EVENT_CREATE = Permission("event.create")
EVENT_UPDATE = Permission("event.update")
EVENT_DELETE = Permission("event.delete")
# --------------------------------
EVENT_GROUP_CREATE = Permission("event.group.create")
EVENT_GROUP_UPDATE = Permission("event.group.update")
EVENT_GROUP_DELETE = Permission("event.group.delete")
# --------------------------------
EVENT_FIGHT_CREATE = Permission("event.fight.create")
EVENT_FIGHT_UPDATE = Permission("event.fight.update")
EVENT_FIGHT_DELETE = Permission("event.fight.delete")
# --------------------------------
ACCOUNT_PERMISSION_GET = Permission("account.permission.get")

PERMISSIONS: tuple[Permission, ...] = (
    NEWS_CREATE,
    NEWS_UPDATE,
    NEWS_DELETE,
    NEWS_GET_ALL,
    EVENT_CREATE,
    EVENT_UPDATE,
    EVENT_DELETE,
    EVENT_GROUP_CREATE,
    EVENT_GROUP_UPDATE,
    EVENT_GROUP_DELETE,
    EVENT_FIGHT_CREATE,
    EVENT_FIGHT_UPDATE,
    EVENT_FIGHT_DELETE,
    ACCOUNT_PERMISSION_GET,
)

_BY_NAME = MappingProxyType({p.id: p for p in PERMISSIONS})


def get_permission(name: str) -> Permission:
    """Resolve a dotted name to its catalog entry. Unknown names raise BadRequest."""
    try:
        return _BY_NAME[name]
    except KeyError:
        raise BadRequest(f"unknown permission: {name}") from None


def init_permissions(store: AuthStore) -> list[Permission]:
    """Create the catalog's missing permission records. Safe to run on every startup.

    Returns the permissions that were created (empty when already reconciled).
    """
    existing = set(store.list_permission_ids())
    missing = [p.id for p in PERMISSIONS if p.id not in existing]
    created = set(store.create_permissions(missing))
    if created:
        logger.info("Created %d permission record(s)", len(created))
    return [p for p in PERMISSIONS if p.id in created]


def has_permission(store: AuthStore, account: Account, permission: Permission) -> None:
    """Raise Unauthorized unless account holds permission (DEFAULT always passes)."""
    if permission == DEFAULT:
        return
    if account.id is None:
        raise Unauthorized()
    result = store.has_edge(account.id, permission.record_id)
    if result is None:
        raise InternalServerError(f"edge query for {permission.id} returned no row")
    if not result:
        raise Unauthorized()


def grant_permission(store: AuthStore, account: Account, permission: Permission) -> bool:
    """Create the HAS edge. Returns False when the account already held it."""
    if permission == DEFAULT:
        return False
    if account.id is None:
        raise ValueError("account has not been persisted")
    created = store.create_edge(account.id, permission.record_id)
    if created:
        logger.info("Granted %s to %s", permission.id, account.id)
    return created


def list_permissions(store: AuthStore, account: Account) -> list[Permission]:
    """Return the catalog permissions the account holds."""
    if account.id is None:
        return []
    held: list[Permission] = []
    for edge_target in store.list_edges(account.id):
        record = RecordId.parse(edge_target, "permission")
        permission = _BY_NAME.get(record.id)
        if permission is not None:
            held.append(permission)
    return held

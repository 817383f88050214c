"""
api/routes/v1/account.py -- Account REST endpoints.

Routes:
  POST /api/v1/account/signup                     -- create an account (public)
  GET  /api/v1/account/me                         -- the current account
  PUT  /api/v1/account/{account_id}               -- change own username
  GET  /api/v1/account/{account_id}/permissions   -- list granted permission names

account_id is the full "account:<id>" identifier. A path id that names any
other table is a 400, never a lookup in that table.

IDOR guard: PUT /account/{id} only ever modifies the session's own account.
Reading another account's permissions requires account.permission.get.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import ChangeUsernameRequest, CreationResponse, ProtectedAccount, SignupRequest
from auth.authentication import new_account
from auth.dependencies import AuthContext, require_account
from auth.permissions import ACCOUNT_PERMISSION_GET, has_permission, list_permissions
from auth.store import AuthStore
from core.errors import BadRequest, Unauthorized
from core.ids import RecordId

# Auth policy:
# - POST /api/v1/account/signup:                    public
# - GET  /api/v1/account/me:                        human session (require_account)
# - PUT  /api/v1/account/{id}:                      human session, self only
# - GET  /api/v1/account/{id}/permissions:          human session, self or account.permission.get
router = APIRouter()


@router.post("/account/signup", response_model=CreationResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> CreationResponse:
    """Create an account with TOTP disabled and a freshly encrypted secret."""
    store: AuthStore = request.app.state.auth_store
    try:
        store.create_account(new_account(body.username, body.password))
    except IntegrityError as exc:
        raise BadRequest("username already taken") from exc
    return CreationResponse(created=True)


@router.get("/account/me", response_model=ProtectedAccount)
def me(ctx: AuthContext = Depends(require_account())) -> ProtectedAccount:
    return ProtectedAccount.from_account(ctx.account)


@router.put("/account/{account_id}", response_model=ProtectedAccount)
def update_account(
    request: Request,
    account_id: str,
    body: ChangeUsernameRequest,
    ctx: AuthContext = Depends(require_account()),
) -> ProtectedAccount:
    """Change the current account's username. Another account's id is a 401."""
    store: AuthStore = request.app.state.auth_store
    target = RecordId.parse(account_id, "account")
    account = ctx.account
    if target != account.id:
        raise Unauthorized()

    account.username = body.username
    try:
        store.update_account(account)
    except IntegrityError as exc:
        raise BadRequest("username already taken") from exc
    return ProtectedAccount.from_account(account)


@router.get("/account/{account_id}/permissions", response_model=list[str])
def account_permissions(
    request: Request,
    account_id: str,
    ctx: AuthContext = Depends(require_account()),
) -> list[str]:
    """List the dotted permission names the account holds."""
    store: AuthStore = request.app.state.auth_store
    target = RecordId.parse(account_id, "account")
    if target != ctx.account.id:
        has_permission(store, ctx.account, ACCOUNT_PERMISSION_GET)

    account = store.get_account(target)
    if account is None:
        # No account means no HAS edges.
        return []
    return [p.id for p in list_permissions(store, account)]

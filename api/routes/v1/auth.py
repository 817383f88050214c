"""
api/routes/v1/auth.py -- Session and credential REST endpoints.

Routes:
  POST /api/v1/auth/login        -- password (+ TOTP) login; returns a Session
  POST /api/v1/auth/refresh      -- redeem a refresh token; returns the rotated Session
  POST /api/v1/auth/logout       -- end the presented session (any session kind)
  PUT  /api/v1/auth/password     -- change password; TOTP secret is carried over
  PUT  /api/v1/auth/totp         -- toggle the TOTP requirement
  POST /api/v1/auth/totp         -- otpauth:// provisioning URI for the current secret
  POST /api/v1/auth/totp/secret  -- regenerate the TOTP secret

Security:
  POST /login is rate-limited per IP (settings.login_rate_limit).
  authenticate() provides timing equalization -- use it, never inline the
  username lookup + key verification.
  Cache-Control: no-store on every response that carries a session.
  A wrong refresh token ends the session (SessionManager.refresh).
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ChangePasswordRequest,
    CreationResponse,
    EndedResponse,
    LoginRequest,
    ProtectedAccount,
    RefreshRequest,
    SessionResponse,
    TotpPasswordRequest,
    TotpProvisioningResponse,
    TotpSecretRequest,
    TotpToggleRequest,
)
from auth import authentication, totp
from auth.dependencies import AuthContext, require_account, require_session
from auth.models import Account, Session, SessionTarget
from auth.session import SessionManager
from auth.store import AuthStore
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/login:        public, rate-limited
# - POST /api/v1/auth/refresh:      public -- the refresh token is the credential
# - POST /api/v1/auth/logout:       any valid session (require_session)
# - PUT  /api/v1/auth/password:     human session (require_account)
# - PUT  /api/v1/auth/totp:         human session (require_account)
# - POST /api/v1/auth/totp:         human session (require_account)
# - POST /api/v1/auth/totp/secret:  human session (require_account)
router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


def _session_response(session: Session) -> JSONResponse:
    resp = JSONResponse(content=SessionResponse.from_session(session).model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _provisioning(account: Account, secret: str) -> TotpProvisioningResponse:
    uri = totp.provisioning_uri(secret, account.username, get_settings().totp_issuer)
    return TotpProvisioningResponse(uri=uri)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=SessionResponse)
@limiter.limit(_login_rate_limit)  # slowapi wraps the endpoint FastAPI registers
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username, password and (when enabled) a TOTP code.

    Wrong username and wrong password both return the same 401. A missing
    code on a TOTP-enabled account returns 403 so the client can prompt for
    the second factor. Any session the account already had is ended.
    """
    store: AuthStore = request.app.state.auth_store
    sessions: SessionManager = request.app.state.session_manager
    account = authentication.authenticate(store, body.username, body.password, body.token)
    return _session_response(sessions.init(SessionTarget.human(account.id)))


@router.post("/auth/refresh", response_model=SessionResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Rotate the session's lifetime and refresh token.

    The refresh token is single-use; presenting a stale or wrong one ends the
    session and the caller has to log in again.
    """
    sessions: SessionManager = request.app.state.session_manager
    return _session_response(sessions.refresh(body.session_id, body.refresh_token))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=EndedResponse)
def logout(request: Request, ctx: AuthContext = Depends(require_session())) -> EndedResponse:
    request.app.state.session_manager.end(ctx.session)
    return EndedResponse(ended=True)


@router.put("/auth/password", response_model=CreationResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    ctx: AuthContext = Depends(require_account()),
) -> CreationResponse:
    """Re-key the account under a new password. Requires the TOTP code when TOTP is on."""
    store: AuthStore = request.app.state.auth_store
    account = ctx.account
    authentication.change_password(account, body.old_password, body.new_password, body.token)
    store.update_account(account)
    return CreationResponse(created=True)


@router.put("/auth/totp", response_model=ProtectedAccount)
def toggle_totp(
    request: Request,
    body: TotpToggleRequest,
    ctx: AuthContext = Depends(require_account()),
) -> ProtectedAccount:
    """Enable or disable TOTP. Both directions require a valid current code."""
    store: AuthStore = request.app.state.auth_store
    account = ctx.account
    authentication.toggle_totp(account, body.password, body.token)
    store.update_account(account)
    return ProtectedAccount.from_account(account)


@router.post("/auth/totp", response_model=TotpProvisioningResponse)
def totp_provisioning(
    body: TotpPasswordRequest,
    ctx: AuthContext = Depends(require_account()),
) -> TotpProvisioningResponse:
    """Return the otpauth:// URI for the account's current secret.

    The secret is decrypted with the supplied password, so a wrong password
    is a 401 rather than a garbage URI.
    """
    account = ctx.account
    return _provisioning(account, authentication.read_secret(account, body.password))


@router.post("/auth/totp/secret", response_model=TotpProvisioningResponse)
def regenerate_totp_secret(
    request: Request,
    body: TotpSecretRequest,
    ctx: AuthContext = Depends(require_account()),
) -> TotpProvisioningResponse:
    """Replace the TOTP secret and return the new provisioning URI.

    While TOTP is enabled a valid current code is required, otherwise anyone
    holding the session and password could silently swap the second factor.
    """
    store: AuthStore = request.app.state.auth_store
    account = ctx.account
    authentication.login(account, body.password, body.token)
    secret = authentication.regenerate_secret(account, body.password)
    store.update_account(account)
    return _provisioning(account, secret)

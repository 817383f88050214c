"""
API request and response models for PlayPlanet REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (refreshToken, createdAt, ...). Models built with
_CamelModel accept either the camelCase alias or the snake_case field name on
input and serialise with the alias.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from auth.models import Account, Session


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. token is required only when TOTP is enabled."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=1024)
    token: Optional[str] = Field(default=None, max_length=16)


class RefreshRequest(_CamelModel):
    """Request body for POST /api/v1/auth/refresh."""

    session_id: str = Field(min_length=1, max_length=128)
    refresh_token: str = Field(min_length=1, max_length=128)


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/account/signup. Passwords are taken verbatim."""

    username: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
    password: str = Field(min_length=1, max_length=1024)


class ChangeUsernameRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)


class ChangePasswordRequest(_CamelModel):
    """Request body for PUT /api/v1/auth/password."""

    old_password: str = Field(min_length=1, max_length=1024)
    new_password: str = Field(min_length=1, max_length=1024)
    token: Optional[str] = Field(default=None, max_length=16)


class TotpPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/totp (provisioning URI)."""

    password: str = Field(min_length=1, max_length=1024)


class TotpToggleRequest(BaseModel):
    """Request body for PUT /api/v1/auth/totp. Both enabling and disabling need a current code."""

    password: str = Field(min_length=1, max_length=1024)
    token: str = Field(min_length=1, max_length=16)


class TotpSecretRequest(BaseModel):
    password: str = Field(min_length=1, max_length=1024)
    token: Optional[str] = Field(default=None, max_length=16)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionTargetResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str  # "human" | "machine"
    id: str


class SessionResponse(_CamelModel):
    """A session as handed to the client. id is the bearer token."""

    id: str
    target: SessionTargetResponse
    iat: int
    exp: int
    refresh_token: str
    refresh_exp: int

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            target=SessionTargetResponse(type=session.target.kind.value, id=session.target.id),
            iat=session.iat,
            exp=session.exp,
            refresh_token=session.refresh_token,
            refresh_exp=session.refresh_exp,
        )


class ProtectedAccount(_CamelModel):
    """Public view of an Account -- never includes password, secret, or nonce."""

    id: str
    username: str
    uuid: Optional[str] = None
    totp: bool
    locked: bool
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "ProtectedAccount":
        return cls(
            id=str(account.id),
            username=account.username,
            uuid=account.uuid,
            totp=account.totp,
            locked=account.locked,
            created_at=account.created_at or "",
        )


class TotpProvisioningResponse(BaseModel):
    """otpauth:// URI for enrolling the account's secret in an authenticator app."""

    model_config = ConfigDict(frozen=True)

    uri: str


class CreationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    created: bool


class EndedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ended: bool


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses: {"error": "<message>"}."""

    model_config = ConfigDict(frozen=True)

    error: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]

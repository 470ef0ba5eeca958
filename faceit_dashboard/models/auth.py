"""Authentication and session models."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union
from pydantic import BaseModel, Field, TypeAdapter


class SessionState(str, Enum):
    """Position of a browser session in the login handshake."""
    ANONYMOUS = "anonymous"
    PENDING_LOGIN = "pending_login"
    AUTHENTICATED = "authenticated"


class Profile(BaseModel):
    """FACEIT user profile."""
    id: str = Field(..., min_length=1)
    display_name: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_provider(cls, payload: dict[str, Any]) -> "Profile":
        """Build a profile from a FACEIT user payload.

        The core API wraps the user under ``payload``; the OpenID userinfo
        endpoint returns it flat.
        """
        data = payload.get("payload") if isinstance(payload.get("payload"), dict) else payload
        user_id = data.get("guid") or data.get("player_id") or data.get("id") or data.get("sub")
        if not user_id:
            raise ValueError("Profile has no user id")
        return cls(
            id=str(user_id),
            display_name=data.get("nickname") or data.get("name"),
            raw=data,
        )


class TokenResponse(BaseModel):
    """Result of one authorization-code exchange."""
    access_token: str = Field(..., min_length=1, repr=False)
    token_type: str = "bearer"
    expires_in: int | None = None
    refresh_token: str | None = Field(default=None, repr=False)

    model_config = {"frozen": True}


class AuthorizationRequest(BaseModel):
    """Parameters sent to the FACEIT authorization endpoint."""
    client_id: str
    redirect_uri: str
    scope: str
    state: str = Field(..., min_length=1)

    def to_query(self) -> dict[str, str]:
        return {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "state": self.state,
        }


class SessionBase(BaseModel):
    """Fields shared by every session state."""
    id: str = Field(..., alias="_id")
    created_at: datetime
    expires_at: datetime

    model_config = {"populate_by_name": True, "extra": "ignore"}


class AnonymousSession(SessionBase):
    """Session with no tokens.

    ``exchange_nonce`` is set while a consumed callback is still talking to
    FACEIT; only the callback holding that nonce may authenticate the session.
    """
    state: Literal["anonymous"] = "anonymous"
    exchange_nonce: str | None = Field(default=None, repr=False)

    @property
    def login_in_flight(self) -> bool:
        return self.exchange_nonce is not None


class PendingLoginSession(SessionBase):
    """Session waiting for the FACEIT callback."""
    state: Literal["pending_login"] = "pending_login"
    pending_state: str = Field(..., min_length=1)


class AuthenticatedSession(SessionBase):
    """Session that completed the handshake."""
    state: Literal["authenticated"] = "authenticated"
    access_token: str = Field(..., min_length=1, repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    token_type: str = "bearer"
    token_expires_at: datetime | None = None
    profile: Profile


AuthSession = Annotated[
    Union[AnonymousSession, PendingLoginSession, AuthenticatedSession],
    Field(discriminator="state"),
]

_session_adapter: TypeAdapter[AuthSession] = TypeAdapter(AuthSession)


def parse_session(doc: dict[str, Any]) -> AnonymousSession | PendingLoginSession | AuthenticatedSession:
    """Parse a stored session document into its tagged model."""
    return _session_adapter.validate_python(doc)


class AuthContext(BaseModel):
    """Authenticated context attached to gated requests."""
    session_id: str
    access_token: str = Field(..., repr=False)
    profile: Profile

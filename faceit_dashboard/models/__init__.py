"""Pydantic models for the FACEIT dashboard."""

from faceit_dashboard.models.auth import (
    SessionState,
    Profile,
    TokenResponse,
    AuthorizationRequest,
    AnonymousSession,
    PendingLoginSession,
    AuthenticatedSession,
    AuthSession,
    AuthContext,
    parse_session,
)

__all__ = [
    "SessionState",
    "Profile",
    "TokenResponse",
    "AuthorizationRequest",
    "AnonymousSession",
    "PendingLoginSession",
    "AuthenticatedSession",
    "AuthSession",
    "AuthContext",
    "parse_session",
]

"""Authentication gate for protected routes.

Checks session state only; never calls FACEIT.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from faceit_dashboard.cookies import SessionCookie
from faceit_dashboard.errors import StoreUnavailable
from faceit_dashboard.models.auth import AuthContext, SessionState
from faceit_dashboard.services.sessions import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_PROTECTED_PREFIXES = ("/api", "/dashboard")


def unauthorized_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": "Unauthorized", "message": "Please log in first"},
    )


def store_unavailable_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Service Unavailable", "message": "Session store unavailable"},
    )


class AuthGateMiddleware(BaseHTTPMiddleware):
    """Attach ``request.state.auth`` for authenticated sessions, reject everyone else.

    Every allowed request refreshes the session cookie.
    """

    def __init__(
        self,
        app,
        store: SessionStore,
        cookie: SessionCookie,
        protected_prefixes: tuple[str, ...] = DEFAULT_PROTECTED_PREFIXES,
    ):
        super().__init__(app)
        self.store = store
        self.cookie = cookie
        self.protected_prefixes = protected_prefixes

    def is_protected(self, path: str) -> bool:
        return any(path == prefix or path.startswith(prefix + "/") for prefix in self.protected_prefixes)

    async def dispatch(self, request: Request, call_next):
        if not self.is_protected(request.url.path):
            return await call_next(request)

        session_id = self.cookie.read(request)
        if not session_id:
            logger.info(f"Request to {request.url.path} rejected: no session")
            return unauthorized_response()

        try:
            session = await self.store.get(session_id)
        except StoreUnavailable as e:
            logger.error(f"Auth gate could not reach session store: {e.message}")
            return store_unavailable_response()

        if session is None or session.state != SessionState.AUTHENTICATED:
            logger.info(f"Request to {request.url.path} rejected: not authenticated")
            return unauthorized_response()

        request.state.auth = AuthContext(
            session_id=session_id,
            access_token=session.access_token,
            profile=session.profile,
        )
        response = await call_next(request)
        # Cookie lifetime slides with the store TTL
        self.cookie.write(response, session_id)
        return response


def require_auth(request: Request) -> AuthContext:
    """Dependency returning the context attached by the gate."""
    auth = getattr(request.state, "auth", None)
    if auth is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return auth

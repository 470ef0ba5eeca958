"""Signed session cookie handling."""

import logging
from fastapi import Request, Response
from itsdangerous import BadSignature, URLSafeTimedSerializer

from faceit_dashboard.config import Settings

logger = logging.getLogger(__name__)


class SessionCookie:
    """Carries the opaque session id to the browser in a signed, http-only cookie."""

    def __init__(self, settings: Settings):
        self.name = settings.session_cookie_name
        self.max_age = settings.session_ttl_seconds
        self.secure = settings.is_production
        self._serializer = URLSafeTimedSerializer(settings.session_secret, salt="faceit-dashboard-session")

    def sign(self, session_id: str) -> str:
        return self._serializer.dumps(session_id)

    def unsign(self, value: str | None) -> str | None:
        """Return the session id from a cookie value, or None if it is missing or forged."""
        if not value:
            return None
        try:
            session_id = self._serializer.loads(value, max_age=self.max_age)
        except BadSignature:
            logger.warning("Rejected session cookie with a bad or expired signature")
            return None
        return session_id if isinstance(session_id, str) and session_id else None

    def read(self, request: Request) -> str | None:
        return self.unsign(request.cookies.get(self.name))

    def write(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            self.name,
            self.sign(session_id),
            max_age=self.max_age,
            httponly=True,
            secure=self.secure,
            samesite="lax",
            path="/",
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(
            self.name,
            httponly=True,
            secure=self.secure,
            samesite="lax",
            path="/",
        )

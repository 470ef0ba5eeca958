"""Server-side session storage for the login handshake.

Sessions are keyed by an opaque id that the browser holds in a signed cookie.
Every record expires after a sliding inactivity window; expiry is enforced
here, so callers never see an expired session.
"""

import asyncio
import copy
import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from faceit_dashboard.errors import StoreUnavailable
from faceit_dashboard.models.auth import (
    AnonymousSession,
    AuthenticatedSession,
    PendingLoginSession,
    Profile,
    SessionState,
    TokenResponse,
    parse_session,
)

logger = logging.getLogger(__name__)

Session = AnonymousSession | PendingLoginSession | AuthenticatedSession

DEFAULT_TTL_SECONDS = 60 * 60 * 24

# Fields that only exist outside a plain anonymous session
_HANDSHAKE_FIELDS = (
    "pending_state",
    "exchange_nonce",
    "access_token",
    "refresh_token",
    "token_type",
    "token_expires_at",
    "profile",
)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what MongoDB returns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def _authenticated_fields(tokens: TokenResponse, profile: Profile, now: datetime) -> dict[str, Any]:
    token_expires_at = None
    if tokens.expires_in:
        token_expires_at = now + timedelta(seconds=tokens.expires_in)
    return {
        "state": SessionState.AUTHENTICATED.value,
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_type": tokens.token_type,
        "token_expires_at": token_expires_at,
        "profile": profile.model_dump(),
    }


class SessionStore(ABC):
    """Key-value session store with a sliding TTL."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], datetime] = utcnow):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock

    def _expiry(self, now: datetime) -> datetime:
        return now + self.ttl

    @abstractmethod
    async def create_anonymous(self) -> str:
        """Create an empty session and return its id."""

    @abstractmethod
    async def set_pending_state(self, session_id: str, state: str) -> bool:
        """Move a session to pending login, dropping any earlier tokens.

        Returns False when the session does not exist or has expired.
        """

    @abstractmethod
    async def consume_pending_state(self, session_id: str, state: str) -> bool:
        """Atomically clear the pending state if it equals ``state``.

        The session becomes anonymous with ``state`` kept as its exchange
        nonce until the callback finishes. Returns True at most once per
        pending state.
        """

    @abstractmethod
    async def set_authenticated(
        self, session_id: str, nonce: str, tokens: TokenResponse, profile: Profile
    ) -> bool:
        """Store tokens and profile in one write.

        Only succeeds while the session still carries the exchange ``nonce``
        left by ``consume_pending_state``. Returns False if the session is gone,
        was logged out or started a newer login meanwhile.
        """

    @abstractmethod
    async def abandon_login(self, session_id: str, nonce: str | None = None) -> None:
        """Return a failed login to plain anonymous.

        Without ``nonce`` this resets a pending login. With ``nonce`` it clears
        the exchange marker of that callback. Other sessions are left alone.
        """

    @abstractmethod
    async def mark_anonymous(self, session_id: str) -> None:
        """Drop pending state, tokens and profile, keeping the session id."""

    @abstractmethod
    async def get(self, session_id: str, touch: bool = True) -> Session | None:
        """Return the live session.

        With ``touch`` the inactivity window is extended as part of the read.
        """

    @abstractmethod
    async def destroy(self, session_id: str) -> None:
        """Delete the session. Unknown ids are ignored."""

    async def ping(self) -> None:
        """Raise StoreUnavailable if the backend cannot be reached."""

    async def close(self) -> None:
        """Release backend resources."""


class MemorySessionStore(SessionStore):
    """In-process session store for tests and single-worker development."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], datetime] = utcnow):
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self._sessions: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    def _live(self, session_id: str, now: datetime) -> dict[str, Any] | None:
        doc = self._sessions.get(session_id)
        if doc is None:
            return None
        if doc["expires_at"] <= now:
            del self._sessions[session_id]
            return None
        return doc

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Deep copy of all stored records."""
        return copy.deepcopy(self._sessions)

    async def create_anonymous(self) -> str:
        async with self._lock:
            now = self.clock()
            session_id = new_session_id()
            if session_id in self._sessions:
                raise RuntimeError("Session id collision")
            self._sessions[session_id] = {
                "_id": session_id,
                "state": SessionState.ANONYMOUS.value,
                "created_at": now,
                "expires_at": self._expiry(now),
            }
            return session_id

    async def set_pending_state(self, session_id: str, state: str) -> bool:
        async with self._lock:
            now = self.clock()
            doc = self._live(session_id, now)
            if doc is None:
                return False
            for field in _HANDSHAKE_FIELDS:
                doc.pop(field, None)
            doc.update(
                state=SessionState.PENDING_LOGIN.value,
                pending_state=state,
                expires_at=self._expiry(now),
            )
            return True

    async def consume_pending_state(self, session_id: str, state: str) -> bool:
        async with self._lock:
            now = self.clock()
            doc = self._live(session_id, now)
            if doc is None or not state:
                return False
            if doc.get("state") != SessionState.PENDING_LOGIN.value or doc.get("pending_state") != state:
                return False
            doc.pop("pending_state", None)
            doc.update(
                state=SessionState.ANONYMOUS.value,
                exchange_nonce=state,
                expires_at=self._expiry(now),
            )
            return True

    @staticmethod
    def _holds_nonce(doc: dict[str, Any], nonce: str) -> bool:
        return bool(nonce) and doc.get("state") == SessionState.ANONYMOUS.value and doc.get("exchange_nonce") == nonce

    async def set_authenticated(
        self, session_id: str, nonce: str, tokens: TokenResponse, profile: Profile
    ) -> bool:
        async with self._lock:
            now = self.clock()
            doc = self._live(session_id, now)
            if doc is None or not self._holds_nonce(doc, nonce):
                return False
            doc.pop("pending_state", None)
            doc.pop("exchange_nonce", None)
            doc.update(_authenticated_fields(tokens, profile, now))
            doc["expires_at"] = self._expiry(now)
            return True

    async def abandon_login(self, session_id: str, nonce: str | None = None) -> None:
        async with self._lock:
            doc = self._live(session_id, self.clock())
            if doc is None:
                return
            if nonce is None:
                if doc.get("state") != SessionState.PENDING_LOGIN.value:
                    return
                doc.pop("pending_state", None)
                doc["state"] = SessionState.ANONYMOUS.value
            elif self._holds_nonce(doc, nonce):
                doc.pop("exchange_nonce", None)

    async def mark_anonymous(self, session_id: str) -> None:
        async with self._lock:
            doc = self._live(session_id, self.clock())
            if doc is None:
                return
            for field in _HANDSHAKE_FIELDS:
                doc.pop(field, None)
            doc["state"] = SessionState.ANONYMOUS.value

    async def get(self, session_id: str, touch: bool = True) -> Session | None:
        async with self._lock:
            now = self.clock()
            doc = self._live(session_id, now)
            if doc is None:
                return None
            if touch:
                doc["expires_at"] = self._expiry(now)
            return parse_session(copy.deepcopy(doc))

    async def destroy(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)


class MongoSessionStore(SessionStore):
    """MongoDB-backed session store.

    Every state transition is a single conditional update, so concurrent
    callbacks for the same session cannot both consume the pending state.
    A TTL index on ``expires_at`` removes stale records in the background;
    queries also filter on it so expiry is exact.
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection | None = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self._collection = collection

    @property
    def collection(self) -> AsyncIOMotorCollection:
        if self._collection is None:
            # Imported here to keep the store usable with an injected collection
            from faceit_dashboard.database import Database

            self._collection = Database.get_db().sessions
        return self._collection

    @staticmethod
    def _live_filter(session_id: str, now: datetime, **extra: Any) -> dict[str, Any]:
        return {"_id": session_id, "expires_at": {"$gt": now}, **extra}

    async def create_anonymous(self) -> str:
        now = self.clock()
        session_id = new_session_id()
        try:
            await self.collection.insert_one({
                "_id": session_id,
                "state": SessionState.ANONYMOUS.value,
                "created_at": now,
                "expires_at": self._expiry(now),
            })
        except DuplicateKeyError:
            raise RuntimeError("Session id collision")
        except PyMongoError as e:
            raise StoreUnavailable(f"Session store unavailable: {type(e).__name__}") from e
        return session_id

    async def set_pending_state(self, session_id: str, state: str) -> bool:
        now = self.clock()
        try:
            result = await self.collection.update_one(
                self._live_filter(session_id, now),
                {
                    "$set": {
                        "state": SessionState.PENDING_LOGIN.value,
                        "pending_state": state,
                        "expires_at": self._expiry(now),
                    },
                    "$unset": {field: "" for field in _HANDSHAKE_FIELDS if field != "pending_state"},
                },
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"Session store unavailable: {type(e).__name__}") from e
        return result.matched_count > 0

    async def consume_pending_state(self, session_id: str, state: str) -> bool:
        if not state:
            return False
        now = self.clock()
        try:
            doc = await self.collection.find_one_and_update(
                self._live_filter(
                    session_id,
                    now,
                    state=SessionState.PENDING_LOGIN.value,
                    pending_state=state,
                ),
                {
                    "$set": {
                        "state": SessionState.ANONYMOUS.value,
                        "exchange_nonce": state,
                        "expires_at": self._expiry(now),
                    },
                    "$unset": {"pending_state": ""},
                },
                projection={"_id": 1},
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"Session store unavailable: {type(e).__name__}") from e
        return doc is not None

    async def set_authenticated(
        self, session_id: str, nonce: str, tokens: TokenResponse, profile: Profile
    ) -> bool:
        if not nonce:
            return False
        now = self.clock()
        fields = _authenticated_fields(tokens, profile, now)
        fields["expires_at"] = self._expiry(now)
        try:
            result = await self.collection.update_one(
                self._live_filter(
                    session_id,
                    now,
                    state=SessionState.ANONYMOUS.value,
                    exchange_nonce=nonce,
                ),
                {"$set": fields, "$unset": {"pending_state": "", "exchange_nonce": ""}},
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"Session store unavailable: {type(e).__name__}") from e
        return result.matched_count > 0

    async def abandon_login(self, session_id: str, nonce: str | None = None) -> None:
        if nonce is None:
            query = self._live_filter(session_id, self.clock(), state=SessionState.PENDING_LOGIN.value)
            update = {
                "$set": {"state": SessionState.ANONYMOUS.value},
                "$unset": {"pending_state": ""},
            }
        else:
            query = self._live_filter(
                session_id, self.clock(), state=SessionState.ANONYMOUS.value, exchange_nonce=nonce
            )
            update = {"$unset": {"exchange_nonce": ""}}
        try:
            await self.collection.update_one(query, update)
        except PyMongoError as e:
            raise StoreUnavailable(f"Session store unavailable: {type(e).__name__}") from e

    async def mark_anonymous(self, session_id: str) -> None:
        try:
            await self.collection.update_one(
                self._live_filter(session_id, self.clock()),
                {
                    "$set": {"state": SessionState.ANONYMOUS.value},
                    "$unset": {field: "" for field in _HANDSHAKE_FIELDS},
                },
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"Session store unavailable: {type(e).__name__}") from e

    async def get(self, session_id: str, touch: bool = True) -> Session | None:
        now = self.clock()
        try:
            if touch:
                doc = await self.collection.find_one_and_update(
                    self._live_filter(session_id, now),
                    {"$set": {"expires_at": self._expiry(now)}},
                    return_document=ReturnDocument.AFTER,
                )
            else:
                doc = await self.collection.find_one(self._live_filter(session_id, now))
        except PyMongoError as e:
            raise StoreUnavailable(f"Session store unavailable: {type(e).__name__}") from e
        if doc is None:
            return None
        return parse_session(doc)

    async def destroy(self, session_id: str) -> None:
        try:
            await self.collection.delete_one({"_id": session_id})
        except PyMongoError as e:
            raise StoreUnavailable(f"Session store unavailable: {type(e).__name__}") from e

    async def ping(self) -> None:
        try:
            await self.collection.database.command("ping")
        except PyMongoError as e:
            logger.error(f"MongoDB ping failed: {type(e).__name__}")
            raise StoreUnavailable(f"Session store unavailable: {type(e).__name__}") from e

"""Login handshake orchestration.

A browser session moves ``anonymous -> pending_login -> authenticated``.
A failed callback sends a pending login back to ``anonymous``; an
already authenticated session is left untouched. Logout destroys it.
The pending state is consumed atomically before the authorization code is
ever sent to FACEIT, so a replayed or forged callback cannot reach the
token endpoint. The consumed state stays on the session as an exchange
nonce, and the final write only lands while that nonce is still there: a
logout or a newer login during the exchange wins over the old callback.
"""

import logging
import re
from dataclasses import dataclass

from faceit_dashboard.errors import (
    AuthError,
    InvalidState,
    MissingCode,
    NetworkError,
    ProviderRejected,
)
from faceit_dashboard.models.auth import Profile, SessionState, TokenResponse
from faceit_dashboard.services.faceit_oauth import (
    AuthorizationUrlBuilder,
    ProfileFetcher,
    TokenExchangeClient,
)
from faceit_dashboard.services.sessions import SessionStore
from faceit_dashboard.services.state_tokens import StateTokenGenerator

logger = logging.getLogger(__name__)

_REASON_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,64}$")


@dataclass
class LoginRedirect:
    """Where to send the browser to start a login."""
    session_id: str
    url: str


@dataclass
class CallbackResult:
    """Outcome of a callback.

    ``error_code`` is one of ``provider_error``, ``no_code``,
    ``invalid_state``, ``auth_failed``. ``reason`` is the provider's own
    short error code when it sent one.
    """
    session_id: str | None
    profile: Profile | None = None
    error_code: str | None = None
    reason: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.error_code is None and self.profile is not None


class AuthFlowOrchestrator:
    """Sequences the FACEIT login handshake against a session store."""

    def __init__(
        self,
        store: SessionStore,
        url_builder: AuthorizationUrlBuilder,
        token_client: TokenExchangeClient,
        profile_fetcher: ProfileFetcher,
        redirect_uri: str,
        state_tokens: StateTokenGenerator | None = None,
    ):
        self.store = store
        self.url_builder = url_builder
        self.token_client = token_client
        self.profile_fetcher = profile_fetcher
        self.redirect_uri = redirect_uri
        self.state_tokens = state_tokens or StateTokenGenerator()

    async def start_login(self, session_id: str | None) -> LoginRedirect:
        """Put the session into pending login and return the FACEIT URL.

        An unknown or expired session id is replaced with a fresh anonymous
        session. Any earlier tokens on the session are dropped.
        """
        state = self.state_tokens.generate()
        url = self.url_builder.build(state)

        if not session_id or not await self.store.set_pending_state(session_id, state):
            session_id = await self.store.create_anonymous()
            if not await self.store.set_pending_state(session_id, state):
                raise RuntimeError("Freshly created session disappeared")

        logger.info("Login started, redirecting to FACEIT authorization endpoint")
        return LoginRedirect(session_id=session_id, url=url)

    async def handle_callback(
        self,
        session_id: str | None,
        code: str | None,
        state: str | None,
        provider_error: str | None = None,
        provider_error_description: str | None = None,
    ) -> CallbackResult:
        """Complete the handshake for a FACEIT redirect."""
        if provider_error:
            logger.error(f"FACEIT returned an error: {provider_error_description or provider_error}")
            reason = provider_error if _REASON_RE.match(provider_error) else None
            return await self._abort(session_id, "provider_error", reason=reason)

        if not code:
            logger.warning(f"Callback rejected: {MissingCode.code}")
            return await self._abort(session_id, MissingCode.code)

        if not session_id or not state or not await self.store.consume_pending_state(session_id, state):
            logger.warning("Invalid state parameter - possible CSRF attack")
            return await self._abort(session_id, InvalidState.code)

        try:
            tokens = await self._exchange(code)
        except (ProviderRejected, NetworkError) as e:
            logger.error(f"Error during OAuth callback: {e.message}")
            return await self._abort(session_id, e.code, nonce=state)

        try:
            profile = await self.profile_fetcher.fetch(tokens.access_token)
        except (ProviderRejected, NetworkError) as e:
            # Tokens are dropped with this frame; nothing was persisted yet.
            logger.error(f"Error during OAuth callback: {e.message}")
            return await self._abort(session_id, e.code, nonce=state)

        if not await self.store.set_authenticated(session_id, state, tokens, profile):
            logger.warning("Session ended or restarted login before the handshake completed")
            return CallbackResult(session_id=await self._live_id(session_id), error_code=AuthError.code)

        logger.info(f"User authenticated: {profile.display_name or profile.id}")
        return CallbackResult(session_id=session_id, profile=profile)

    async def logout(self, session_id: str | None) -> bool:
        """Destroy any session that is logged in or mid-login.

        Returns True when a session was destroyed. Logging out a plain
        anonymous or unknown session is a successful no-op.
        """
        if not session_id:
            return False
        session = await self.store.get(session_id, touch=False)
        if session is None:
            return False
        if session.state == SessionState.ANONYMOUS and not session.login_in_flight:
            return False
        await self.store.destroy(session_id)
        logger.info("User logged out")
        return True

    async def _exchange(self, code: str) -> TokenResponse:
        """Exchange the code, retrying once only if the first request never left."""
        try:
            return await self.token_client.exchange(code, self.redirect_uri)
        except NetworkError as e:
            if e.request_sent:
                raise
            logger.warning(f"Token exchange did not reach FACEIT, retrying once: {e.message}")
        return await self.token_client.exchange(code, self.redirect_uri)

    async def _abort(
        self,
        session_id: str | None,
        error_code: str,
        reason: str | None = None,
        nonce: str | None = None,
    ) -> CallbackResult:
        if session_id:
            await self.store.abandon_login(session_id, nonce)
        return CallbackResult(session_id=await self._live_id(session_id), error_code=error_code, reason=reason)

    async def _live_id(self, session_id: str | None) -> str | None:
        """The id itself if the session still exists, so the cookie is kept only for live records."""
        if session_id and await self.store.get(session_id, touch=False) is not None:
            return session_id
        return None

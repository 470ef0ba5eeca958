"""Pytest configuration and fixtures for FACEIT dashboard tests."""

from datetime import datetime, timedelta
from typing import AsyncGenerator
import httpx
import pytest
import pytest_asyncio
import respx
from httpx import AsyncClient, ASGITransport, Response

from faceit_dashboard.config import Settings
from faceit_dashboard.main import create_app
from faceit_dashboard.services.auth_flow import AuthFlowOrchestrator
from faceit_dashboard.services.faceit_oauth import (
    AuthorizationUrlBuilder,
    ProfileFetcher,
    TokenExchangeClient,
)
from faceit_dashboard.services.resource_api import FaceitResourceClient
from faceit_dashboard.services.sessions import MemorySessionStore, utcnow

AUTHORIZE_URL = "https://faceit.test/auth/v1/oauth/authorize"
TOKEN_URL = "https://faceit.test/auth/v1/oauth/token"
PROFILE_URL = "https://faceit.test/core/v1/users/me"
API_BASE_URL = "https://open.faceit.test"
REDIRECT_URI = "https://dashboard.test/callback"

ACCESS_TOKEN = "at-1f2e3d4c5b6a"
REFRESH_TOKEN = "rt-9a8b7c6d5e4f"


class FakeClock:
    """Controllable clock for TTL tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    """Fully configured settings that ignore the environment's .env file."""
    return Settings(
        _env_file=None,
        faceit_client_id="client-123",
        faceit_client_secret="secret-456",
        redirect_uri=REDIRECT_URI,
        session_secret="test-session-secret",
        mongodb_url="mongodb://localhost:27017",
        faceit_authorization_url=AUTHORIZE_URL,
        faceit_token_url=TOKEN_URL,
        faceit_profile_url=PROFILE_URL,
        faceit_api_base_url=API_BASE_URL,
        environment="test",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemorySessionStore:
    """In-memory session store driven by the fake clock."""
    return MemorySessionStore(ttl_seconds=60 * 60 * 24, clock=clock)


@pytest.fixture
def token_payload() -> dict:
    return {
        "access_token": ACCESS_TOKEN,
        "token_type": "bearer",
        "expires_in": 3600,
        "refresh_token": REFRESH_TOKEN,
    }


@pytest.fixture
def profile_payload() -> dict:
    return {
        "guid": "5f6a1c2b-0000-4000-8000-000000000001",
        "nickname": "s1mple_fan",
        "email": "player@example.com",
        "picture": "https://cdn.faceit.test/avatar.png",
    }


@pytest.fixture
def faceit_api(token_payload: dict, profile_payload: dict):
    """Mocked FACEIT endpoints; tests override individual routes as needed."""
    with respx.mock(assert_all_called=False) as router:
        router.post(TOKEN_URL, name="token").mock(
            return_value=Response(200, json=token_payload)
        )
        router.get(PROFILE_URL, name="profile").mock(
            return_value=Response(200, json=profile_payload)
        )
        yield router


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(timeout=5.0) as client:
        yield client


@pytest.fixture
def auth_flow(
    settings: Settings,
    store: MemorySessionStore,
    http_client: httpx.AsyncClient,
) -> AuthFlowOrchestrator:
    """Orchestrator wired to the in-memory store and real HTTP clients."""
    return AuthFlowOrchestrator(
        store=store,
        url_builder=AuthorizationUrlBuilder(settings),
        token_client=TokenExchangeClient(settings, http_client),
        profile_fetcher=ProfileFetcher(settings, http_client),
        redirect_uri=settings.redirect_uri,
    )


@pytest.fixture
def resource_client(settings: Settings, http_client: httpx.AsyncClient) -> FaceitResourceClient:
    return FaceitResourceClient(settings, http_client)


@pytest.fixture
def app(settings: Settings, store: MemorySessionStore, http_client: httpx.AsyncClient):
    return create_app(settings=settings, store=store, http_client=http_client)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://dashboard.test") as ac:
        yield ac


@pytest_asyncio.fixture
async def authenticated_session(store: MemorySessionStore, auth_flow: AuthFlowOrchestrator, faceit_api) -> str:
    """A session that completed the full handshake."""
    session_id = await store.create_anonymous()
    await store.set_pending_state(session_id, "seed-state")
    result = await auth_flow.handle_callback(session_id, code="seed-code", state="seed-state")
    assert result.authenticated
    faceit_api.reset()
    return session_id


@pytest.fixture
def cookie_for(app):
    """Build the signed session cookie for a session id."""
    def _cookie_for(session_id: str) -> dict[str, str]:
        cookie = app.state.session_cookie
        return {cookie.name: cookie.sign(session_id)}
    return _cookie_for

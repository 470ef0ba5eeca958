"""Tests for the login handshake orchestration."""

import asyncio
from urllib.parse import parse_qs, urlsplit
import httpx
import pytest
from httpx import Response

from faceit_dashboard.config import Settings
from faceit_dashboard.errors import ConfigurationError
from faceit_dashboard.models.auth import (
    AnonymousSession,
    AuthenticatedSession,
    PendingLoginSession,
)
from faceit_dashboard.services.sessions import MemorySessionStore


async def _pending_session(store: MemorySessionStore, state: str = "s1") -> str:
    session_id = await store.create_anonymous()
    await store.set_pending_state(session_id, state)
    return session_id


class TestStartLogin:
    """Tests for AuthFlowOrchestrator.start_login."""

    async def test_start_login_creates_pending_session(self, auth_flow, store):
        login = await auth_flow.start_login(None)

        session = await store.get(login.session_id)
        assert isinstance(session, PendingLoginSession)
        query = parse_qs(urlsplit(login.url).query)
        assert query["state"] == [session.pending_state]
        assert query["response_type"] == ["code"]

    async def test_start_login_reuses_known_session(self, auth_flow, store):
        session_id = await store.create_anonymous()

        login = await auth_flow.start_login(session_id)

        assert login.session_id == session_id

    async def test_start_login_replaces_unknown_session(self, auth_flow, store):
        login = await auth_flow.start_login("forgotten-session")

        assert login.session_id != "forgotten-session"
        assert isinstance(await store.get(login.session_id), PendingLoginSession)

    async def test_each_login_gets_fresh_state(self, auth_flow, store):
        first = await auth_flow.start_login(None)
        second = await auth_flow.start_login(first.session_id)

        assert parse_qs(urlsplit(first.url).query)["state"] != parse_qs(urlsplit(second.url).query)["state"]

    async def test_start_login_from_authenticated_drops_tokens(self, auth_flow, store, authenticated_session):
        await auth_flow.start_login(authenticated_session)

        assert isinstance(await store.get(authenticated_session), PendingLoginSession)

    async def test_misconfiguration_does_not_touch_store(self, settings: Settings, auth_flow, store):
        settings.faceit_client_id = ""

        with pytest.raises(ConfigurationError):
            await auth_flow.start_login(None)

        assert store.snapshot() == {}


class TestHandleCallback:
    """Tests for AuthFlowOrchestrator.handle_callback."""

    async def test_successful_callback(self, auth_flow, store, faceit_api, settings, token_payload):
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert result.authenticated
        assert result.profile.display_name == "s1mple_fan"

        token_route = faceit_api.routes["token"]
        assert token_route.call_count == 1
        form = parse_qs(token_route.calls.last.request.content.decode())
        assert form["code"] == ["abc123"]
        assert form["redirect_uri"] == [settings.redirect_uri]

        profile_route = faceit_api.routes["profile"]
        assert profile_route.call_count == 1
        assert profile_route.calls.last.request.headers["authorization"] == (
            f"Bearer {token_payload['access_token']}"
        )

        session = await store.get(session_id)
        assert isinstance(session, AuthenticatedSession)
        assert session.access_token == token_payload["access_token"]
        assert "pending_state" not in store.snapshot()[session_id]

    async def test_state_mismatch_never_calls_token_endpoint(self, auth_flow, store, faceit_api):
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(session_id, code="abc123", state="forged")

        assert result.error_code == "invalid_state"
        assert faceit_api.routes["token"].call_count == 0
        assert faceit_api.routes["profile"].call_count == 0
        assert isinstance(await store.get(session_id), AnonymousSession)

    async def test_missing_state_is_invalid(self, auth_flow, store, faceit_api):
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(session_id, code="abc123", state=None)

        assert result.error_code == "invalid_state"
        assert faceit_api.routes["token"].call_count == 0

    async def test_callback_without_session_is_invalid(self, auth_flow, faceit_api):
        result = await auth_flow.handle_callback(None, code="abc123", state="s1")

        assert result.error_code == "invalid_state"
        assert result.session_id is None
        assert faceit_api.routes["token"].call_count == 0

    async def test_replayed_callback_fails(self, auth_flow, store, faceit_api):
        session_id = await _pending_session(store, "s1")

        first = await auth_flow.handle_callback(session_id, code="abc123", state="s1")
        second = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert first.authenticated
        assert second.error_code == "invalid_state"
        assert faceit_api.routes["token"].call_count == 1
        assert isinstance(await store.get(session_id), AuthenticatedSession)

    async def test_racing_callbacks_exchange_once(self, auth_flow, store, faceit_api):
        session_id = await _pending_session(store, "s1")

        results = await asyncio.gather(*[
            auth_flow.handle_callback(session_id, code="abc123", state="s1") for _ in range(5)
        ])

        assert sum(r.authenticated for r in results) == 1
        assert faceit_api.routes["token"].call_count == 1

    async def test_provider_error(self, auth_flow, store, faceit_api):
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(
            session_id,
            code=None,
            state="s1",
            provider_error="access_denied",
            provider_error_description="User cancelled",
        )

        assert result.error_code == "provider_error"
        assert result.reason == "access_denied"
        assert faceit_api.routes["token"].call_count == 0
        assert isinstance(await store.get(session_id), AnonymousSession)

    async def test_provider_error_reason_is_sanitized(self, auth_flow, store):
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(
            session_id, code=None, state="s1", provider_error="<script>alert(1)</script>"
        )

        assert result.error_code == "provider_error"
        assert result.reason is None

    async def test_missing_code(self, auth_flow, store, faceit_api):
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(session_id, code=None, state="s1")

        assert result.error_code == "no_code"
        assert faceit_api.routes["token"].call_count == 0
        assert isinstance(await store.get(session_id), AnonymousSession)

    async def test_rejected_exchange(self, auth_flow, store, faceit_api):
        faceit_api.routes["token"].mock(return_value=Response(400, json={"error": "invalid_grant"}))
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert result.error_code == "auth_failed"
        assert faceit_api.routes["token"].call_count == 1
        assert faceit_api.routes["profile"].call_count == 0
        assert isinstance(await store.get(session_id), AnonymousSession)

    async def test_profile_failure_persists_nothing(self, auth_flow, store, faceit_api):
        faceit_api.routes["profile"].mock(return_value=Response(500))
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert result.error_code == "auth_failed"
        assert isinstance(await store.get(session_id), AnonymousSession)
        record = store.snapshot()[session_id]
        assert "access_token" not in record
        assert "refresh_token" not in record
        assert "profile" not in record

    async def test_unsent_exchange_is_retried_once(self, auth_flow, store, faceit_api, token_payload):
        faceit_api.routes["token"].mock(side_effect=[
            httpx.ConnectError("refused"),
            Response(200, json=token_payload),
        ])
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert result.authenticated
        assert faceit_api.routes["token"].call_count == 2

    async def test_retry_happens_at_most_once(self, auth_flow, store, faceit_api):
        faceit_api.routes["token"].mock(side_effect=httpx.ConnectError("refused"))
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert result.error_code == "auth_failed"
        assert faceit_api.routes["token"].call_count == 2

    async def test_unknown_outcome_is_not_retried(self, auth_flow, store, faceit_api):
        faceit_api.routes["token"].mock(side_effect=httpx.ReadTimeout("slow"))
        session_id = await _pending_session(store, "s1")

        result = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert result.error_code == "auth_failed"
        assert faceit_api.routes["token"].call_count == 1
        assert isinstance(await store.get(session_id), AnonymousSession)

    async def test_session_expired_mid_handshake(self, auth_flow, store, faceit_api, clock):
        session_id = await _pending_session(store, "s1")

        def expire_then_respond(request):
            clock.advance(days=2)
            return Response(200, json={"guid": "p-1", "nickname": "late"})

        faceit_api.routes["profile"].mock(side_effect=expire_then_respond)

        result = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert not result.authenticated
        assert result.session_id is None
        assert store.snapshot() == {}

    async def test_logout_during_profile_fetch_wins(self, auth_flow, store, faceit_api, profile_payload):
        session_id = await _pending_session(store, "s1")
        logouts = []

        async def logout_then_respond(request):
            logouts.append(await auth_flow.logout(session_id))
            return Response(200, json=profile_payload)

        faceit_api.routes["profile"].mock(side_effect=logout_then_respond)

        result = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert logouts == [True]
        assert not result.authenticated
        assert result.error_code == "auth_failed"
        assert result.session_id is None
        assert await store.get(session_id) is None

    async def test_newer_login_during_profile_fetch_is_kept(self, auth_flow, store, faceit_api, profile_payload):
        session_id = await _pending_session(store, "s1")
        restarts = []

        async def restart_then_respond(request):
            restarts.append(await auth_flow.start_login(session_id))
            return Response(200, json=profile_payload)

        faceit_api.routes["profile"].mock(side_effect=restart_then_respond)

        result = await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert result.error_code == "auth_failed"
        assert result.session_id == session_id
        session = await store.get(session_id)
        assert isinstance(session, PendingLoginSession)
        assert session.pending_state == parse_qs(urlsplit(restarts[0].url).query)["state"][0]

    async def test_unknown_session_is_not_kept(self, auth_flow, faceit_api):
        result = await auth_flow.handle_callback("no-such-session", code="abc123", state="s1")

        assert result.error_code == "invalid_state"
        assert result.session_id is None
        assert faceit_api.routes["token"].call_count == 0

    async def test_failed_exchange_clears_in_flight_marker(self, auth_flow, store, faceit_api):
        faceit_api.routes["token"].mock(return_value=Response(400, json={"error": "invalid_grant"}))
        session_id = await _pending_session(store, "s1")

        await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        session = await store.get(session_id)
        assert isinstance(session, AnonymousSession)
        assert not session.login_in_flight

    async def test_token_values_never_logged(self, auth_flow, store, faceit_api, token_payload, caplog):
        session_id = await _pending_session(store, "s1")

        with caplog.at_level("DEBUG"):
            await auth_flow.handle_callback(session_id, code="abc123", state="s1")

        assert token_payload["access_token"] not in caplog.text
        assert token_payload["refresh_token"] not in caplog.text


class TestLogout:
    """Tests for AuthFlowOrchestrator.logout."""

    async def test_logout_authenticated(self, auth_flow, store, authenticated_session):
        assert await auth_flow.logout(authenticated_session) is True
        assert await store.get(authenticated_session) is None

    async def test_logout_pending(self, auth_flow, store):
        session_id = await _pending_session(store)

        assert await auth_flow.logout(session_id) is True
        assert await store.get(session_id) is None

    async def test_logout_while_exchanging(self, auth_flow, store):
        session_id = await _pending_session(store, "s1")
        await store.consume_pending_state(session_id, "s1")

        assert await auth_flow.logout(session_id) is True
        assert await store.get(session_id) is None

    async def test_logout_anonymous_leaves_store_unchanged(self, auth_flow, store):
        session_id = await store.create_anonymous()
        before = store.snapshot()

        assert await auth_flow.logout(session_id) is False

        assert store.snapshot() == before

    async def test_logout_without_session(self, auth_flow, store):
        assert await auth_flow.logout(None) is False
        assert await auth_flow.logout("unknown") is False
        assert store.snapshot() == {}

    async def test_logout_is_idempotent(self, auth_flow, authenticated_session):
        assert await auth_flow.logout(authenticated_session) is True
        assert await auth_flow.logout(authenticated_session) is False


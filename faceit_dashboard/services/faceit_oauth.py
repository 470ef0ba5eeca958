"""FACEIT OAuth2 clients: authorization URL, code exchange and profile lookup."""

import logging
from typing import Any
from urllib.parse import urlencode
import httpx

from faceit_dashboard.config import Settings, get_settings
from faceit_dashboard.errors import (
    ConfigurationError,
    MalformedResponse,
    NetworkError,
    ProviderRejected,
)
from faceit_dashboard.models.auth import AuthorizationRequest, Profile, TokenResponse

logger = logging.getLogger(__name__)

# Failures where the request never left this process
_UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


def provider_error_details(response: httpx.Response) -> tuple[str | None, str]:
    """Extract ``(error, description)`` from a provider error response."""
    try:
        body = response.json()
    except ValueError:
        return None, f"HTTP {response.status_code}"
    if not isinstance(body, dict):
        return None, f"HTTP {response.status_code}"
    error = body.get("error")
    description = body.get("error_description") or body.get("message") or error
    return error, description or f"HTTP {response.status_code}"


def network_error_from(action: str, exc: httpx.HTTPError) -> NetworkError:
    request_sent = not isinstance(exc, _UNSENT_ERRORS)
    return NetworkError(f"{action} failed: {type(exc).__name__}", request_sent=request_sent)


class AuthorizationUrlBuilder:
    """Composes the redirect URL to the FACEIT authorization endpoint."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def authorization_request(self, state: str) -> AuthorizationRequest:
        if not state:
            raise ValueError("state must not be empty")
        if not self.settings.faceit_client_id:
            raise ConfigurationError("FACEIT_CLIENT_ID is not configured")
        if not self.settings.redirect_uri:
            raise ConfigurationError("REDIRECT_URI is not configured")
        return AuthorizationRequest(
            client_id=self.settings.faceit_client_id,
            redirect_uri=self.settings.redirect_uri,
            scope=self.settings.faceit_scope,
            state=state,
        )

    def build(self, state: str) -> str:
        request = self.authorization_request(state)
        separator = "&" if "?" in self.settings.faceit_authorization_url else "?"
        return f"{self.settings.faceit_authorization_url}{separator}{urlencode(request.to_query())}"


class FaceitHTTPClient:
    """Base for clients talking to FACEIT over a shared ``httpx.AsyncClient``.

    When no client is injected one is created lazily and owned by this
    instance; an injected client is left open on ``close()``.
    """

    def __init__(self, settings: Settings | None = None, http_client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.settings.http_timeout_seconds)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None


class TokenExchangeClient(FaceitHTTPClient):
    """Exchanges an authorization code for an access/refresh token pair."""

    async def exchange(self, code: str, redirect_uri: str) -> TokenResponse:
        """Perform exactly one authorization-code grant request."""
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.settings.faceit_client_id,
            "client_secret": self.settings.faceit_client_secret,
        }

        client = await self._get_client()
        try:
            response = await client.post(
                self.settings.faceit_token_url,
                data=form,
                headers={"Accept": "application/json"},
                timeout=self.settings.http_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise network_error_from("Token exchange", e) from None

        if response.status_code >= 500:
            raise NetworkError(
                f"Token exchange failed: provider returned HTTP {response.status_code}",
                request_sent=True,
            )
        if response.status_code >= 400:
            error, description = provider_error_details(response)
            raise ProviderRejected(
                f"Token exchange failed: {description}",
                status_code=response.status_code,
                error=error,
            )

        try:
            body: Any = response.json()
        except ValueError:
            raise MalformedResponse("Token exchange failed: response is not JSON") from None
        if not isinstance(body, dict):
            raise MalformedResponse("Token exchange failed: unexpected response shape")
        if body.get("error"):
            raise ProviderRejected(
                f"Token exchange failed: {body.get('error_description') or body['error']}",
                status_code=response.status_code,
                error=body["error"],
            )
        if not body.get("access_token"):
            raise MalformedResponse("Token exchange failed: response lacks access_token")

        logger.info("Access token obtained")
        return TokenResponse(
            access_token=body["access_token"],
            token_type=body.get("token_type") or "bearer",
            expires_in=body.get("expires_in"),
            refresh_token=body.get("refresh_token"),
        )


class ProfileFetcher(FaceitHTTPClient):
    """Resolves the authenticated user's profile from an access token."""

    async def fetch(self, access_token: str) -> Profile:
        client = await self._get_client()
        try:
            response = await client.get(
                self.settings.faceit_profile_url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
                timeout=self.settings.http_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise network_error_from("User info retrieval", e) from None

        if response.status_code >= 500:
            raise NetworkError(
                f"User info retrieval failed: provider returned HTTP {response.status_code}",
                request_sent=True,
            )
        if response.status_code >= 400:
            error, description = provider_error_details(response)
            raise ProviderRejected(
                f"User info retrieval failed: {description}",
                status_code=response.status_code,
                error=error,
            )

        try:
            body = response.json()
        except ValueError:
            raise MalformedResponse("User info retrieval failed: response is not JSON") from None
        if not isinstance(body, dict):
            raise MalformedResponse("User info retrieval failed: unexpected response shape")
        try:
            return Profile.from_provider(body)
        except ValueError as e:
            raise MalformedResponse(f"User info retrieval failed: {e}") from None

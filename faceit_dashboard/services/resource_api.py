"""Client for FACEIT resource endpoints called on behalf of a logged-in user."""

from typing import Any
import httpx

from faceit_dashboard.errors import ProviderRejected, SessionStale
from faceit_dashboard.services.faceit_oauth import FaceitHTTPClient, provider_error_details, network_error_from


class FaceitResourceClient(FaceitHTTPClient):
    """Thin pass-through to the FACEIT data API.

    Responses are returned as-is. A 401/403 means the session's token is no
    longer accepted and is raised as ``SessionStale`` for the caller to act on.
    """

    async def _request(
        self,
        action: str,
        method: str,
        path: str,
        access_token: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                f"{self.settings.faceit_api_base_url.rstrip('/')}{path}",
                json=json,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
                timeout=self.settings.http_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise network_error_from(action, e) from None

        if response.status_code in (401, 403):
            raise SessionStale(f"{action} failed: token rejected (HTTP {response.status_code})")
        if response.status_code >= 400:
            error, description = provider_error_details(response)
            raise ProviderRejected(
                f"{action} failed: {description}",
                status_code=response.status_code,
                error=error,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise ProviderRejected(f"{action} failed: response is not JSON", status_code=response.status_code)

    async def get_hub(self, access_token: str, hub_id: str) -> Any:
        return await self._request("Get hub", "GET", f"/hubs/{hub_id}", access_token)

    async def get_hub_match(self, access_token: str, hub_id: str, match_id: str) -> Any:
        return await self._request(
            "Hub match retrieval", "GET", f"/hubs/{hub_id}/matches/{match_id}", access_token
        )

    async def get_hub_matches(self, access_token: str, hub_id: str, status: str | None = None) -> list[Any]:
        """List a hub's matches, optionally keeping only one match status."""
        data = await self._request("Matches retrieval", "GET", f"/hubs/{hub_id}/matches", access_token)
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise ProviderRejected("Matches retrieval failed: response has no items list")
        if status is None:
            return items
        wanted = status.upper()
        return [match for match in items if isinstance(match, dict) and match.get("status") == wanted]

    async def get_hub_matches_in_configuration(self, access_token: str, hub_id: str) -> list[Any]:
        return await self.get_hub_matches(access_token, hub_id, status="CONFIGURATION")

    async def get_championship(self, access_token: str, championship_id: str) -> Any:
        return await self._request(
            "Get championship", "GET", f"/championships/{championship_id}", access_token
        )

    async def rehost_championship(self, access_token: str, event_id: str, game_id: str) -> Any:
        return await self._request(
            "Rehost championship",
            "POST",
            f"/championships/{event_id}/rehost",
            access_token,
            json={"game_id": game_id},
        )

    async def cancel_championship(self, access_token: str, event_id: str) -> Any:
        return await self._request(
            "Cancel championship", "POST", f"/championships/{event_id}/cancel", access_token, json={}
        )

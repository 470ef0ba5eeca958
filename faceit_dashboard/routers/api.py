"""Protected API endpoints backed by the FACEIT resource API."""

import logging
from typing import Any, Awaitable, Callable
from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from faceit_dashboard.errors import NetworkError, ProviderRejected, SessionStale
from faceit_dashboard.middleware import require_auth
from faceit_dashboard.models.auth import AuthContext
from faceit_dashboard.routers.auth import get_session_store
from faceit_dashboard.services.resource_api import FaceitResourceClient
from faceit_dashboard.services.sessions import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


class RehostRequest(BaseModel):
    """Body of a rehost request."""
    game_id: str | None = Field(default=None, alias="gameId")
    event_id: str | None = Field(default=None, alias="eventId")

    model_config = {"populate_by_name": True}


class CancelRequest(BaseModel):
    """Body of a cancel request."""
    event_id: str | None = Field(default=None, alias="eventId")

    model_config = {"populate_by_name": True}


def get_resource_client(request: Request) -> FaceitResourceClient:
    """Dependency for the FACEIT resource client."""
    return request.app.state.resource_client


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Bad Request", "message": message},
    )


async def _forward(
    label: str,
    failure_message: str,
    auth: AuthContext,
    store: SessionStore,
    call: Callable[[], Awaitable[Any]],
) -> Any:
    """Run a resource call, translating provider failures into responses."""
    try:
        return await call()
    except SessionStale as e:
        logger.warning(f"{label}: {e.message}; ending session")
        await store.mark_anonymous(auth.session_id)
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Unauthorized", "message": "Session expired, please log in again"},
        )
    except (ProviderRejected, NetworkError) as e:
        logger.error(f"{label}: {e.message}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"error": label, "message": failure_message},
        )


@router.get("/me")
async def get_me(auth: AuthContext = Depends(require_auth)) -> dict:
    """Get the authenticated FACEIT profile."""
    return {
        "id": auth.profile.id,
        "nickname": auth.profile.display_name,
        "profile": auth.profile.raw,
    }


@router.get("/hubs/{hub_id}")
async def get_hub(
    hub_id: str,
    auth: AuthContext = Depends(require_auth),
    store: SessionStore = Depends(get_session_store),
    client: FaceitResourceClient = Depends(get_resource_client),
):
    """Get hub information."""
    return await _forward(
        "Hub Error",
        "Failed to get hub information",
        auth,
        store,
        lambda: client.get_hub(auth.access_token, hub_id),
    )


@router.get("/hubs/{hub_id}/matches")
async def list_hub_matches(
    hub_id: str,
    match_status: str | None = Query(default=None, alias="status"),
    auth: AuthContext = Depends(require_auth),
    store: SessionStore = Depends(get_session_store),
    client: FaceitResourceClient = Depends(get_resource_client),
):
    """List hub matches; ``?status=configuration`` keeps matches still being set up."""
    return await _forward(
        "Hub Matches Error",
        "Failed to get hub matches information",
        auth,
        store,
        lambda: client.get_hub_matches(auth.access_token, hub_id, status=match_status),
    )


@router.get("/hubs/{hub_id}/matches/{match_id}")
async def get_hub_match(
    hub_id: str,
    match_id: str,
    auth: AuthContext = Depends(require_auth),
    store: SessionStore = Depends(get_session_store),
    client: FaceitResourceClient = Depends(get_resource_client),
):
    """Get details of one hub match."""
    return await _forward(
        "Hub Matches Error",
        "Failed to get hub matches information",
        auth,
        store,
        lambda: client.get_hub_match(auth.access_token, hub_id, match_id),
    )


@router.get("/championships/{championship_id}")
async def get_championship(
    championship_id: str,
    auth: AuthContext = Depends(require_auth),
    store: SessionStore = Depends(get_session_store),
    client: FaceitResourceClient = Depends(get_resource_client),
):
    """Get championship information."""
    return await _forward(
        "Championship Error",
        "Failed to get championship information",
        auth,
        store,
        lambda: client.get_championship(auth.access_token, championship_id),
    )


@router.post("/championships/rehost")
async def rehost_championship(
    payload: RehostRequest,
    auth: AuthContext = Depends(require_auth),
    store: SessionStore = Depends(get_session_store),
    client: FaceitResourceClient = Depends(get_resource_client),
):
    """Rehost a championship game."""
    if not payload.game_id or not payload.event_id:
        return _bad_request("Missing gameId or eventId")

    result = await _forward(
        "Rehost Error",
        "Failed to rehost championship",
        auth,
        store,
        lambda: client.rehost_championship(auth.access_token, payload.event_id, payload.game_id),
    )
    if isinstance(result, JSONResponse):
        return result
    return {
        "message": f"Rehosted event {payload.event_id} for game {payload.game_id}",
        "data": result,
    }


@router.post("/championships/cancel")
async def cancel_championship(
    payload: CancelRequest,
    auth: AuthContext = Depends(require_auth),
    store: SessionStore = Depends(get_session_store),
    client: FaceitResourceClient = Depends(get_resource_client),
):
    """Cancel a championship."""
    if not payload.event_id:
        return _bad_request("Missing eventId")

    result = await _forward(
        "Cancel Error",
        "Failed to cancel championship",
        auth,
        store,
        lambda: client.cancel_championship(auth.access_token, payload.event_id),
    )
    if isinstance(result, JSONResponse):
        return result
    return {"message": f"Canceled event {payload.event_id}", "data": result}

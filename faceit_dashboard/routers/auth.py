"""Browser login flow endpoints."""

from urllib.parse import urlencode
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from faceit_dashboard.config import Settings
from faceit_dashboard.cookies import SessionCookie
from faceit_dashboard.middleware import require_auth
from faceit_dashboard.models.auth import AuthContext, SessionState
from faceit_dashboard.services.auth_flow import AuthFlowOrchestrator
from faceit_dashboard.services.sessions import SessionStore

router = APIRouter(tags=["auth"])

# Values of ?error= and ?message= that the landing page will echo back
KNOWN_ERRORS = {"provider_error", "no_code", "invalid_state", "auth_failed", "session_stale"}
KNOWN_MESSAGES = {"logged_out"}


def get_settings_dep(request: Request) -> Settings:
    """Dependency for the app's settings."""
    return request.app.state.settings


def get_auth_flow(request: Request) -> AuthFlowOrchestrator:
    """Dependency for the login orchestrator."""
    return request.app.state.auth_flow


def get_session_store(request: Request) -> SessionStore:
    """Dependency for the session store."""
    return request.app.state.session_store


def get_session_cookie(request: Request) -> SessionCookie:
    """Dependency for the session cookie codec."""
    return request.app.state.session_cookie


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/")
async def landing(
    request: Request,
    error: str | None = Query(default=None),
    message: str | None = Query(default=None),
    store: SessionStore = Depends(get_session_store),
    cookie: SessionCookie = Depends(get_session_cookie),
    settings: Settings = Depends(get_settings_dep),
):
    """Landing view: redirect authenticated users, otherwise describe how to log in."""
    session_id = cookie.read(request)
    session = await store.get(session_id) if session_id else None
    if session is not None and session.state == SessionState.AUTHENTICATED:
        return _redirect("/dashboard")

    response = JSONResponse({
        "app": settings.app_name,
        "authenticated": False,
        "login_url": "/auth",
        "error": error if error in KNOWN_ERRORS else None,
        "message": message if message in KNOWN_MESSAGES else None,
    })
    if session is None:
        cookie.write(response, await store.create_anonymous())
    return response


@router.get("/auth")
async def start_login(
    request: Request,
    auth_flow: AuthFlowOrchestrator = Depends(get_auth_flow),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> RedirectResponse:
    """Start the FACEIT login and redirect to the authorization endpoint."""
    login = await auth_flow.start_login(cookie.read(request))
    response = _redirect(login.url)
    cookie.write(response, login.session_id)
    return response


@router.get("/callback")
async def oauth_callback(
    request: Request,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
    auth_flow: AuthFlowOrchestrator = Depends(get_auth_flow),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> RedirectResponse:
    """FACEIT redirect target completing the login."""
    result = await auth_flow.handle_callback(
        cookie.read(request),
        code=code,
        state=state,
        provider_error=error,
        provider_error_description=error_description,
    )

    if result.authenticated:
        response = _redirect("/dashboard")
    else:
        params = {"error": result.error_code}
        if result.reason:
            params["reason"] = result.reason
        response = _redirect(f"/?{urlencode(params)}")

    if result.session_id:
        cookie.write(response, result.session_id)
    else:
        cookie.clear(response)
    return response


@router.get("/logout")
async def logout(
    request: Request,
    auth_flow: AuthFlowOrchestrator = Depends(get_auth_flow),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> RedirectResponse:
    """Log out and return to the landing view."""
    await auth_flow.logout(cookie.read(request))
    response = _redirect("/?message=logged_out")
    cookie.clear(response)
    return response


@router.get("/dashboard")
async def dashboard(auth: AuthContext = Depends(require_auth)) -> dict:
    """Welcome view for logged-in users."""
    return {
        "message": f"Welcome, {auth.profile.display_name or auth.profile.id}!",
        "profile": {"id": auth.profile.id, "nickname": auth.profile.display_name},
        "commands": [
            {"name": "Get Hub", "method": "GET", "path": "/api/hubs/{hub_id}"},
            {"name": "Get Hub Match", "method": "GET", "path": "/api/hubs/{hub_id}/matches/{match_id}"},
            {"name": "Rehost", "method": "POST", "path": "/api/championships/rehost"},
            {"name": "Cancel", "method": "POST", "path": "/api/championships/cancel"},
        ],
        "logout_url": "/logout",
    }

"""FastAPI application entry point for the FACEIT dashboard."""

import logging
from contextlib import asynccontextmanager
import httpx
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from faceit_dashboard.config import Settings, get_settings
from faceit_dashboard.cookies import SessionCookie
from faceit_dashboard.database import Database
from faceit_dashboard.errors import ConfigurationError, StoreUnavailable
from faceit_dashboard.logging_config import configure_logging
from faceit_dashboard.middleware import AuthGateMiddleware
from faceit_dashboard.routers import auth_router, api_router
from faceit_dashboard.services import (
    AuthFlowOrchestrator,
    AuthorizationUrlBuilder,
    FaceitResourceClient,
    MongoSessionStore,
    ProfileFetcher,
    SessionStore,
    StateTokenGenerator,
    TokenExchangeClient,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events.
    """
    settings: Settings = app.state.settings

    # Startup
    logger.info(f"Starting {settings.app_name}...")
    if isinstance(app.state.session_store, MongoSessionStore):
        await Database.connect(settings.mongodb_url, settings.mongodb_database)
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Redirect URI: {settings.redirect_uri}")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    if app.state.owns_http_client:
        await app.state.http_client.aclose()
    await app.state.session_store.close()
    if isinstance(app.state.session_store, MongoSessionStore):
        await Database.disconnect()
    logger.info("Shutdown complete")


def create_app(
    settings: Settings | None = None,
    store: SessionStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Raises ConfigurationError if a mandatory setting is missing.
    """
    settings = (settings or get_settings()).validate_required()
    configure_logging(settings.debug)

    owns_http_client = http_client is None
    if owns_http_client:
        http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    if store is None:
        Database.configure(settings.mongodb_url, settings.mongodb_database)
        store = MongoSessionStore(ttl_seconds=settings.session_ttl_seconds)

    cookie = SessionCookie(settings)
    auth_flow = AuthFlowOrchestrator(
        store=store,
        url_builder=AuthorizationUrlBuilder(settings),
        token_client=TokenExchangeClient(settings, http_client),
        profile_fetcher=ProfileFetcher(settings, http_client),
        redirect_uri=settings.redirect_uri,
        state_tokens=StateTokenGenerator(),
    )

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="FACEIT login and session gateway for the dashboard",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.http_client = http_client
    app.state.owns_http_client = owns_http_client
    app.state.session_store = store
    app.state.session_cookie = cookie
    app.state.auth_flow = auth_flow
    app.state.resource_client = FaceitResourceClient(settings, http_client)

    app.add_middleware(AuthGateMiddleware, store=store, cookie=cookie)

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error(f"Session store unavailable during {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Service Unavailable", "message": "Session store unavailable"},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error(f"Configuration error during {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal Server Error", "message": "Authentication initialization failed"},
        )

    @app.exception_handler(status.HTTP_404_NOT_FOUND)
    async def not_found_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Not Found", "message": f"No route for {request.method} {request.url.path}"},
        )

    # Include routers
    app.include_router(auth_router)
    app.include_router(api_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        try:
            await store.ping()
            return {"status": "healthy", "session_store": "connected"}
        except StoreUnavailable:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unhealthy", "session_store": "disconnected"},
            )

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "faceit_dashboard.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )

"""API routers for the FACEIT dashboard."""

from faceit_dashboard.routers.auth import router as auth_router
from faceit_dashboard.routers.api import router as api_router

__all__ = [
    "auth_router",
    "api_router",
]

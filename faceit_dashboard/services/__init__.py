"""Services for the FACEIT dashboard."""

from faceit_dashboard.services.state_tokens import StateTokenGenerator
from faceit_dashboard.services.faceit_oauth import (
    AuthorizationUrlBuilder,
    TokenExchangeClient,
    ProfileFetcher,
)
from faceit_dashboard.services.sessions import (
    SessionStore,
    MemorySessionStore,
    MongoSessionStore,
)
from faceit_dashboard.services.auth_flow import AuthFlowOrchestrator
from faceit_dashboard.services.resource_api import FaceitResourceClient

__all__ = [
    "StateTokenGenerator",
    "AuthorizationUrlBuilder",
    "TokenExchangeClient",
    "ProfileFetcher",
    "SessionStore",
    "MemorySessionStore",
    "MongoSessionStore",
    "AuthFlowOrchestrator",
    "FaceitResourceClient",
]

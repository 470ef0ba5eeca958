"""Configuration settings for the FACEIT dashboard."""

from typing import ClassVar, Literal
from pydantic_settings import BaseSettings
from functools import lru_cache

from faceit_dashboard.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # FACEIT OAuth client
    faceit_client_id: str = ""
    faceit_client_secret: str = ""
    redirect_uri: str = ""
    faceit_scope: str = "openid profile email"
    faceit_authorization_url: str = "https://api.faceit.com/auth/v1/oauth/authorize"
    faceit_token_url: str = "https://api.faceit.com/auth/v1/oauth/token"
    faceit_profile_url: str = "https://api.faceit.com/core/v1/users/me"
    faceit_api_base_url: str = "https://api.faceit.com"
    http_timeout_seconds: float = 10.0

    # Session settings
    session_secret: str = ""
    session_cookie_name: str = "faceit.sid"
    session_ttl_seconds: int = 60 * 60 * 24

    # MongoDB settings (session store)
    mongodb_url: str = ""
    mongodb_database: str = "faceit_dashboard"

    # Application settings
    app_name: str = "FACEIT Dashboard"
    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = (
        "faceit_client_id",
        "faceit_client_secret",
        "redirect_uri",
        "session_secret",
        "mongodb_url",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def missing_fields(self) -> list[str]:
        """Names of mandatory settings that are empty."""
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name).strip()]

    def validate_required(self) -> "Settings":
        """Fail fast when a mandatory setting is absent."""
        missing = self.missing_fields()
        if missing:
            raise ConfigurationError(
                "Missing required settings: " + ", ".join(name.upper() for name in missing)
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

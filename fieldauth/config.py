"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ==========================================================================
    # Schema bootstrap
    # ==========================================================================

    # YAML file with `attributes:` and `roles:` declarations (optional)
    declarations_file: str = ""

    # ==========================================================================
    # Authentication
    # ==========================================================================

    # Which provider drives login: "local" or "redirect"
    auth_provider: str = "local"

    # Let the authority decide for anonymous users without forcing a login
    allow_anonymous: bool = False

    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_session_expire_minutes: int = 60

    # Redirect (OAuth 2.0 / OIDC) provider
    oauth_provider_name: str = "google"
    oauth_client_id: str = ""
    oauth_client_secret: str = ""
    oauth_authorize_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    oauth_token_url: str = "https://oauth2.googleapis.com/token"
    oauth_userinfo_url: str = "https://openidconnect.googleapis.com/v1/userinfo"
    oauth_redirect_uri: str = "http://localhost:8000/auth/callback"
    oauth_scopes: str = "openid email profile"
    oauth_timeout_seconds: float = 10.0

    # Where pending requests wait out a redirect: "file" or "memory"
    resumption_store: str = "file"
    resumption_dir: str = "./data/resumption"

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def oauth_scope_list(self) -> list[str]:
        return [s for s in self.oauth_scopes.split() if s]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the configured log level to the fieldauth loggers."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("fieldauth").setLevel(settings.log_level.upper())

"""
FastAPI application for fieldauth.

Hosts one authorization machine for the application and exposes the
auth routes shells talk to.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fieldauth.auth.machine import AuthorizationMachine
from fieldauth.auth.policies import Authority, RoleAuthority
from fieldauth.auth.routes import router as auth_router
from fieldauth.config import Settings, configure_logging, get_settings
from fieldauth.config_loader import DeclarationsLoader, default_declarations_path
from fieldauth.core.events import AUTHENTICATION_COMPLETED, EventBus
from fieldauth.core.registry import AttributeRegistry
from fieldauth.integrations.sentry import init_sentry, set_user
from fieldauth.providers import create_provider
from fieldauth.providers.base import AuthProvider
from fieldauth.providers.local import LocalProvider
from fieldauth.storage import create_resumption_store
from fieldauth.storage.base import ResumptionStore

logger = logging.getLogger(__name__)


def _declarations_path(settings: Settings) -> Path | None:
    if settings.declarations_file:
        return Path(settings.declarations_file)
    path = default_declarations_path()
    return path if path.exists() else None


def create_app(
    settings: Settings | None = None,
    *,
    provider: AuthProvider | None = None,
    authority: Authority | None = None,
    registry: AttributeRegistry | None = None,
    resumption_store: ResumptionStore | None = None,
) -> FastAPI:
    """
    Build the API.

    Everything not passed in is built from settings at startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize and cleanup app resources."""
        configure_logging(settings)
        if init_sentry(settings):
            logger.info("Sentry error tracking enabled")

        app_registry = registry if registry is not None else AttributeRegistry()
        loader = DeclarationsLoader(app_registry)
        path = _declarations_path(settings)
        if path is not None:
            loader.load_file(path)

        app_provider = provider or create_provider(settings)
        if isinstance(app_provider, LocalProvider) and not settings.is_production:
            for user in loader.users:
                app_provider.users.add_user(
                    user["username"],
                    user["password"],
                    roles=user.get("roles", ()),
                    grants=user.get("grants", ()),
                )

        app_authority = authority or RoleAuthority(loader.roles, app_registry)

        bus = EventBus()
        machine = AuthorizationMachine(
            app_provider,
            app_authority,
            registry=app_registry,
            resumption_store=resumption_store or create_resumption_store(settings),
        )
        machine.wire(bus)

        async def track_user(event):
            set_user(event.payload.get("user_id"), event.payload.get("provider_id"))
            return []

        bus.subscribe(AUTHENTICATION_COMPLETED, track_user)

        app.state.settings = settings
        app.state.registry = app_registry
        app.state.provider = app_provider
        app.state.authority = app_authority
        app.state.bus = bus
        app.state.machine = machine

        logger.info(
            f"fieldauth API starting in {settings.environment} mode "
            f"(provider={app_provider.provider_id}, attributes={len(app_registry)})"
        )

        yield

        logger.info("fieldauth API shutting down")

    app = FastAPI(
        title="fieldauth API",
        description="Attribute-level authorization with pluggable authentication",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app

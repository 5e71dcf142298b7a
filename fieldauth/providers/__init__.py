"""
Auth providers - HOW a user proves who they are.

The active provider is picked by configuration (`AUTH_PROVIDER`).
"""

from __future__ import annotations

from fieldauth.config import Settings, get_settings
from fieldauth.providers.base import (
    AuthError,
    AuthProvider,
    LoginContext,
    LoginResult,
    UIEffect,
)
from fieldauth.providers.local import LocalProvider, LocalUserStore
from fieldauth.providers.redirect import RedirectProvider
from fieldauth.storage.base import SessionStore

PROVIDERS: dict[str, type[AuthProvider]] = {
    LocalProvider.provider_id: LocalProvider,
    RedirectProvider.provider_id: RedirectProvider,
}


def create_provider(
    settings: Settings | None = None,
    session_store: SessionStore | None = None,
    **options,
) -> AuthProvider:
    """Build the provider named by `settings.auth_provider`."""
    settings = settings or get_settings()
    try:
        provider_cls = PROVIDERS[settings.auth_provider]
    except KeyError:
        raise AuthError(
            AuthError.NOT_CONFIGURED,
            f"Unknown auth provider '{settings.auth_provider}'. Available: {sorted(PROVIDERS)}",
        )
    return provider_cls(settings=settings, session_store=session_store, **options)


__all__ = [
    "AuthError",
    "AuthProvider",
    "LoginContext",
    "LoginResult",
    "UIEffect",
    "LocalProvider",
    "LocalUserStore",
    "RedirectProvider",
    "PROVIDERS",
    "create_provider",
]

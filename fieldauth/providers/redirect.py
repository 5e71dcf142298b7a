# =============================================================================
# Redirect Provider (OAuth 2.0 / OpenID Connect authorization-code flow)
# =============================================================================
#
# Setup (Google, any OIDC provider works the same way):
#   1. Go to https://console.cloud.google.com/apis/credentials
#   2. Create OAuth 2.0 Client ID (Web application)
#   3. Add authorized redirect URI: https://yourdomain.com/auth/callback
#   4. Set env vars:
#      - AUTH_PROVIDER=redirect
#      - OAUTH_CLIENT_ID=...
#      - OAUTH_CLIENT_SECRET=...
#      - OAUTH_REDIRECT_URI=https://yourdomain.com/auth/callback
#
# The browser leaves the application on login. The `state` parameter is
# the resumption token the machine persisted before leaving; the callback
# must bring the same value back.
#
# =============================================================================

import logging
import secrets
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from fieldauth.auth.capabilities import AuthLevel
from fieldauth.auth.context import AuthContext
from fieldauth.providers.base import (
    AuthError,
    AuthProvider,
    LoginContext,
    LoginResult,
    UIEffect,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Models
# =============================================================================

class OAuthUserInfo(BaseModel):
    """User info retrieved from the identity provider."""
    provider: str
    provider_user_id: str
    email: str | None = None
    name: str | None = None
    email_verified: bool = False
    roles: list[str] = []


# =============================================================================
# Provider
# =============================================================================

class RedirectProvider(AuthProvider):
    """Login by redirecting to an external identity provider."""

    provider_id = "redirect"
    redirects = True

    def __init__(
        self,
        default_roles: Iterable[str] = (),
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.default_roles = list(default_roles)
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        """Check if the identity provider is configured."""
        return bool(self.settings.oauth_client_id and self.settings.oauth_client_secret)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=self.settings.oauth_timeout_seconds,
        )

    def get_authorize_url(self, state: str) -> str:
        """URL to send the browser to for sign-in."""
        params = {
            "client_id": self.settings.oauth_client_id,
            "redirect_uri": self.settings.oauth_redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.settings.oauth_scope_list),
            "state": state,
        }
        return f"{self.settings.oauth_authorize_url}?{urlencode(params)}"

    def begin_login(self, context: LoginContext) -> UIEffect:
        if not self.is_configured:
            raise AuthError(AuthError.NOT_CONFIGURED, "OAuth client is not configured")

        token = context.resumption_token or secrets.token_urlsafe(24)
        return UIEffect(
            provider_id=self.provider_id,
            kind="redirect",
            url=self.get_authorize_url(token),
            resumption_token=token,
        )

    async def complete_login(
        self,
        callback_data: Mapping[str, Any],
        resumption_token: str | None = None,
    ) -> LoginResult:
        if resumption_token is None:
            return LoginResult.failure(
                AuthError(AuthError.NO_PENDING_LOGIN, "No login is waiting for this callback")
            )

        state = callback_data.get("state")
        if not state or not secrets.compare_digest(str(state), resumption_token):
            logger.warning("OAuth callback state does not match the pending login")
            return LoginResult.failure(
                AuthError(AuthError.CALLBACK_MISMATCH, "Invalid state parameter")
            )

        if callback_data.get("error"):
            return LoginResult.failure(
                AuthError(AuthError.PROVIDER_ERROR, str(callback_data["error"]))
            )

        code = callback_data.get("code")
        if not code:
            return LoginResult.failure(
                AuthError(AuthError.PROVIDER_ERROR, "Callback carried no authorization code")
            )

        try:
            tokens = await self.exchange_code(str(code))
            user = await self.get_user_info(tokens["access_token"])
        except AuthError as e:
            return LoginResult.failure(e)
        except httpx.HTTPError as e:
            logger.error(f"Identity provider unreachable: {e}")
            return LoginResult.failure(AuthError(AuthError.PROVIDER_UNREACHABLE, str(e)))

        context = AuthContext(
            user_id=f"{user.provider}:{user.provider_user_id}",
            email=user.email,
            name=user.name,
            provider_id=self.provider_id,
            level=AuthLevel.FULL,
            roles=frozenset(user.roles or self.default_roles),
        )
        return LoginResult.success(self.establish_session(context))

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """
        Exchange authorization code for tokens.

        Returns:
            Token response with access_token (and id_token/refresh_token when issued)
        """
        async with self._client() as client:
            response = await client.post(
                self.settings.oauth_token_url,
                data={
                    "client_id": self.settings.oauth_client_id,
                    "client_secret": self.settings.oauth_client_secret,
                    "code": code,
                    "redirect_uri": self.settings.oauth_redirect_uri,
                    "grant_type": "authorization_code",
                },
            )

        if response.status_code != 200:
            logger.error(f"Token exchange failed: {response.text}")
            raise AuthError(
                AuthError.PROVIDER_ERROR, f"Token exchange failed: {response.status_code}"
            )

        data = response.json()
        if "access_token" not in data:
            raise AuthError(AuthError.PROVIDER_ERROR, "Token response has no access_token")
        return data

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        """Get user info from the identity provider."""
        async with self._client() as client:
            response = await client.get(
                self.settings.oauth_userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )

        if response.status_code != 200:
            logger.error(f"Userinfo failed: {response.text}")
            raise AuthError(
                AuthError.PROVIDER_ERROR, f"Failed to get user info: {response.status_code}"
            )

        data = response.json()
        email = data.get("email")
        return OAuthUserInfo(
            provider=self.settings.oauth_provider_name,
            provider_user_id=str(data.get("sub") or data.get("id")),
            email=email,
            name=data.get("name") or (email.split("@")[0] if email else None),
            email_verified=data.get("email_verified", data.get("verified_email", False)),
            roles=list(data.get("roles", [])),
        )


"""
Base class for all auth providers.

A provider knows HOW one authentication mechanism works (a credentials
form, an OAuth redirect, ...). The authorization machine only ever
talks to this contract and never sees provider-specific transport.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

from fieldauth.auth.capabilities import AuthLevel
from fieldauth.auth.context import AuthContext
from fieldauth.auth.tokens import TokenError, context_from_token, create_session_token
from fieldauth.config import Settings, get_settings
from fieldauth.storage.base import SessionStore
from fieldauth.storage.local import InMemorySessionStore

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================


class AuthError(Exception):
    """A provider-reported authentication failure."""

    BAD_CREDENTIALS = "bad_credentials"
    PROVIDER_UNREACHABLE = "provider_unreachable"
    PROVIDER_ERROR = "provider_error"
    CALLBACK_MISMATCH = "callback_mismatch"
    NO_PENDING_LOGIN = "no_pending_login"
    NOT_CONFIGURED = "not_configured"
    PERSISTENCE_ERROR = "persistence_error"

    def __init__(self, code: str, message: str = ""):
        self.code = code
        self.message = message or code.replace("_", " ")
        super().__init__(self.message)


# =============================================================================
# Models
# =============================================================================


class UIEffect(BaseModel):
    """What the shell must do to let the user log in."""

    provider_id: str
    kind: Literal["form", "redirect", "none"]
    url: str | None = None  # Where to send the browser (redirect)
    fields: list[str] = Field(default_factory=list)  # What to ask for (form)
    resumption_token: str | None = None

    @property
    def redirects(self) -> bool:
        return self.kind == "redirect"


@dataclass
class LoginContext:
    """Why a login is being started."""

    requester_ids: list[str] = field(default_factory=list)
    capabilities: set[str] = field(default_factory=set)
    resumption_token: str | None = None


@dataclass
class LoginResult:
    """Outcome of `complete_login`: an identity or an error, never both."""

    context: AuthContext | None = None
    error: AuthError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.context is not None

    @classmethod
    def success(cls, context: AuthContext) -> LoginResult:
        return cls(context=context)

    @classmethod
    def failure(cls, error: AuthError) -> LoginResult:
        return cls(error=error)


# =============================================================================
# Provider
# =============================================================================


class AuthProvider(ABC):
    """
    Base class for all auth providers.

    Providers keep the logged-in identity as a signed session token in a
    SessionStore, so checking the session is a local, non-blocking read.

    Example:
        class PinProvider(AuthProvider):
            provider_id = "pin"

            def begin_login(self, context):
                return UIEffect(provider_id=self.provider_id, kind="form", fields=["pin"])

            async def complete_login(self, callback_data, resumption_token=None):
                if callback_data.get("pin") != "1234":
                    return LoginResult.failure(AuthError(AuthError.BAD_CREDENTIALS))
                return LoginResult.success(self.establish_session(AuthContext(...)))
    """

    provider_id: str = "base"

    # Does login leave the application (full page redirect)?
    redirects: bool = False

    def __init__(
        self,
        session_store: SessionStore | None = None,
        settings: Settings | None = None,
        allows_anonymous: bool | None = None,
    ):
        self.settings = settings or get_settings()
        self.session_store = session_store or InMemorySessionStore()
        self.allows_anonymous = (
            self.settings.allow_anonymous if allows_anonymous is None else allows_anonymous
        )

    @property
    def session_key(self) -> str:
        return f"fieldauth.session.{self.provider_id}"

    # =========================================================================
    # Session
    # =========================================================================

    def check_session(self) -> AuthLevel:
        """Current authentication level, from the stored session token."""
        return self.current_context().level

    def current_context(self) -> AuthContext:
        """Identity of the current session (anonymous if none or expired)."""
        token = self.session_store.get(self.session_key)
        if not token:
            return AuthContext.anonymous(self.provider_id)
        try:
            return context_from_token(token, self.settings)
        except TokenError as e:
            logger.info(f"Discarding session for {self.provider_id}: {e}")
            self.session_store.delete(self.session_key)
            return AuthContext.anonymous(self.provider_id)

    def establish_session(self, context: AuthContext) -> AuthContext:
        """Store a session token for a freshly authenticated context."""
        self.session_store.set(self.session_key, create_session_token(context, self.settings))
        return context

    # =========================================================================
    # Login
    # =========================================================================

    @abstractmethod
    def begin_login(self, context: LoginContext) -> UIEffect:
        """
        Start gathering credentials.

        Returns the UI effect the shell must perform (show a form,
        redirect the browser, ...).
        """
        pass

    @abstractmethod
    async def complete_login(
        self,
        callback_data: Mapping[str, Any],
        resumption_token: str | None = None,
    ) -> LoginResult:
        """
        Consume the result of a login attempt.

        Provider failures are returned as LoginResult.failure, not raised.
        """
        pass

    async def logout(self) -> None:
        """Clear local and provider-side session markers."""
        self.session_store.delete(self.session_key)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.provider_id})>"

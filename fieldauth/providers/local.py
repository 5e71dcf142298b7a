"""
Local credentials provider.

Login happens entirely inside the application: the shell shows a
username/password form and submits it back. Completion is immediate,
no redirect, nothing to persist.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from fieldauth.auth.capabilities import AuthLevel
from fieldauth.auth.context import AuthContext
from fieldauth.auth.tokens import hash_password, verify_password
from fieldauth.providers.base import (
    AuthError,
    AuthProvider,
    LoginContext,
    LoginResult,
    UIEffect,
)

logger = logging.getLogger(__name__)


class LocalUser(BaseModel):
    """A user in the local credential store."""
    user_id: str
    username: str
    password_hash: str
    email: str | None = None
    name: str | None = None
    roles: list[str] = Field(default_factory=list)
    grants: list[str] = Field(default_factory=list)


class LocalUserStore:
    """In-memory credential store (replace with a database in production)."""

    def __init__(self):
        self._users: dict[str, LocalUser] = {}  # username -> user

    def add_user(
        self,
        username: str,
        password: str,
        *,
        user_id: str | None = None,
        email: str | None = None,
        name: str | None = None,
        roles: Iterable[str] = (),
        grants: Iterable[str] = (),
    ) -> LocalUser:
        """Create or replace a user."""
        user = LocalUser(
            user_id=user_id or f"user_{username}",
            username=username.lower(),
            password_hash=hash_password(password),
            email=email,
            name=name or username,
            roles=list(roles),
            grants=list(grants),
        )
        self._users[user.username] = user
        return user

    def get(self, username: str) -> LocalUser | None:
        return self._users.get(username.lower())

    def authenticate(self, username: str, password: str) -> LocalUser | None:
        """Authenticate user by username and password."""
        user = self.get(username)
        if not user:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user


class LocalProvider(AuthProvider):
    """Username/password login inside the application."""

    provider_id = "local"
    redirects = False

    def __init__(self, users: LocalUserStore | None = None, **kwargs):
        super().__init__(**kwargs)
        self.users = users or LocalUserStore()

    def begin_login(self, context: LoginContext) -> UIEffect:
        return UIEffect(
            provider_id=self.provider_id,
            kind="form",
            fields=["username", "password"],
        )

    async def complete_login(
        self,
        callback_data: Mapping[str, Any],
        resumption_token: str | None = None,
    ) -> LoginResult:
        username = str(callback_data.get("username") or "")
        password = str(callback_data.get("password") or "")

        user = self.users.authenticate(username, password)
        if user is None:
            logger.info(f"Local login failed for '{username}'")
            return LoginResult.failure(
                AuthError(AuthError.BAD_CREDENTIALS, "Invalid username or password")
            )

        context = AuthContext(
            user_id=user.user_id,
            email=user.email,
            name=user.name,
            provider_id=self.provider_id,
            level=AuthLevel.FULL,
            roles=frozenset(user.roles),
            grants=frozenset(user.grants),
        )
        return LoginResult.success(self.establish_session(context))

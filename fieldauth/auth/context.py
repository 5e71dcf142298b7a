"""
Auth context - the "who can do what" for the current session.

This is the lightweight identity object the authorization machine
hands to the authority. It contains everything needed to make
authorization decisions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fieldauth.auth.capabilities import (
    AuthLevel,
    capability_matches,
)


@dataclass(frozen=True)
class AuthContext:
    """
    Authorization context for a session.

    Usage:
        if ctx.can("account/ssn"):
            # show it
    """

    # Who
    user_id: str | None = None
    email: str | None = None
    name: str | None = None

    # How they got here
    provider_id: str | None = None
    level: AuthLevel = AuthLevel.NONE

    # What they hold: role names, plus capability patterns granted directly
    roles: frozenset[str] = field(default_factory=frozenset)
    grants: frozenset[str] = field(default_factory=frozenset)

    # Extra context
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_authenticated(self) -> bool:
        """Is there a logged-in user?"""
        return self.user_id is not None and self.level == AuthLevel.FULL

    @property
    def is_anonymous(self) -> bool:
        """Is this an anonymous session?"""
        return self.user_id is None

    def can(self, capability: str) -> bool:
        """Check if a directly granted pattern covers a capability."""
        return any(capability_matches(p, capability) for p in self.grants)

    def can_any(self, *capabilities: str) -> bool:
        """Check if user has ANY of the capabilities."""
        return any(self.can(c) for c in capabilities)

    def can_all(self, *capabilities: str) -> bool:
        """Check if user has ALL of the capabilities."""
        return all(self.can(c) for c in capabilities)

    def to_claims(self) -> dict[str, Any]:
        """Claims carried in a session token."""
        return {
            "sub": self.user_id,
            "email": self.email,
            "name": self.name,
            "provider": self.provider_id,
            "level": self.level.value,
            "roles": sorted(self.roles),
            "grants": sorted(self.grants),
        }

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> AuthContext:
        """Rebuild a context from session token claims."""
        return cls(
            user_id=claims.get("sub"),
            email=claims.get("email"),
            name=claims.get("name"),
            provider_id=claims.get("provider"),
            level=AuthLevel(claims.get("level", AuthLevel.FULL.value)),
            roles=frozenset(claims.get("roles", ())),
            grants=frozenset(claims.get("grants", ())),
        )

    @classmethod
    def anonymous(cls, provider_id: str | None = None) -> AuthContext:
        """Create an anonymous context (no user)."""
        return cls(provider_id=provider_id)

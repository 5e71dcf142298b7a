"""
Authorities - the pluggable "may this identity do that" decision.

The authorization machine never decides anything itself: it asks an
Authority whether a context satisfies a capability set. Any authority
must be deterministic for a given (context, capability set) and must
never grant partially: one missing capability denies the request.

HTTP routes get the same decision through `require()`:

    @router.get("/accounts/{account_id}/ssn")
    async def read_ssn(ctx: AuthContext = Depends(require("account/ssn"))):
        ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Callable

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fieldauth.auth.capabilities import AuthLevel, Outcome, has_capability
from fieldauth.auth.context import AuthContext
from fieldauth.auth.tokens import TokenError, context_from_token
from fieldauth.core.registry import AttributeRegistry


# =============================================================================
# Authority - the core authorization type
# =============================================================================


class Authority(ABC):
    """Decides whether a context satisfies a capability set."""

    @abstractmethod
    def allows(self, context: AuthContext, capability: str) -> bool:
        """Does the context satisfy one capability?"""
        pass

    def missing(self, context: AuthContext, capabilities: Iterable[str]) -> list[str]:
        """Capabilities the context does not satisfy, sorted."""
        return sorted(c for c in set(capabilities) if not self.allows(context, c))

    def decide(self, context: AuthContext, capabilities: Iterable[str]) -> Outcome:
        """Granted only if every capability is satisfied."""
        if self.missing(context, capabilities):
            return Outcome.DENIED
        return Outcome.GRANTED


class RoleAuthority(Authority):
    """
    Grants capabilities through roles.

    A capability is satisfied when:
    - its attribute is marked public in the registry, or
    - the context holds a direct grant covering it, or
    - one of the context's roles grants a pattern covering it.

    Anonymous contexts only get public attributes unless
    `require_auth` is off.
    """

    def __init__(
        self,
        role_capabilities: Mapping[str, Iterable[str]] | None = None,
        registry: AttributeRegistry | None = None,
        require_auth: bool = True,
    ):
        self.role_capabilities = {
            role: frozenset(caps) for role, caps in (role_capabilities or {}).items()
        }
        self.registry = registry
        self.require_auth = require_auth

    def allows(self, context: AuthContext, capability: str) -> bool:
        if self.registry is not None:
            attr = self.registry.lookup(capability)
            if attr is not None and attr.is_public:
                return True

        if self.require_auth and not context.is_authenticated:
            return False

        if context.can(capability):
            return True

        return has_capability(capability, context.roles, self.role_capabilities)


class Policy(Authority):
    """
    An authority built from a plain per-capability predicate.

    Usage:
        Policy(lambda ctx, cap: cap.startswith("public/") or ctx.is_authenticated)
    """

    def __init__(self, check: Callable[[AuthContext, str], bool]):
        self.check = check

    def allows(self, context: AuthContext, capability: str) -> bool:
        return bool(self.check(context, capability))


# =============================================================================
# HTTP: bearer token -> AuthContext
# =============================================================================


# Optional bearer (doesn't fail if no token)
optional_bearer = HTTPBearer(auto_error=False)


async def get_context_from_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
) -> AuthContext:
    """Resolve the caller's context from a session token, or anonymous."""
    if not credentials:
        return AuthContext.anonymous()

    settings = getattr(request.app.state, "settings", None)
    try:
        return context_from_token(credentials.credentials, settings)
    except TokenError:
        return AuthContext.anonymous()


def require(*capabilities: str, min_level: AuthLevel = AuthLevel.FULL) -> Callable:
    """
    Require capabilities to access a route.

    The app's authority (`app.state.authority`) decides; a denial is a 403,
    an insufficient session a 401.

    Returns:
        FastAPI Depends that resolves to AuthContext
    """

    async def dependency(
        request: Request,
        ctx: AuthContext = Depends(get_context_from_token),
    ) -> AuthContext:
        if not ctx.level.satisfies(min_level):
            raise HTTPException(status_code=401, detail="Authentication required")

        authority: Authority = request.app.state.authority
        missing = authority.missing(ctx, capabilities)
        if missing:
            raise HTTPException(status_code=403, detail=f"Missing permissions: {missing}")

        return ctx

    return dependency

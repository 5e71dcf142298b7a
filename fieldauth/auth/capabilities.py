"""
Authentication levels, decision outcomes and role capabilities.

This defines WHAT an identity may do, not HOW we check it.
The actual checking happens in policies.py.

Capabilities are qualified keys naming a field ("account/ssn") or a
mutation ("account/close"). Roles grant capability patterns, which may
use shell-style wildcards ("account/*").
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable, Mapping
from enum import Enum


class AuthLevel(str, Enum):
    """How strongly the current session is authenticated."""

    NONE = "none"        # Nobody is logged in
    PARTIAL = "partial"  # Remembered identity, not enough to authorize
    FULL = "full"        # Logged in

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def satisfies(self, required: AuthLevel) -> bool:
        """Is this level at least `required`?"""
        return self.rank >= required.rank


_LEVEL_ORDER = [AuthLevel.NONE, AuthLevel.PARTIAL, AuthLevel.FULL]


class Outcome(str, Enum):
    """Result of evaluating one authorization request."""

    GRANTED = "granted"
    DENIED = "denied"


# Pattern that matches every capability
ALL_CAPABILITIES = "*"


# =============================================================================
# Capability Mappings
# =============================================================================


def capability_matches(pattern: str, capability: str) -> bool:
    """Does a granted pattern cover a requested capability?"""
    if pattern == capability:
        return True
    return fnmatch.fnmatchcase(capability, pattern)


def get_capabilities(
    roles: Iterable[str],
    role_capabilities: Mapping[str, Iterable[str]],
) -> set[str]:
    """
    Get all capability patterns for a set of roles.

    Unknown roles grant nothing.
    """
    caps: set[str] = set()
    for role in roles:
        caps.update(role_capabilities.get(role, ()))
    return caps


def has_capability(
    capability: str,
    roles: Iterable[str],
    role_capabilities: Mapping[str, Iterable[str]],
) -> bool:
    """Check if a set of roles grants a specific capability."""
    return any(
        capability_matches(pattern, capability)
        for pattern in get_capabilities(roles, role_capabilities)
    )

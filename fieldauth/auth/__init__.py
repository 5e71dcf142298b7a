"""
Authorization system - who may read or write which field.

Design principles:
1. Requesters ask by capability set; they never see the provider
2. A pluggable authority decides; no partial grants
3. Authentication survives a full-page redirect
4. Decisions always echo the event the requester paused on

The machine itself lives in fieldauth.auth.machine and the requester
helper in fieldauth.auth.requester.
"""

from fieldauth.auth.context import AuthContext
from fieldauth.auth.capabilities import (
    ALL_CAPABILITIES,
    AuthLevel,
    Outcome,
    capability_matches,
    get_capabilities,
    has_capability,
)
from fieldauth.auth.policies import (
    Authority,
    Policy,
    RoleAuthority,
    require,
)
from fieldauth.auth.protocol import (
    AuthorizationDecision,
    AuthorizationRequest,
    authorization_requested,
)
from fieldauth.auth.tokens import (
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
    create_session_token,
    decode_session_token,
    hash_password,
    verify_password,
)

__all__ = [
    # Context
    "AuthContext",
    # Capabilities
    "ALL_CAPABILITIES",
    "AuthLevel",
    "Outcome",
    "capability_matches",
    "get_capabilities",
    "has_capability",
    # Authorities
    "Authority",
    "Policy",
    "RoleAuthority",
    "require",
    # Protocol
    "AuthorizationDecision",
    "AuthorizationRequest",
    "authorization_requested",
    # Tokens
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
    "create_session_token",
    "decode_session_token",
    "hash_password",
    "verify_password",
]

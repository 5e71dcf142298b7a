"""
Tests for capabilities, contexts, session tokens and authorities.

Core principle: all or nothing. One missing capability denies.
"""

from datetime import timedelta

import jwt
import pytest

from fieldauth.auth.capabilities import (
    AuthLevel,
    Outcome,
    capability_matches,
    get_capabilities,
    has_capability,
)
from fieldauth.auth.context import AuthContext
from fieldauth.auth.policies import Policy, RoleAuthority
from fieldauth.auth.tokens import (
    TokenExpiredError,
    TokenInvalidError,
    context_from_token,
    create_session_token,
    decode_session_token,
    hash_password,
    verify_password,
)
from fieldauth.core.utils import utc_now


ROLES = {
    "clerk": ["account/email", "address/*"],
    "auditor": ["account/*"],
}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clerk():
    return AuthContext(
        user_id="user_alice",
        provider_id="local",
        level=AuthLevel.FULL,
        roles=frozenset({"clerk"}),
    )


@pytest.fixture
def authority(registry):
    return RoleAuthority(ROLES, registry)


# =============================================================================
# Capability Tests
# =============================================================================


class TestCapabilities:
    def test_levels(self):
        assert AuthLevel.FULL.satisfies(AuthLevel.PARTIAL)
        assert not AuthLevel.NONE.satisfies(AuthLevel.FULL)

    def test_patterns(self):
        assert capability_matches("account/*", "account/ssn")
        assert capability_matches("*", "report/export")
        assert not capability_matches("account/*", "address/city")

    def test_role_lookup(self):
        assert get_capabilities(["clerk", "ghost"], ROLES) == {"account/email", "address/*"}
        assert has_capability("address/city", ["clerk"], ROLES)
        assert not has_capability("account/ssn", ["clerk"], ROLES)


class TestAuthContext:
    def test_anonymous(self):
        ctx = AuthContext.anonymous("local")

        assert ctx.is_anonymous
        assert not ctx.is_authenticated
        assert ctx.level == AuthLevel.NONE

    def test_direct_grants(self):
        ctx = AuthContext(user_id="u", level=AuthLevel.FULL, grants=frozenset({"report/*"}))

        assert ctx.can("report/export")
        assert ctx.can_any("account/ssn", "report/view")
        assert not ctx.can_all("account/ssn", "report/view")

    def test_claims_round_trip(self, clerk):
        assert AuthContext.from_claims(clerk.to_claims()) == clerk


# =============================================================================
# Token Tests
# =============================================================================


class TestTokens:
    def test_password_hashing(self):
        hashed = hash_password("hunter2")

        assert verify_password("hunter2", hashed)
        assert not verify_password("hunter3", hashed)
        assert not verify_password("hunter2", "garbage")

    def test_session_token(self, clerk, settings):
        token = create_session_token(clerk, settings)

        assert decode_session_token(token, settings).sub == "user_alice"
        assert context_from_token(token, settings) == clerk

    def test_wrong_secret(self, clerk, settings):
        token = create_session_token(clerk, settings)
        other = settings.model_copy(update={"jwt_secret_key": "other"})

        with pytest.raises(TokenInvalidError):
            decode_session_token(token, other)

    def test_expired(self, settings):
        token = jwt.encode(
            {"sub": "u", "exp": utc_now() - timedelta(minutes=1), "iat": utc_now()},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(TokenExpiredError):
            decode_session_token(token, settings)


# =============================================================================
# Authority Tests
# =============================================================================


class TestRoleAuthority:
    def test_role_grants(self, authority, clerk):
        assert authority.decide(clerk, ["account/email", "address/city"]) == Outcome.GRANTED

    def test_all_or_nothing(self, authority, clerk):
        assert authority.decide(clerk, ["account/email", "account/ssn"]) == Outcome.DENIED
        assert authority.missing(clerk, ["account/email", "account/ssn"]) == ["account/ssn"]

    def test_public_attributes_need_no_login(self, authority):
        anon = AuthContext.anonymous()

        assert authority.decide(anon, ["account/name", "account/id"]) == Outcome.GRANTED
        assert authority.decide(anon, ["account/email"]) == Outcome.DENIED

    def test_empty_set_is_granted(self, authority):
        assert authority.decide(AuthContext.anonymous(), []) == Outcome.GRANTED

    def test_direct_grant(self, authority):
        ctx = AuthContext(user_id="u", level=AuthLevel.FULL, grants=frozenset({"account/ssn"}))

        assert authority.decide(ctx, ["account/ssn"]) == Outcome.GRANTED

    def test_unregistered_capability_is_a_mutation(self, authority, clerk):
        auditor = AuthContext(user_id="b", level=AuthLevel.FULL, roles=frozenset({"auditor"}))

        assert authority.decide(auditor, ["account/close"]) == Outcome.GRANTED
        assert authority.decide(clerk, ["account/close"]) == Outcome.DENIED

    def test_deterministic(self, authority, clerk):
        caps = ["account/email", "account/ssn", "address/city"]

        assert {authority.decide(clerk, caps) for _ in range(10)} == {Outcome.DENIED}

    def test_partial_session_is_not_enough(self, authority):
        partial = AuthContext(user_id="u", level=AuthLevel.PARTIAL, roles=frozenset({"auditor"}))

        assert authority.decide(partial, ["account/ssn"]) == Outcome.DENIED


class TestPolicy:
    def test_predicate(self):
        policy = Policy(lambda ctx, cap: cap.startswith("report/"))

        assert policy.decide(AuthContext.anonymous(), ["report/view"]) == Outcome.GRANTED
        assert policy.decide(AuthContext.anonymous(), ["report/view", "x/y"]) == Outcome.DENIED

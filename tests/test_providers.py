"""
Tests for the auth providers.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from fieldauth.auth.capabilities import AuthLevel
from fieldauth.auth.context import AuthContext
from fieldauth.providers import AuthError, LocalProvider, RedirectProvider, create_provider
from fieldauth.providers.base import LoginContext
from fieldauth.storage.local import InMemorySessionStore


# =============================================================================
# Fixtures
# =============================================================================


def identity_provider(userinfo=None, token_status=200):
    """A mock OAuth server."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/token":
            if token_status != 200:
                return httpx.Response(token_status, text="nope")
            return httpx.Response(200, json={"access_token": "at-1", "token_type": "bearer"})
        if request.url.path == "/userinfo":
            assert request.headers["authorization"] == "Bearer at-1"
            return httpx.Response(
                200,
                json=userinfo or {"sub": "42", "email": "ada@example.com", "name": "Ada"},
            )
        return httpx.Response(404)

    return httpx.MockTransport(handler), calls


@pytest.fixture
def local(settings):
    provider = LocalProvider(settings=settings)
    provider.users.add_user("alice", "wonderland", roles=["clerk"], email="alice@example.com")
    return provider


# =============================================================================
# Local Provider Tests
# =============================================================================


class TestLocalProvider:
    def test_no_session_initially(self, local):
        assert local.check_session() == AuthLevel.NONE
        assert local.current_context().is_anonymous

    def test_begin_login_is_a_form(self, local):
        effect = local.begin_login(LoginContext(requester_ids=["ui/report-1"]))

        assert effect.kind == "form"
        assert effect.fields == ["username", "password"]
        assert not effect.redirects

    @pytest.mark.asyncio
    async def test_login_success(self, local):
        result = await local.complete_login({"username": "Alice", "password": "wonderland"})

        assert result.ok
        assert result.context.user_id == "user_alice"
        assert result.context.roles == frozenset({"clerk"})
        assert local.check_session() == AuthLevel.FULL
        assert local.current_context() == result.context

    @pytest.mark.asyncio
    async def test_bad_credentials(self, local):
        result = await local.complete_login({"username": "alice", "password": "nope"})

        assert not result.ok
        assert result.error.code == AuthError.BAD_CREDENTIALS
        assert local.check_session() == AuthLevel.NONE

    @pytest.mark.asyncio
    async def test_logout(self, local):
        await local.complete_login({"username": "alice", "password": "wonderland"})
        await local.logout()

        assert local.check_session() == AuthLevel.NONE

    def test_garbage_session_is_discarded(self, local):
        local.session_store.set(local.session_key, "not-a-jwt")

        assert local.check_session() == AuthLevel.NONE
        assert local.session_store.get(local.session_key) is None

    def test_session_is_shared_through_the_store(self, settings):
        store = InMemorySessionStore()
        a = LocalProvider(settings=settings, session_store=store)
        b = LocalProvider(settings=settings, session_store=store)
        a.establish_session(AuthContext(user_id="u", level=AuthLevel.FULL))

        assert b.check_session() == AuthLevel.FULL


# =============================================================================
# Redirect Provider Tests
# =============================================================================


class TestRedirectProvider:
    def test_begin_login_redirects_with_state(self, settings):
        provider = RedirectProvider(settings=settings)

        effect = provider.begin_login(LoginContext(resumption_token="tok-1"))

        assert effect.redirects
        assert effect.resumption_token == "tok-1"
        query = parse_qs(urlparse(effect.url).query)
        assert query["state"] == ["tok-1"]
        assert query["client_id"] == ["client-123"]
        assert query["response_type"] == ["code"]

    def test_not_configured(self, settings):
        bare = settings.model_copy(update={"oauth_client_id": "", "oauth_client_secret": ""})
        provider = RedirectProvider(settings=bare)

        with pytest.raises(AuthError) as exc:
            provider.begin_login(LoginContext(resumption_token="tok-1"))
        assert exc.value.code == AuthError.NOT_CONFIGURED

    @pytest.mark.asyncio
    async def test_callback_success(self, settings):
        transport, calls = identity_provider()
        provider = RedirectProvider(settings=settings, transport=transport, default_roles=["clerk"])

        result = await provider.complete_login({"code": "c-1", "state": "tok-1"}, "tok-1")

        assert result.ok
        assert result.context.user_id == "example:42"
        assert result.context.email == "ada@example.com"
        assert result.context.roles == frozenset({"clerk"})
        assert [c.url.path for c in calls] == ["/token", "/userinfo"]
        assert provider.check_session() == AuthLevel.FULL

    @pytest.mark.asyncio
    async def test_roles_from_identity_provider(self, settings):
        transport, _ = identity_provider({"sub": "7", "roles": ["auditor"]})
        provider = RedirectProvider(settings=settings, transport=transport, default_roles=["clerk"])

        result = await provider.complete_login({"code": "c", "state": "t"}, "t")

        assert result.context.roles == frozenset({"auditor"})

    @pytest.mark.asyncio
    async def test_state_mismatch(self, settings):
        transport, calls = identity_provider()
        provider = RedirectProvider(settings=settings, transport=transport)

        result = await provider.complete_login({"code": "c-1", "state": "forged"}, "tok-1")

        assert result.error.code == AuthError.CALLBACK_MISMATCH
        assert calls == []

    @pytest.mark.asyncio
    async def test_no_pending_login(self, settings):
        provider = RedirectProvider(settings=settings)

        result = await provider.complete_login({"code": "c-1", "state": "tok-1"})

        assert result.error.code == AuthError.NO_PENDING_LOGIN

    @pytest.mark.asyncio
    async def test_provider_reports_error(self, settings):
        provider = RedirectProvider(settings=settings)

        result = await provider.complete_login({"error": "access_denied", "state": "t"}, "t")

        assert result.error.code == AuthError.PROVIDER_ERROR

    @pytest.mark.asyncio
    async def test_token_exchange_rejected(self, settings):
        transport, _ = identity_provider(token_status=400)
        provider = RedirectProvider(settings=settings, transport=transport)

        result = await provider.complete_login({"code": "c", "state": "t"}, "t")

        assert result.error.code == AuthError.PROVIDER_ERROR
        assert provider.check_session() == AuthLevel.NONE

    @pytest.mark.asyncio
    async def test_unreachable(self, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = RedirectProvider(settings=settings, transport=httpx.MockTransport(handler))

        result = await provider.complete_login({"code": "c", "state": "t"}, "t")

        assert result.error.code == AuthError.PROVIDER_UNREACHABLE


# =============================================================================
# Factory Tests
# =============================================================================


class TestCreateProvider:
    def test_by_name(self, settings):
        assert isinstance(create_provider(settings), LocalProvider)
        redirect = settings.model_copy(update={"auth_provider": "redirect"})
        assert isinstance(create_provider(redirect), RedirectProvider)

    def test_unknown(self, settings):
        with pytest.raises(AuthError) as exc:
            create_provider(settings.model_copy(update={"auth_provider": "carrier-pigeon"}))
        assert exc.value.code == AuthError.NOT_CONFIGURED

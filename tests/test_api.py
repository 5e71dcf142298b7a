"""
Tests for the HTTP API.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from fieldauth.api import create_app
from fieldauth.core.registry import AttributeRegistry
from fieldauth.providers import LocalProvider, RedirectProvider
from fieldauth.storage.local import InMemoryResumptionStore


DECLARATIONS = """
attributes:
  - key: account/name
    type: string
    auth/public: true
  - key: account/email
    type: string
  - key: account/ssn
    type: string
roles:
  clerk: [account/email]
  auditor: ["account/*"]
users:
  - username: alice
    password: alice-pw
    roles: [clerk]
"""


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def app_settings(settings, tmp_path):
    path = tmp_path / "declarations.yaml"
    path.write_text(DECLARATIONS)
    return settings.model_copy(update={"declarations_file": str(path)})


@pytest.fixture
def client(app_settings):
    app = create_app(
        app_settings,
        provider=LocalProvider(settings=app_settings),
        registry=AttributeRegistry(),
        resumption_store=InMemoryResumptionStore(),
    )
    with TestClient(app) as client:
        yield client


@pytest.fixture
def redirect_client(app_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            return httpx.Response(200, json={"access_token": "at-1"})
        return httpx.Response(200, json={"sub": "42", "email": "ada@example.com"})

    provider = RedirectProvider(
        settings=app_settings,
        transport=httpx.MockTransport(handler),
        default_roles=["auditor"],
    )
    app = create_app(
        app_settings,
        provider=provider,
        registry=AttributeRegistry(),
        resumption_store=InMemoryResumptionStore(),
    )
    with TestClient(app) as client:
        yield client


def request_ssn(client, requester_id="ui/report-1"):
    return client.post(
        "/auth/requests",
        json={
            "requester_id": requester_id,
            "event_type": "report.open",
            "payload": {"report_id": 1},
            "capabilities": ["account/ssn"],
        },
    )


# =============================================================================
# Introspection
# =============================================================================


class TestIntrospection:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_providers(self, client):
        data = client.get("/auth/providers").json()

        assert data["active"] == "local"
        assert data["redirects"] is False
        assert data["available"] == ["local", "redirect"]

    def test_attributes(self, client):
        keys = {a["key"] for a in client.get("/auth/attributes").json()["attributes"]}

        assert keys == {"account/name", "account/email", "account/ssn"}

    def test_initial_session(self, client):
        data = client.get("/auth/session").json()

        assert data["state"] == "unauthenticated"
        assert data["level"] == "none"
        assert data["pending"] == []

    def test_me_needs_token(self, client):
        assert client.get("/auth/me").status_code == 401


# =============================================================================
# Local login flow
# =============================================================================


class TestLocalFlow:
    def test_request_starts_login(self, client):
        events = request_ssn(client).json()["events"]

        assert events[0]["event_type"] == "authentication.ui"
        assert events[0]["payload"]["kind"] == "form"
        session = client.get("/auth/session").json()
        assert session["state"] == "authenticating"
        assert session["pending"] == ["ui/report-1"]

    def test_login_resolves_pending(self, client):
        request_ssn(client)

        response = client.post("/auth/login", json={"username": "alice", "password": "alice-pw"})

        assert response.status_code == 200
        events = response.json()["events"]
        assert events[0]["event_type"] == "authentication.completed"
        decision = events[1]
        assert decision["event_type"] == "authorization.denied"
        assert decision["target"] == "ui/report-1"
        assert decision["payload"]["original_event"]["payload"] == {"report_id": 1}

        token = response.json()["token"]
        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["user_id"] == "user_alice"
        assert me.json()["roles"] == ["clerk"]

    def test_bad_login(self, client):
        request_ssn(client)

        response = client.post("/auth/login", json={"username": "alice", "password": "nope"})

        assert response.status_code == 401
        assert client.get("/auth/session").json()["state"] == "unauthenticated"

    def test_login_without_pending_request(self, client):
        response = client.post("/auth/login", json={"username": "alice", "password": "alice-pw"})

        assert response.status_code == 409

    def test_logout_abandons_login(self, client):
        request_ssn(client)

        events = client.post("/auth/logout").json()["events"]

        assert [e["event_type"] for e in events] == [
            "authentication.failed",
            "authorization.denied",
        ]
        assert client.get("/auth/session").json()["pending"] == []


# =============================================================================
# Redirect flow
# =============================================================================


class TestRedirectFlow:
    def test_callback_completes_login(self, redirect_client):
        effect = request_ssn(redirect_client).json()["events"][0]["payload"]
        assert effect["kind"] == "redirect"

        response = redirect_client.get(
            "/auth/callback",
            params={"code": "c-1", "state": effect["resumption_token"]},
        )

        events = response.json()["events"]
        assert [e["event_type"] for e in events] == [
            "authentication.completed",
            "authorization.granted",
        ]
        assert events[1]["payload"]["original_event"]["event_type"] == "report.open"
        assert redirect_client.get("/auth/session").json()["user_id"] == "example:42"

    def test_forged_callback(self, redirect_client):
        request_ssn(redirect_client)

        events = redirect_client.get(
            "/auth/callback", params={"code": "c-1", "state": "forged"}
        ).json()["events"]

        assert events[0]["event_type"] == "authentication.failed"
        assert events[0]["payload"]["code"] == "callback_mismatch"
        assert events[1]["event_type"] == "authorization.denied"

"""Shared fixtures."""

import pytest

from fieldauth.config import Settings
from fieldauth.core.attributes import PUBLIC_FACET, new_attribute
from fieldauth.core.events import reset_event_bus
from fieldauth.core.registry import AttributeRegistry, reset_registry


@pytest.fixture(autouse=True)
def clean_singletons():
    """Every test starts with a fresh default registry and bus."""
    reset_registry()
    reset_event_bus()
    yield
    reset_registry()
    reset_event_bus()


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and the filesystem."""
    return Settings(
        _env_file=None,
        jwt_secret_key="test-secret",
        resumption_store="memory",
        resumption_dir=str(tmp_path / "resumption"),
        oauth_client_id="client-123",
        oauth_client_secret="secret-456",
        oauth_authorize_url="https://idp.example.com/authorize",
        oauth_token_url="https://idp.example.com/token",
        oauth_userinfo_url="https://idp.example.com/userinfo",
        oauth_provider_name="example",
        sentry_dsn="",
    )


@pytest.fixture
def registry():
    """A registry holding a small account/address schema."""
    return AttributeRegistry([
        new_attribute("account/id", "uuid", unique=True, **{PUBLIC_FACET: True}),
        new_attribute("account/name", "string", **{PUBLIC_FACET: True}),
        new_attribute("account/email", "string"),
        new_attribute("account/age", "int"),
        new_attribute("account/ssn", "string"),
        new_attribute("account/address", "ref", target="address/id"),
        new_attribute("account/tags", "keyword", cardinality="many"),
        new_attribute("address/id", "uuid", unique=True),
        new_attribute("address/city", "string"),
    ])

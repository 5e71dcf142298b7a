# =============================================================================
# Auth API Routes
# =============================================================================
#
# Endpoints:
#   GET  /auth/providers   - Active and available providers
#   GET  /auth/attributes  - Registered attribute declarations
#   GET  /auth/session     - Machine state, identity, pending requesters
#   GET  /auth/me          - Current user (needs a full session token)
#   POST /auth/requests    - Raise an authorization request
#   POST /auth/login       - Submit credentials for the login in progress
#   GET  /auth/callback    - Redirect provider callback (code + state)
#   POST /auth/logout      - End the session
#
# Every mutating endpoint answers with the events the machine produced,
# decisions included.
#
# =============================================================================

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from fieldauth.auth.context import AuthContext
from fieldauth.auth.machine import AuthorizationMachine, MachineState
from fieldauth.auth.policies import require
from fieldauth.auth.protocol import authorization_requested
from fieldauth.core.events import (
    AUTHENTICATION_FAILED,
    AUTHENTICATION_LOGOUT,
    AUTHENTICATION_SUBMITTED,
    Event,
    EventBus,
)
from fieldauth.core.registry import AttributeRegistry
from fieldauth.providers import PROVIDERS
from fieldauth.providers.base import AuthProvider

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# Request/Response Models
# =============================================================================


class AuthorizationRequestBody(BaseModel):
    requester_id: str
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    capabilities: list[str] = Field(default_factory=list)


class LoginRequest(BaseModel):
    username: str
    password: str


class EventsResponse(BaseModel):
    events: list[dict[str, Any]]
    token: str | None = None  # Session token, after a successful login


# =============================================================================
# Helpers
# =============================================================================


def _machine(request: Request) -> AuthorizationMachine:
    return request.app.state.machine


def _bus(request: Request) -> EventBus:
    return request.app.state.bus


def _json_value(value: Any) -> Any:
    if isinstance(value, Event):
        return event_to_json(value)
    if isinstance(value, dict):
        return {k: _json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_value(v) for v in value]
    return value


def event_to_json(event: Event) -> dict[str, Any]:
    """Event as a JSON-ready dict, nested events included."""
    data = event.to_dict()
    data["payload"] = _json_value(event.payload)
    return data


def _events_response(events: list[Event]) -> EventsResponse:
    return EventsResponse(events=[event_to_json(e) for e in events])


# =============================================================================
# Introspection
# =============================================================================


@router.get("/providers")
async def list_providers(request: Request):
    """The configured provider and the ones that could be configured."""
    provider: AuthProvider = request.app.state.provider
    return {
        "active": provider.provider_id,
        "redirects": provider.redirects,
        "available": sorted(PROVIDERS),
    }


@router.get("/attributes")
async def list_attributes(request: Request):
    """Attribute declarations, so clients can share the schema."""
    registry: AttributeRegistry = request.app.state.registry
    return {"attributes": [attr.to_dict() for attr in registry.attributes()]}


@router.get("/session")
async def get_session(request: Request):
    """Where the authorization machine is and who it thinks you are."""
    machine = _machine(request)
    ctx = machine.context
    return {
        "state": machine.state.value,
        "level": ctx.level.value,
        "user_id": ctx.user_id,
        "provider_id": machine.provider.provider_id,
        "pending": [r.requester_id for r in machine.pending],
    }


@router.get("/me")
async def get_me(ctx: AuthContext = Depends(require())):
    """Get current user from a session token."""
    return {
        "user_id": ctx.user_id,
        "email": ctx.email,
        "name": ctx.name,
        "provider_id": ctx.provider_id,
        "roles": sorted(ctx.roles),
    }


# =============================================================================
# Authorization
# =============================================================================


@router.post("/requests", response_model=EventsResponse)
async def request_authorization(data: AuthorizationRequestBody, request: Request):
    """
    Raise an authorization request on behalf of a requester.

    The response holds whatever the machine did right away: a decision,
    or the login UI effect when a login has to happen first.
    """
    original = Event(event_type=data.event_type, payload=data.payload, source=data.requester_id)
    events = await _bus(request).publish(
        authorization_requested(data.requester_id, original, data.capabilities)
    )
    return _events_response(events)


# =============================================================================
# Authentication
# =============================================================================


@router.post("/login", response_model=EventsResponse)
async def login(data: LoginRequest, request: Request):
    """Submit credentials for the login the machine is waiting on."""
    machine = _machine(request)
    if machine.state != MachineState.AUTHENTICATING:
        raise HTTPException(status_code=409, detail="No login in progress")

    events = await _bus(request).publish(
        Event(
            event_type=AUTHENTICATION_SUBMITTED,
            payload={"username": data.username, "password": data.password},
            source="http",
        )
    )
    if any(e.event_type == AUTHENTICATION_FAILED for e in events):
        raise HTTPException(status_code=401, detail="Invalid username or password")

    response = _events_response(events)
    response.token = machine.provider.session_store.get(machine.provider.session_key)
    return response


@router.get("/callback", response_model=EventsResponse)
async def oauth_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
):
    """
    Redirect provider callback.

    The application may have restarted since the redirect; the machine
    reloads its pending queue before completing the login.
    """
    callback_data = {"code": code, "state": state}
    if error:
        callback_data["error"] = error

    events = await _machine(request).resume(callback_data)
    results = await _bus(request).publish_many(events)
    return _events_response(events + results)


@router.post("/logout", response_model=EventsResponse)
async def logout(request: Request):
    """End the session; a login in progress is abandoned."""
    events = await _bus(request).publish(
        Event(event_type=AUTHENTICATION_LOGOUT, source="http")
    )
    return _events_response(events)

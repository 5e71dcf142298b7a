"""
The authorization machine.

One instance per application owns the authentication session and the
queue of authorization requests waiting on it. Requesting machines talk
to it only through events:

    authorization.requested  ->  (login UI, maybe a redirect)  ->
    authorization.granted / authorization.denied, addressed to the requester

States:

    unauthenticated --request--> authenticating --login ok--> idle_authenticated
          ^                            |                           |
          +--------login failed--------+                      authorizing
                                                                   |
                                                               resolved

A redirect login unloads the application. Before the redirect the
pending queue and a resumption token are written to a ResumptionStore;
after the reload `resume()` reads them back and replays exactly the step
that would have run had the process never gone away.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from fieldauth.auth.capabilities import AuthLevel, Outcome
from fieldauth.auth.context import AuthContext
from fieldauth.auth.policies import Authority
from fieldauth.auth.protocol import AuthorizationDecision, AuthorizationRequest
from fieldauth.core.events import (
    AUTHENTICATION_COMPLETED,
    AUTHENTICATION_FAILED,
    AUTHENTICATION_LOGOUT,
    AUTHENTICATION_SUBMITTED,
    AUTHENTICATION_UI,
    AUTHORIZATION_REQUESTED,
    Event,
)
from fieldauth.core.registry import AttributeRegistry, get_registry
from fieldauth.core.utils import new_resumption_token
from fieldauth.integrations.sentry import capture_exception
from fieldauth.providers.base import AuthError, AuthProvider, LoginContext
from fieldauth.services.base import Service
from fieldauth.storage.base import ResumptionState, ResumptionStore
from fieldauth.storage.local import InMemoryResumptionStore

logger = logging.getLogger(__name__)


class MachineState(str, Enum):
    """Where the machine is in the authentication/authorization cycle."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    IDLE_AUTHENTICATED = "idle_authenticated"
    AUTHORIZING = "authorizing"
    RESOLVED = "resolved"


@dataclass
class AuthSession:
    """Transient authentication state owned by the machine."""

    context: AuthContext
    provider_id: str
    resumption_token: str | None = None

    @property
    def level(self) -> AuthLevel:
        return self.context.level


@dataclass
class _Transitions:
    """Bounded record of visited states, for diagnostics."""

    states: list[MachineState] = field(default_factory=list)
    limit: int = 200

    def append(self, state: MachineState) -> None:
        self.states.append(state)
        if len(self.states) > self.limit:
            del self.states[: len(self.states) - self.limit]


class AuthorizationMachine(Service):
    """
    Singleton authorization state machine.

    Usage:
        machine = AuthorizationMachine(provider, authority, registry=registry)
        machine.wire(bus)

        await bus.publish(authorization_requested("ui/report-1", event, ["account/ssn"]))
    """

    service_id = "authorization"
    subscribes_to = [
        AUTHORIZATION_REQUESTED,
        AUTHENTICATION_SUBMITTED,
        AUTHENTICATION_LOGOUT,
    ]

    resumption_key = "fieldauth.resumption"

    def __init__(
        self,
        provider: AuthProvider,
        authority: Authority,
        registry: AttributeRegistry | None = None,
        resumption_store: ResumptionStore | None = None,
    ):
        self.provider = provider
        self.authority = authority
        self.registry = registry if registry is not None else get_registry()
        self.resumption_store = resumption_store or InMemoryResumptionStore()

        self.session = AuthSession(
            context=provider.current_context(),
            provider_id=provider.provider_id,
        )
        self.transitions = _Transitions()
        self.state = (
            MachineState.IDLE_AUTHENTICATED
            if self.session.level == AuthLevel.FULL
            else MachineState.UNAUTHENTICATED
        )
        self.transitions.append(self.state)

        self._pending: list[AuthorizationRequest] = []
        self._lock = asyncio.Lock()

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def pending(self) -> list[AuthorizationRequest]:
        """Requests waiting on authentication, in arrival order."""
        return list(self._pending)

    @property
    def context(self) -> AuthContext:
        return self.session.context

    def _transition(self, state: MachineState) -> None:
        if state != self.state:
            logger.debug(f"Authorization machine: {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    # =========================================================================
    # Event handling
    # =========================================================================

    async def handle(self, event: Event) -> list[Event]:
        if event.event_type == AUTHORIZATION_REQUESTED:
            return await self.submit(AuthorizationRequest.from_event(event))
        if event.event_type == AUTHENTICATION_SUBMITTED:
            return await self.complete_authentication(event.payload)
        if event.event_type == AUTHENTICATION_LOGOUT:
            return await self.logout()
        return []

    # =========================================================================
    # Step 1: accept a request
    # =========================================================================

    async def submit(self, request: AuthorizationRequest) -> list[Event]:
        """
        Accept an authorization request.

        Returns the events it produces right away: a decision if the
        session already suffices, a login UI effect if this request
        starts a login, nothing if it joins a login already under way.
        """
        async with self._lock:
            logger.info(
                f"Authorization requested by {request.requester_id} "
                f"(event {request.original_event.event_type}): {sorted(request.capabilities)}"
            )

            if self.state == MachineState.AUTHENTICATING:
                self._pending.append(request)
                if self.provider.redirects:
                    try:
                        await self._persist()
                    except Exception as e:
                        # The login already under way stays valid for the others
                        logger.exception(f"Could not persist request from {request.requester_id}")
                        capture_exception(e, requester_id=request.requester_id)
                        self._pending.pop()
                        return [self._deny(request)]
                return []

            if self._session_suffices():
                return [self._resolve(request)]

            self._pending.append(request)
            return await self._begin_authentication()

    def _session_suffices(self) -> bool:
        level = self.provider.check_session()
        if level == AuthLevel.FULL:
            if self.session.level != AuthLevel.FULL:
                self.session.context = self.provider.current_context()
            return True

        # Session lapsed underneath us
        if self.session.level == AuthLevel.FULL:
            self.session.context = AuthContext.anonymous(self.provider.provider_id)

        return self.provider.allows_anonymous

    async def _begin_authentication(self) -> list[Event]:
        self._transition(MachineState.AUTHENTICATING)
        self.session.resumption_token = (
            new_resumption_token() if self.provider.redirects else None
        )

        login = LoginContext(
            requester_ids=[r.requester_id for r in self._pending],
            capabilities=set().union(*(r.capabilities for r in self._pending)),
            resumption_token=self.session.resumption_token,
        )
        try:
            effect = self.provider.begin_login(login)
        except AuthError as e:
            return await self._fail_authentication(e)
        except Exception as e:
            logger.exception(f"Provider {self.provider.provider_id} failed to start login")
            capture_exception(e, provider_id=self.provider.provider_id)
            return await self._fail_authentication(
                AuthError(AuthError.PROVIDER_ERROR, "Login could not be started")
            )

        if effect.redirects:
            # The application unloads on redirect: the queue must be durable first
            self.session.resumption_token = effect.resumption_token
            try:
                await self._persist()
            except Exception as e:
                logger.exception("Could not persist pending requests before redirect")
                capture_exception(e, provider_id=self.provider.provider_id)
                return await self._fail_authentication(
                    AuthError(AuthError.PERSISTENCE_ERROR, "Pending requests could not be saved")
                )

        return [
            Event(
                event_type=AUTHENTICATION_UI,
                payload=effect.model_dump(),
                source=self.service_id,
            )
        ]

    # =========================================================================
    # Step 2: authentication finished
    # =========================================================================

    async def complete_authentication(self, callback_data: Mapping[str, Any]) -> list[Event]:
        """
        Feed a login result (form submission or redirect callback) in.

        Success releases every pending request, in arrival order. Failure
        denies every pending request and returns to unauthenticated.
        """
        async with self._lock:
            if self.state != MachineState.AUTHENTICATING:
                logger.warning("Login result arrived with no login in progress; ignored")
                return []

            try:
                result = await self.provider.complete_login(
                    callback_data,
                    resumption_token=self.session.resumption_token,
                )
            except Exception as e:
                # Whatever the provider did, queued requesters still get an answer
                logger.exception(f"Provider {self.provider.provider_id} failed to complete login")
                capture_exception(e, provider_id=self.provider.provider_id)
                return await self._fail_authentication(
                    AuthError(AuthError.PROVIDER_ERROR, "Login could not be completed")
                )

            if not result.ok:
                return await self._fail_authentication(
                    result.error or AuthError(AuthError.PROVIDER_ERROR)
                )

            self.session = AuthSession(
                context=result.context,
                provider_id=self.provider.provider_id,
            )
            self._transition(MachineState.IDLE_AUTHENTICATED)
            await self._clear_persisted()

            batch, self._pending = self._pending, []
            logger.info(
                f"Authenticated {result.context.user_id}; releasing {len(batch)} pending request(s)"
            )

            events = [
                Event(
                    event_type=AUTHENTICATION_COMPLETED,
                    payload={
                        "user_id": result.context.user_id,
                        "provider_id": self.provider.provider_id,
                    },
                    source=self.service_id,
                )
            ]
            events.extend(self._resolve(request) for request in batch)
            return events

    async def _fail_authentication(self, error: AuthError) -> list[Event]:
        logger.warning(f"Authentication failed ({error.code}): {error.message}")

        batch, self._pending = self._pending, []
        self.session = AuthSession(
            context=AuthContext.anonymous(self.provider.provider_id),
            provider_id=self.provider.provider_id,
        )
        self._transition(MachineState.UNAUTHENTICATED)
        await self._clear_persisted()

        events = [
            Event(
                event_type=AUTHENTICATION_FAILED,
                payload={"code": error.code, "message": error.message},
                source=self.service_id,
            )
        ]
        events.extend(self._deny(request) for request in batch)
        return events

    def _deny(self, request: AuthorizationRequest) -> Event:
        decision = AuthorizationDecision(
            request.requester_id, request.original_event, Outcome.DENIED
        )
        return decision.to_event(self.service_id)

    # =========================================================================
    # Step 3 + 4: authorize and emit
    # =========================================================================

    def authorize(self, request: AuthorizationRequest) -> AuthorizationDecision:
        """
        Evaluate one request against the current identity.

        All or nothing: one unsatisfied capability denies the request.
        """
        for key in sorted(request.capabilities):
            if self.registry.lookup(key) is None:
                logger.debug(f"{key} is not a registered attribute; treating it as a mutation")

        try:
            missing = self.authority.missing(self.session.context, request.capabilities)
        except Exception as e:
            logger.exception(f"Authority failed on request from {request.requester_id}")
            capture_exception(e, requester_id=request.requester_id)
            missing = sorted(request.capabilities) or ["<authority error>"]

        outcome = Outcome.DENIED if missing else Outcome.GRANTED
        if missing:
            logger.info(f"Denied {request.requester_id}: missing {missing}")
        else:
            logger.info(f"Granted {request.requester_id}")

        return AuthorizationDecision(request.requester_id, request.original_event, outcome)

    def _resolve(self, request: AuthorizationRequest) -> Event:
        self._transition(MachineState.AUTHORIZING)
        decision = self.authorize(request)
        self._transition(MachineState.RESOLVED)
        self._transition(
            MachineState.IDLE_AUTHENTICATED
            if self.session.level == AuthLevel.FULL
            else MachineState.UNAUTHENTICATED
        )
        return decision.to_event(self.service_id)

    # =========================================================================
    # Logout
    # =========================================================================

    async def logout(self) -> list[Event]:
        """
        End the session.

        A login in progress is abandoned and its queued requests denied.
        """
        async with self._lock:
            await self.provider.logout()
            if self.state == MachineState.AUTHENTICATING:
                return await self._fail_authentication(
                    AuthError(AuthError.NO_PENDING_LOGIN, "Logged out during login")
                )
            self.session = AuthSession(
                context=AuthContext.anonymous(self.provider.provider_id),
                provider_id=self.provider.provider_id,
            )
            self._transition(MachineState.UNAUTHENTICATED)
            return []

    # =========================================================================
    # Surviving a redirect
    # =========================================================================

    async def _persist(self) -> None:
        state = ResumptionState(
            provider_id=self.provider.provider_id,
            resumption_token=self.session.resumption_token or "",
            pending=[request.to_dict() for request in self._pending],
        )
        await self.resumption_store.save(self.resumption_key, state.model_dump_json())
        logger.debug(f"Persisted {len(self._pending)} pending request(s) for redirect")

    async def _clear_persisted(self) -> None:
        try:
            await self.resumption_store.delete(self.resumption_key)
        except Exception as e:
            # Decisions still go out; a stale entry fails the token check later
            logger.exception("Could not clear persisted resumption state")
            capture_exception(e)

    async def rehydrate(self) -> bool:
        """
        Reload a pending login left behind by a redirect.

        Returns True if one was found; the machine is then back in
        `authenticating` with the original queue and token.
        """
        async with self._lock:
            raw = await self.resumption_store.load(self.resumption_key)
            if raw is None:
                return False

            try:
                state = ResumptionState.model_validate_json(raw)
                pending = [AuthorizationRequest.from_dict(d) for d in state.pending]
            except (ValidationError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Discarding unreadable resumption state: {e}")
                await self._clear_persisted()
                return False

            if state.provider_id != self.provider.provider_id:
                logger.warning(
                    f"Resumption state belongs to provider {state.provider_id}, "
                    f"not {self.provider.provider_id}; discarded"
                )
                await self._clear_persisted()
                return False

            self._pending = pending
            self.session.resumption_token = state.resumption_token
            self._transition(MachineState.AUTHENTICATING)
            logger.info(f"Rehydrated {len(pending)} pending request(s) after redirect")
            return True

    async def resume(self, callback_data: Mapping[str, Any]) -> list[Event]:
        """
        Handle the redirect callback in a freshly loaded application.

        Rehydrates the persisted queue (unless this instance is still
        waiting on the login itself) and completes authentication.
        """
        if self.state != MachineState.AUTHENTICATING:
            await self.rehydrate()
        return await self.complete_authentication(callback_data)

"""
Storage abstraction layer.

Two kinds of client-side state live outside the authorization machine:

- SessionStore: the provider's session marker (like browser session
  storage). Read synchronously so `check_session()` never blocks.
- ResumptionStore: durable storage for the pending-request queue and
  resumption token while a redirect login has the application unloaded.

Swapping implementations (memory -> files -> browser storage bridge)
needs no change in the machine or the providers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from fieldauth.core.utils import utc_now


# =============================================================================
# Storage Interfaces
# =============================================================================


class SessionStore(ABC):
    """Key/value storage for provider session markers."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Read a value, or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Write a value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a value."""
        pass


class ResumptionStore(ABC):
    """
    Durable storage for state that must outlive a page reload.

    Values are opaque strings; the machine writes JSON.
    """

    @abstractmethod
    async def save(self, key: str, data: str) -> None:
        """Store data under a key, replacing any previous value."""
        pass

    @abstractmethod
    async def load(self, key: str) -> str | None:
        """Read data by key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete data."""
        pass


# =============================================================================
# Persisted Models
# =============================================================================


class ResumptionState(BaseModel):
    """What a redirect login leaves behind for the reloaded application."""

    provider_id: str
    resumption_token: str
    pending: list[dict[str, Any]] = Field(default_factory=list)
    saved_at: datetime = Field(default_factory=utc_now)

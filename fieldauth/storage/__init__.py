"""
Storage abstractions.

- SessionStore -> provider session markers
- ResumptionStore -> pending requests parked across a redirect
"""

from fieldauth.storage.base import (
    ResumptionState,
    ResumptionStore,
    SessionStore,
)
from fieldauth.storage.local import (
    FileResumptionStore,
    InMemoryResumptionStore,
    InMemorySessionStore,
    create_resumption_store,
)

__all__ = [
    "ResumptionState",
    "ResumptionStore",
    "SessionStore",
    "FileResumptionStore",
    "InMemoryResumptionStore",
    "InMemorySessionStore",
    "create_resumption_store",
]

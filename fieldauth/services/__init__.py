"""Services - event-driven components wired to the bus."""

from fieldauth.services.base import Service

__all__ = [
    "Service",
]

"""
Shared utility functions for fieldauth.

This module contains common utilities used across the codebase.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with optional prefix.

    Args:
        prefix: Optional prefix (e.g., "evt", "req", "tok")

    Returns:
        A unique ID like "evt_a1b2c3d4e5f6"
    """
    uid = str(uuid.uuid4())[:12]
    return f"{prefix}_{uid}" if prefix else uid


def new_resumption_token() -> str:
    """Opaque token that ties a redirect callback back to its pending login."""
    return secrets.token_urlsafe(24)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)

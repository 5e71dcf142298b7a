"""
Local storage implementations.

In-memory and filesystem-based implementations that work without any
external services. The file store is what lets a pending login survive
a process restart in development.
"""

from __future__ import annotations

import re
from pathlib import Path

from fieldauth.config import Settings, get_settings
from fieldauth.storage.base import ResumptionStore, SessionStore


# =============================================================================
# Session Storage
# =============================================================================


class InMemorySessionStore(SessionStore):
    """Session markers held in process memory."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


# =============================================================================
# Resumption Storage
# =============================================================================


class InMemoryResumptionStore(ResumptionStore):
    """
    Resumption state held in memory.

    Survives a machine being rebuilt (as long as the store object is
    shared), not a process restart.
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    async def save(self, key: str, data: str) -> None:
        self._data[key] = data

    async def load(self, key: str) -> str | None:
        return self._data.get(key)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class FileResumptionStore(ResumptionStore):
    """Store resumption state as files on the local filesystem."""

    def __init__(self, base_path: str = "./data/resumption"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _key_to_path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.base_path / f"{safe}.json"

    async def save(self, key: str, data: str) -> None:
        path = self._key_to_path(key)
        # Write-then-rename so a crash never leaves half a file behind
        tmp = path.with_suffix(".tmp")
        tmp.write_text(data, encoding="utf-8")
        tmp.replace(path)

    async def load(self, key: str) -> str | None:
        path = self._key_to_path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    async def delete(self, key: str) -> bool:
        path = self._key_to_path(key)
        if path.exists():
            path.unlink()
            return True
        return False


# =============================================================================
# Factory
# =============================================================================


def create_resumption_store(settings: Settings | None = None) -> ResumptionStore:
    """Create the resumption store selected by configuration."""
    settings = settings or get_settings()
    if settings.resumption_store == "memory":
        return InMemoryResumptionStore()
    return FileResumptionStore(settings.resumption_dir)

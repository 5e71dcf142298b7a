"""
Declarations loader.

Loads attribute and role declarations from YAML and registers them.
Every runtime (client and server) runs this once at startup against the
same file, so they agree on the schema.

    attributes:
      - key: account/id
        type: uuid
        unique: true
      - key: account/address
        type: ref
        target: address/id
      - key: account/age
        type: int
        valid: non_negative
    roles:
      clerk: [account/id, account/name]
      auditor: ["account/*"]
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable

import yaml

from fieldauth.core.attributes import Attribute
from fieldauth.core.registry import AttributeRegistry, get_registry

logger = logging.getLogger(__name__)


# Predicates a declaration can name with `valid:`
VALIDATORS: dict[str, Callable[[Any], bool]] = {
    "required": lambda v: v is not None and v != "",
    "non_negative": lambda v: isinstance(v, (int, float)) and v >= 0,
    "email": lambda v: isinstance(v, str) and "@" in v and "." in v.rsplit("@", 1)[-1],
}


class DeclarationsLoader:
    """
    Loads declaration files and registers them with the system.

    This is the standard way to bootstrap fieldauth with its schema.
    """

    def __init__(
        self,
        registry: AttributeRegistry | None = None,
        validators: Mapping[str, Callable[[Any], bool]] | None = None,
    ):
        self.registry = registry if registry is not None else get_registry()
        self.validators = {**VALIDATORS, **(validators or {})}
        self.roles: dict[str, list[str]] = {}
        self.users: list[dict[str, Any]] = []

    def load_file(self, path: Path | str) -> dict[str, int]:
        """
        Load one YAML declarations file.

        Returns:
            Dict with counts of each type loaded
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        counts = self.load_dict(data)
        logger.info(
            f"Loaded {counts['attributes']} attributes and {counts['roles']} roles from {path}"
        )
        return counts

    def load_dict(self, data: dict[str, Any]) -> dict[str, int]:
        """Register the declarations in an already-parsed document."""
        attributes = [
            Attribute.from_dict(entry, self.validators)
            for entry in data.get("attributes", [])
        ]
        self.registry.register(attributes)

        for role, capabilities in (data.get("roles") or {}).items():
            self.roles[role] = list(capabilities or [])

        # Development logins; only the local provider reads them
        self.users.extend(data.get("users") or [])

        return {"attributes": len(attributes), "roles": len(data.get("roles") or {})}


def default_declarations_path() -> Path:
    """The declarations shipped with the project."""
    return Path(__file__).parent.parent / "config" / "declarations.yaml"


def load_declarations(
    path: Path | str | None = None,
    registry: AttributeRegistry | None = None,
) -> DeclarationsLoader:
    """
    Convenience function to load a declarations file.

    Returns:
        The loader, holding the role -> capabilities table it read
    """
    loader = DeclarationsLoader(registry)
    loader.load_file(path or default_declarations_path())
    return loader

"""An access controller with fixed roles and no persistence."""

from __future__ import annotations

import logging
import threading
from typing import Any

from .manifest import AccessController, CreateAccessControllerOptions, new_manifest_params


class SimpleAccessController(AccessController):
    """Allows writes from a fixed set of keys given at creation time."""

    type = "simple"

    def __init__(
        self,
        allowed_keys: dict[str, list[str]] | None = None,
        logger: logging.Logger | None = None,
    ):
        super().__init__(logger)
        self._lock = threading.Lock()
        self._allowed_keys = {role: list(keys) for role, keys in (allowed_keys or {}).items()}

    def get_authorized_by_role(self, role: str) -> list[str]:
        with self._lock:
            return list(self._allowed_keys.get(role, ()))

    def can_append(self, entry: Any, identity_provider: Any, additional_context: Any = None) -> None:
        entry_id = entry.identity.id
        with self._lock:
            writers = self._allowed_keys.get("write", ())
            if any(key == entry_id or key == "*" for key in writers):
                return
        raise PermissionError("not allowed to write entry")

    def grant(self, capability: str, key_id: str) -> None:
        """Roles are fixed; granting has no effect."""

    def revoke(self, capability: str, key_id: str) -> None:
        """Roles are fixed; revoking has no effect."""

    def load(self, address: str) -> None:
        """There is nothing to load."""

    def save(self) -> CreateAccessControllerOptions:
        return new_manifest_params(None, True, self.type)

    def close(self) -> None:
        """There is nothing to release."""


def new_simple_access_controller(
    db: Any,
    params: CreateAccessControllerOptions | None,
    logger: logging.Logger | None = None,
) -> SimpleAccessController:
    """Create a simple access controller from manifest parameters."""
    if params is None:
        raise ValueError("an options object is required")
    return SimpleAccessController(params.all_access(), logger=logger)


new_simple_access_controller.controller_type = SimpleAccessController.type
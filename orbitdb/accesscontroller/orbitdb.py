"""An access controller whose roles live in a key-value store."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any

from ..events import WILDCARD, Subscription
from ..iface import CreateDBOptions
from .manifest import AccessController, CreateAccessControllerOptions, new_manifest_params
from .utils import ensure_address

DEFAULT_ADDRESS = "default-access-controller"

# Store events after which the roles may have changed.
_UPDATE_EVENT_NAMES = frozenset({"EventWrite", "EventReady", "EventReplicated"})


@dataclass(frozen=True)
class EventUpdated:
    """Sent when the access controller has been updated."""


class OrbitDBAccessController(AccessController):
    """Keeps role lists as JSON arrays in a key-value store, one key per role."""

    type = "orbitdb"

    def __init__(
        self,
        db: Any,
        kv_store: Any,
        options: CreateAccessControllerOptions,
        emitter: Any,
        logger: logging.Logger | None = None,
    ):
        super().__init__(logger)
        self._db = db
        self._kv_store = kv_store
        self._options = options
        self._emitter = emitter
        self._lock = threading.RLock()
        self._subscription: Subscription | None = None

    @property
    def address(self) -> Any:
        return self._kv_store.address

    @property
    def kv_store(self) -> Any:
        return self._kv_store

    def _get_authorizations(self) -> dict[str, list[str]]:
        with self._lock:
            kv_store = self._kv_store
        if kv_store is None:
            return {}

        authorizations: dict[str, dict[str, None]] = {}
        for role, key_bytes in kv_store.all().items():
            try:
                keys = json.loads(key_bytes)
            except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as err:
                raise ValueError(f"unable to unmarshal json: {err}") from err
            if keys is None:
                keys = []
            if not isinstance(keys, list):
                raise ValueError("unable to unmarshal json: expected a list of keys")
            authorizations[role] = dict.fromkeys(str(key) for key in keys)

        if "write" in authorizations:
            admins = authorizations.setdefault("admin", {})
            admins.update(authorizations["write"])

        return {role: list(keys) for role, keys in authorizations.items()}

    def get_authorized_by_role(self, role: str) -> list[str]:
        return self._get_authorizations().get(role, [])

    def can_append(self, entry: Any, identity_provider: Any, additional_context: Any = None) -> Any:
        access = self.get_authorized_by_role("write") + self.get_authorized_by_role("admin")
        identity = entry.identity
        if any(key == identity.id or key == "*" for key in access):
            return identity_provider.verify_identity(identity)
        raise PermissionError("unauthorized")

    def grant(self, capability: str, key_id: str) -> None:
        capabilities = self.get_authorized_by_role(capability)
        capabilities.append(key_id)
        self._kv_store.put(capability, json.dumps(capabilities).encode())

    def revoke(self, capability: str, key_id: str) -> None:
        capabilities = self.get_authorized_by_role(capability)
        if key_id in capabilities:
            capabilities.remove(key_id)
        if capabilities:
            self._kv_store.put(capability, json.dumps(capabilities).encode())
        else:
            self._kv_store.delete(capability)

    def load(self, address: str) -> None:
        """Open the roles store at ``<address>/_access`` and follow its updates."""
        with self._lock:
            if self._kv_store is not None:
                self._kv_store.close()
            self._close_subscription()

        write_access = self._options.get_access("admin") or [self._db.identity.id]
        ipfs_params = new_manifest_params(None, True, "ipfs")
        ipfs_params.set_access("write", write_access)

        store = self._db.key_value(
            ensure_address(address), CreateDBOptions(access_controller=ipfs_params)
        )
        with self._lock:
            self._kv_store = store

        bus = getattr(store, "event_bus", None)
        if bus is not None:
            subscription = bus.subscribe(WILDCARD, buffer_size=None)
            with self._lock:
                self._subscription = subscription
            threading.Thread(
                target=self._watch_store, args=(subscription,), daemon=True
            ).start()

        store.load(-1)

    def _watch_store(self, subscription: Subscription) -> None:
        for event in subscription:
            if type(event).__name__ in _UPDATE_EVENT_NAMES:
                self._on_update()

    def _on_update(self) -> None:
        try:
            self._emitter.emit(EventUpdated())
        except Exception as err:  # noqa: BLE001 - a failed notification must not stop the watcher
            self.logger.warning("unable to emit event updated: %s", err)

    def _close_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def save(self) -> CreateAccessControllerOptions:
        return new_manifest_params(self._kv_store.address.root, False, self.type)

    def close(self) -> None:
        with self._lock:
            self._close_subscription()
            kv_store = self._kv_store
        if kv_store is not None:
            kv_store.close()


def new_orbitdb_access_controller(
    db: Any,
    params: CreateAccessControllerOptions | None,
    logger: logging.Logger | None = None,
) -> OrbitDBAccessController:
    """Create an access controller backed by a key-value store of the database."""
    if db is None:
        raise ValueError("an OrbitDB instance is required")
    if not callable(getattr(db, "key_value", None)):
        raise TypeError("the OrbitDB instance must provide a key value store")
    if params is None:
        raise ValueError("an options object is required")

    if params.address is not None:
        address = str(params.address)
    elif params.name:
        address = params.name
    else:
        address = DEFAULT_ADDRESS

    kv_store = db.key_value(address, None)
    emitter = db.event_bus.emitter(EventUpdated)

    controller = OrbitDBAccessController(db, kv_store, params, emitter, logger=logger)
    for key in params.get_access("write"):
        controller.grant("write", key)
    return controller


new_orbitdb_access_controller.controller_type = OrbitDBAccessController.type
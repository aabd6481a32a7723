"""Access controller manifests and the options used to create controllers."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..cid import Cid, CidError, decode
from ..ipfs import MemoryIPFS


@dataclass
class CreateAccessControllerOptions:
    """Parameters of an access controller: its type, name, address and roles."""

    skip_manifest: bool = False
    address: Cid | None = None
    type: str = ""
    name: str = ""
    access: dict[str, list[str]] = field(default_factory=dict)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def set_access(self, role: str, allowed: list[str]) -> None:
        """Set the keys allowed for a role."""
        with self._lock:
            self.access[role] = list(allowed)

    def get_access(self, role: str) -> list[str]:
        """Return the keys allowed for a role, empty if none."""
        with self._lock:
            return list(self.access.get(role, ()))

    def all_access(self) -> dict[str, list[str]]:
        """Return a copy of every role and its allowed keys."""
        with self._lock:
            return {role: list(keys) for role, keys in self.access.items()}

    def _to_cbor(self) -> dict[str, Any]:
        return {
            "skip_manifest": self.skip_manifest,
            "address": self.address,
            "type": self.type,
        }

    @classmethod
    def _from_cbor(cls, data: Any) -> CreateAccessControllerOptions:
        if not isinstance(data, dict):
            raise ValueError("manifest parameters must be a map")
        address = data.get("address")
        if address is not None and not isinstance(address, Cid):
            raise ValueError("manifest address must be a cid link")
        skip = data.get("skip_manifest", False)
        kind = data.get("type", "")
        if not isinstance(skip, bool) or not isinstance(kind, str):
            raise ValueError("malformed manifest parameters")
        return cls(skip_manifest=skip, address=address, type=kind)


ManifestParams = CreateAccessControllerOptions


@dataclass
class Manifest:
    """An access controller manifest: its type and parameters."""

    type: str
    params: CreateAccessControllerOptions

    def _to_cbor(self) -> dict[str, Any]:
        return {"type": self.type, "manifest": self.params._to_cbor()}

    @classmethod
    def _from_cbor(cls, data: Any) -> Manifest:
        if not isinstance(data, dict) or not isinstance(data.get("type", ""), str):
            raise ValueError("manifest must be a map with a string type")
        return cls(
            type=data.get("type", ""),
            params=CreateAccessControllerOptions._from_cbor(data.get("manifest", {})),
        )


class AccessController(ABC):
    """Decides which identities may append to a store and manages roles."""

    type: str = ""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    @property
    def address(self) -> Any:
        """The address of the controller's own store, if it has one."""
        return None

    @abstractmethod
    def can_append(self, entry: Any, identity_provider: Any, additional_context: Any = None) -> None:
        """Raise PermissionError unless the entry may be appended."""

    @abstractmethod
    def get_authorized_by_role(self, role: str) -> list[str]:
        """Return the keys authorized for a role."""

    @abstractmethod
    def grant(self, capability: str, key_id: str) -> None:
        """Allow a key for a capability."""

    @abstractmethod
    def revoke(self, capability: str, key_id: str) -> None:
        """Remove a key's permission for a capability."""

    @abstractmethod
    def load(self, address: str) -> None:
        """Fetch the controller configuration from an address."""

    @abstractmethod
    def save(self) -> CreateAccessControllerOptions:
        """Persist the controller configuration and return its manifest parameters."""

    @abstractmethod
    def close(self) -> None:
        """Release the controller's resources."""


def clone_manifest_params(params: CreateAccessControllerOptions) -> CreateAccessControllerOptions:
    """Return an independent copy of manifest parameters."""
    return CreateAccessControllerOptions(
        type=params.type,
        skip_manifest=params.skip_manifest,
        name=params.name,
        access=params.all_access(),
        address=params.address,
    )


def new_manifest_params(
    address: Cid | None, skip_manifest: bool, manifest_type: str
) -> CreateAccessControllerOptions:
    return CreateAccessControllerOptions(
        address=address, skip_manifest=skip_manifest, type=manifest_type
    )


def new_simple_manifest_params(
    manifest_type: str, access: dict[str, list[str]]
) -> CreateAccessControllerOptions:
    return CreateAccessControllerOptions(
        skip_manifest=True,
        access={role: list(keys) for role, keys in access.items()},
        type=manifest_type,
    )


def create_manifest(
    ipfs: MemoryIPFS, controller_type: str, params: CreateAccessControllerOptions
) -> Cid | None:
    """Store a manifest for the controller and return its identifier."""
    if params.skip_manifest:
        return params.address
    manifest = Manifest(
        type=controller_type,
        params=CreateAccessControllerOptions(
            address=params.address, skip_manifest=params.skip_manifest
        ),
    )
    return ipfs.write_cbor(manifest._to_cbor())


def resolve_manifest(
    ipfs: MemoryIPFS, manifest_address: str, params: CreateAccessControllerOptions
) -> Manifest:
    """Fetch a manifest from its address, or build it from the parameters."""
    if params.skip_manifest:
        if not params.type:
            raise ValueError("no manifest, access-controller type required")
        return Manifest(type=params.type, params=clone_manifest_params(params))

    if manifest_address.startswith("/ipfs"):
        parts = manifest_address.split("/")
        if len(parts) < 3:
            raise ValueError(f"unable to parse CID: {manifest_address}")
        manifest_address = parts[2]

    try:
        cid = decode(manifest_address)
    except CidError as err:
        raise ValueError(f"unable to parse CID: {err}") from err

    data = ipfs.read_cbor(cid)
    try:
        return Manifest._from_cbor(data)
    except ValueError as err:
        raise ValueError(f"unable to unmarshal: {err}") from err
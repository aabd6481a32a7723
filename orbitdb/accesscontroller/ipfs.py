"""An access controller whose write keys are stored as an immutable block."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any

from ..cid import CidError, decode
from ..ipfs import MemoryIPFS
from .manifest import (
    AccessController,
    CreateAccessControllerOptions,
    Manifest,
    new_manifest_params,
)


class IPFSAccessController(AccessController):
    """Allows writes from a list of keys saved in the block store."""

    type = "ipfs"

    def __init__(
        self,
        ipfs: MemoryIPFS,
        write_access: list[str],
        logger: logging.Logger | None = None,
    ):
        super().__init__(logger)
        self._ipfs = ipfs
        self._lock = threading.Lock()
        self._write_access = list(write_access)

    def can_append(self, entry: Any, identity_provider: Any, additional_context: Any = None) -> Any:
        identity = entry.identity
        with self._lock:
            allowed = any(key == identity.id or key == "*" for key in self._write_access)
        if allowed:
            return identity_provider.verify_identity(identity)
        raise PermissionError("not allowed")

    def get_authorized_by_role(self, role: str) -> list[str]:
        if role in ("admin", "write"):
            with self._lock:
                return list(self._write_access)
        return []

    def grant(self, capability: str, key_id: str) -> None:
        raise RuntimeError("the ipfs access controller does not support granting")

    def revoke(self, capability: str, key_id: str) -> None:
        raise RuntimeError("the ipfs access controller does not support revoking")

    def load(self, address: str) -> None:
        """Read the write keys from the manifest stored at an address."""
        self.logger.debug("reading IPFS access controller write access on hash %s", address)
        try:
            cid = decode(address)
        except CidError as err:
            raise ValueError(f"unable to parse cid: {err}") from err

        try:
            manifest = Manifest._from_cbor(self._ipfs.read_cbor(cid))
        except ValueError as err:
            raise ValueError(f"unable to unmarshal access controller manifest data: {err}") from err

        data_address = manifest.params.address
        if data_address is None:
            raise ValueError("access controller manifest has no data address")

        data = self._ipfs.read_cbor(data_address)
        if not isinstance(data, dict) or not isinstance(data.get("write"), str):
            raise ValueError("unable to unmarshal access controller data")

        try:
            write_access = json.loads(data["write"])
        except json.JSONDecodeError as err:
            raise ValueError(f"unable to unmarshal json write access: {err}") from err
        if write_access is None:
            write_access = []
        if not isinstance(write_access, list) or not all(isinstance(k, str) for k in write_access):
            raise ValueError("unable to unmarshal json write access: expected a list of strings")

        with self._lock:
            self._write_access = write_access

    def save(self) -> CreateAccessControllerOptions:
        """Store the write keys and return the parameters pointing at them."""
        with self._lock:
            write_access = json.dumps(self._write_access, separators=(",", ":"))
        cid = self._ipfs.write_cbor({"write": write_access})
        self.logger.debug("saved IPFS access controller write access on hash %s", cid)
        return new_manifest_params(cid, False, self.type)

    def close(self) -> None:
        raise RuntimeError("the ipfs access controller does not support closing")


def new_ipfs_access_controller(
    db: Any,
    params: CreateAccessControllerOptions | None,
    logger: logging.Logger | None = None,
) -> IPFSAccessController:
    """Create an ipfs access controller; the db identity writes by default."""
    if params is None:
        raise ValueError("an options object must be passed")
    if db is None:
        raise ValueError("an OrbitDB instance is required")
    if not params.get_access("write"):
        params.set_access("write", [db.identity.id])
    return IPFSAccessController(db.ipfs, params.get_access("write"), logger=logger)


new_ipfs_access_controller.controller_type = IPFSAccessController.type
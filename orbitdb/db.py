"""A database instance with the default access controllers and typed store helpers."""

from __future__ import annotations

import dataclasses
from typing import Any

from .accesscontroller.ipfs import new_ipfs_access_controller
from .accesscontroller.orbitdb import new_orbitdb_access_controller
from .accesscontroller.simple import new_simple_access_controller
from .baseorbitdb.core import BaseOrbitDB
from .baseorbitdb.options import NewOrbitDBOptions
from .iface import CreateDBOptions
from .ipfs import MemoryIPFS


class OrbitDB(BaseOrbitDB):
    """Opens event log, key-value and document stores by name or address.

    Store types are provided by registering their constructors under
    "eventlog", "keyvalue" and "docstore".
    """

    def _open_typed(
        self, address: str, options: CreateDBOptions | None, store_type: str, label: str
    ) -> Any:
        options = dataclasses.replace(options) if options is not None else CreateDBOptions()
        options.create = True
        options.store_type = store_type
        try:
            store = self.open(address, options)
        except Exception as err:
            raise ValueError(f"unable to open database: {err}") from err
        if getattr(store, "type", None) != store_type:
            raise TypeError(f"unable to cast store to {label}")
        return store

    def log(self, address: str, options: CreateDBOptions | None = None) -> Any:
        """Create or open an event log store."""
        return self._open_typed(address, options, "eventlog", "log")

    def key_value(self, address: str, options: CreateDBOptions | None = None) -> Any:
        """Create or open a key-value store."""
        return self._open_typed(address, options, "keyvalue", "keyvalue")

    def docs(self, address: str, options: CreateDBOptions | None = None) -> Any:
        """Create or open a document store."""
        return self._open_typed(address, options, "docstore", "document")


def new_orbitdb(ipfs: MemoryIPFS | None, options: NewOrbitDBOptions | None = None) -> OrbitDB:
    """Create a database instance with the ipfs, orbitdb and simple access controllers."""
    db = OrbitDB._from_options(ipfs, options)
    for constructor in (
        new_ipfs_access_controller,
        new_orbitdb_access_controller,
        new_simple_access_controller,
    ):
        try:
            db.register_access_controller_type(constructor)
        except ValueError as err:
            db.logger.warning("unable to register access controller: %s", err)
    return db
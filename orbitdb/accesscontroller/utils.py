"""Creating and resolving access controllers through a database's registry."""

from __future__ import annotations

import logging
import posixpath
from typing import Any

from ..cid import Cid
from .manifest import (
    AccessController,
    CreateAccessControllerOptions,
    create_manifest,
    resolve_manifest,
)

_ACCESS_SUFFIX = "_access"


def ensure_address(address: str) -> str:
    """Return the address ending with "/_access", appending it if needed."""
    if address.split("/")[-1] == _ACCESS_SUFFIX:
        return address
    joined = posixpath.normpath("/".join(part for part in (address, "/" + _ACCESS_SUFFIX) if part))
    if joined.startswith("//"):
        joined = "/" + joined.lstrip("/")
    return joined


def create(
    db: Any,
    controller_type: str,
    params: CreateAccessControllerOptions,
    logger: logging.Logger | None = None,
) -> Cid | None:
    """Create an access controller, save it and return its manifest identifier."""
    constructor = db.get_access_controller_type(controller_type)
    if constructor is None:
        raise ValueError("unrecognized access controller on create")

    if params.skip_manifest:
        return params.address

    controller = constructor(db, params, logger)
    saved = controller.save()
    return create_manifest(db.ipfs, controller_type, saved)


def resolve(
    db: Any,
    manifest_address: str,
    params: CreateAccessControllerOptions,
    logger: logging.Logger | None = None,
) -> AccessController:
    """Build and load the access controller described by a manifest."""
    manifest = resolve_manifest(db.ipfs, manifest_address, params)

    constructor = db.get_access_controller_type(manifest.type)
    if constructor is None:
        raise ValueError("unrecognized access controller on resolve")

    controller = constructor(db, manifest.params, logger)
    controller.load(params.address.encode() if params.address is not None else "")
    return controller
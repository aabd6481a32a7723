"""An in-memory content-addressed block store for CBOR objects."""

from __future__ import annotations

import threading
import uuid
from typing import Any

import cbor2

from .cid import Cid, CidError, cid_for_cbor, decode

_CID_TAG = 42


class BlockNotFoundError(LookupError):
    """Raised when no block is stored under a content identifier."""

    def __init__(self, cid: Cid):
        super().__init__(f"block not found: {cid}")
        self.cid = cid


def _encode_default(encoder: Any, value: Any) -> None:
    if isinstance(value, Cid):
        encoder.encode(cbor2.CBORTag(_CID_TAG, b"\x00" + value.to_bytes()))
        return
    raise TypeError(f"cannot encode value of type {type(value).__name__}")


def _tag_hook(decoder: Any, tag: cbor2.CBORTag) -> Any:
    if tag.tag != _CID_TAG:
        return tag
    data = tag.value
    if not isinstance(data, bytes) or not data.startswith(b"\x00"):
        raise ValueError("invalid cid link in CBOR data")
    return Cid.from_bytes(data[1:])


class MemoryIPFS:
    """Stores CBOR-encoded objects under their dag-cbor identifiers.

    Content identifiers found inside objects are written as CBOR links
    (tag 42) and read back as Cid values.
    """

    def __init__(self, peer_id: str | None = None):
        self.peer_id = peer_id or f"peer-{uuid.uuid4().hex}"
        self._blocks: dict[Cid, bytes] = {}
        self._lock = threading.Lock()

    def write_cbor(self, obj: Any) -> Cid:
        """Encode an object as canonical CBOR, store it and return its identifier."""
        data = cbor2.dumps(obj, canonical=True, default=_encode_default)
        cid = cid_for_cbor(data)
        with self._lock:
            self._blocks[cid] = data
        return cid

    def read_cbor(self, cid: Cid | str) -> Any:
        """Return the object stored under an identifier or its string form."""
        if isinstance(cid, str):
            cid = decode(cid)
        with self._lock:
            data = self._blocks.get(cid)
        if data is None:
            raise BlockNotFoundError(cid)
        try:
            return cbor2.loads(data, tag_hook=_tag_hook)
        except (CidError, ValueError, cbor2.CBORDecodeError) as err:
            raise ValueError(f"unable to decode block {cid}: {err}") from err
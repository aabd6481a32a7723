"""Options of a database instance and the default head message marshaler."""

from __future__ import annotations

import base64
import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..iface import (
    DirectChannelFactory,
    Identity,
    MessageExchangeHeads,
    MessageMarshaler,
    PubSubInterface,
)

CBOR_READ_DEFAULT_TIMEOUT = 30.0


@dataclass
class NewOrbitDBOptions:
    """Options for a new database instance; None means use the default."""

    id: str | None = None
    peer_id: str | None = None
    directory: str | None = None
    keystore: Any = None
    cache: Any = None
    identity: Identity | None = None
    close_keystore: Callable[[], None] | None = None
    logger: logging.Logger | None = None
    direct_channel_factory: DirectChannelFactory | None = None
    pubsub: PubSubInterface | None = None
    message_marshaler: MessageMarshaler | None = None


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"cannot serialize value of type {type(value).__name__}")


class JSONMessageMarshaler:
    """Encodes head exchange messages as compact JSON."""

    def marshal(self, message: MessageExchangeHeads) -> bytes:
        document = {"address": message.address, "heads": list(message.heads)}
        try:
            text = json.dumps(document, separators=(",", ":"), default=_json_default)
        except (TypeError, ValueError) as err:
            raise ValueError(f"unable to marshal message: {err}") from err
        return text.encode("utf-8")

    def unmarshal(self, data: bytes) -> MessageExchangeHeads:
        try:
            decoded = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as err:
            raise ValueError(f"unable to unmarshal message: {err}") from err
        if not isinstance(decoded, dict):
            raise ValueError("unable to unmarshal message: expected a JSON object")
        address = decoded.get("address")
        if address is None:
            address = ""
        if not isinstance(address, str):
            raise ValueError("unable to unmarshal message: address must be a string")
        heads = decoded.get("heads")
        if heads is None:
            heads = []
        if not isinstance(heads, list):
            raise ValueError("unable to unmarshal message: heads must be a list")
        return MessageExchangeHeads(address=address, heads=heads)
"""Head exchange events and the handlers reacting to them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..iface import MessageExchangeHeads

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventExchangeHeads:
    """Heads received from a peer over a direct channel."""

    peer: str
    message: MessageExchangeHeads


def handle_exchange_heads(
    message: MessageExchangeHeads, store: Any, logger: logging.Logger | None = None
) -> None:
    """Merge the heads of a received message into the store."""
    logger = logger or _logger
    heads = list(message.heads)
    logger.debug("received %d heads for '%s'", len(heads), message.address)
    if heads:
        try:
            store.sync(heads)
        except Exception as err:
            raise RuntimeError(f"unable to sync heads: {err}") from err


def handle_event_write(
    heads: list[Any],
    topic: Any,
    store: Any,
    marshaler: Any,
    logger: logging.Logger | None = None,
) -> None:
    """Publish the store's new heads on its topic when peers are listening."""
    logger = logger or _logger
    logger.debug("received stores.write event")
    if not heads:
        raise ValueError("'heads' are not defined")
    if topic is None:
        return

    try:
        peers = topic.peers()
    except Exception as err:
        raise RuntimeError(f"unable to get topic peers: {err}") from err
    if not peers:
        return

    message = MessageExchangeHeads(address=str(store.address), heads=list(heads))
    try:
        payload = marshaler.marshal(message)
    except Exception as err:
        raise RuntimeError(f"unable to serialize heads {err}") from err

    try:
        topic.publish(payload)
    except Exception as err:
        raise RuntimeError(f"unable to publish message on pubsub {err}") from err

    logger.debug("stores.write event: published event on pub sub")
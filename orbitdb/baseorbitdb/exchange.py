"""Head exchange between peers over pub/sub topics and direct channels."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from ..events import WILDCARD, Emitter, EventBus, Subscription
from ..iface import (
    DirectChannel,
    DirectChannelFactory,
    DirectChannelOptions,
    EventPubSubJoin,
    EventPubSubLeave,
    EventPubSubPayload,
    MessageExchangeHeads,
)
from .events import EventExchangeHeads, handle_event_write, handle_exchange_heads

_LOCAL_HEADS_KEY = "_localHeads"
_DIRECT_CHANNEL_BUFFER = 128


@dataclass(frozen=True)
class EventNewPeer:
    """A peer joined the topic of a store."""

    peer: str


def make_direct_channel(
    bus: EventBus, factory: DirectChannelFactory, options: DirectChannelOptions | None
) -> DirectChannel:
    """Create a direct channel whose received payloads are emitted on the bus."""
    emitter = bus.emitter(EventPubSubPayload)
    return factory(emitter, options or DirectChannelOptions())


class HeadsExchanger:
    """Propagates store heads to peers and merges heads received from them."""

    def __init__(
        self,
        peer_id: str,
        direct_channel: DirectChannel,
        marshaler: Any,
        get_store: Callable[[str], Any],
        logger: logging.Logger | None = None,
    ):
        self.peer_id = peer_id
        self.direct_channel = direct_channel
        self._marshaler = marshaler
        self._get_store = get_store
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self._emitters: list[Emitter] = []
        self._closed = threading.Event()

    def _spawn(self, target: Callable[..., None], *args: Any) -> None:
        threading.Thread(target=target, args=args, daemon=True).start()

    def _track_subscription(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.append(subscription)

    def _track_emitter(self, emitter: Emitter) -> None:
        with self._lock:
            self._emitters.append(emitter)

    # store writes -> pub/sub

    def store_listener(self, store: Any, topic: Any) -> None:
        """Publish the heads of every write on the store to its topic."""
        subscription = store.event_bus.subscribe(WILDCARD, buffer_size=None)
        self._track_subscription(subscription)
        self._spawn(self._forward_writes, subscription, store, topic)

    def _forward_writes(self, subscription: Subscription, store: Any, topic: Any) -> None:
        for event in subscription:
            if type(event).__name__ != "EventWrite":
                continue
            heads = list(getattr(event, "heads", None) or [])
            self._spawn(self._publish_heads, heads, topic, store)

    def _publish_heads(self, heads: list[Any], topic: Any, store: Any) -> None:
        try:
            handle_event_write(heads, topic, store, self._marshaler, self._logger)
        except Exception as err:  # noqa: BLE001 - reported, never fatal for the listener
            self._logger.warning("unable to handle EventWrite: %s", err)

    # pub/sub -> store

    def pubsub_listener(self, store: Any, topic: Any, address: Any) -> None:
        """Follow peers and messages of a topic on behalf of a store."""
        peer_events = topic.watch_peers()
        messages = topic.watch_messages()
        emitter = store.event_bus.emitter(EventNewPeer)
        self._spawn(self._watch_peers, peer_events, emitter, store, address)
        self._spawn(self._watch_messages, messages, store, address)

    def _watch_peers(
        self, peer_events: Iterable[Any], emitter: Emitter, store: Any, address: Any
    ) -> None:
        try:
            for event in peer_events:
                if self._closed.is_set():
                    return
                if isinstance(event, EventPubSubJoin):
                    try:
                        emitter.emit(EventNewPeer(event.peer))
                    except Exception as err:  # noqa: BLE001
                        self._logger.error("unable to emit event new peer: %s", err)
                    self._spawn(self._on_new_peer_joined, event.peer, store)
                    self._logger.debug(
                        "peer %s joined from %s self is %s", event.peer, address, self.peer_id
                    )
                elif isinstance(event, EventPubSubLeave):
                    self._logger.debug(
                        "peer %s left from %s self is %s", event.peer, address, self.peer_id
                    )
                else:
                    self._logger.debug("unhandled event, can't match type")
        finally:
            emitter.close()

    def _watch_messages(self, messages: Iterable[Any], store: Any, address: Any) -> None:
        for event in messages:
            if self._closed.is_set():
                return
            self._logger.debug("got pub sub message")
            try:
                message = self._marshaler.unmarshal(event.content)
            except ValueError as err:
                self._logger.error("unable to unmarshal head entries: %s", err)
                continue
            if not message.heads:
                self._logger.debug("nothing to synchronize for %s", address)
                continue
            self._logger.debug("received %d heads for %s", len(message.heads), address)
            try:
                store.sync(list(message.heads))
            except Exception as err:  # noqa: BLE001
                self._logger.debug("error while syncing heads for %s: %s", address, err)

    def _on_new_peer_joined(self, peer: str, store: Any) -> None:
        self._logger.debug(
            "%s: new peer '%s' connected to %s", self.peer_id, peer, store.address
        )
        try:
            self.exchange_heads(peer, store)
        except Exception as err:  # noqa: BLE001
            if not self._closed.is_set():
                self._logger.error("unable to exchange heads: %s", err)

    # direct channel

    def exchange_heads(self, peer: str, store: Any) -> None:
        """Send the locally cached heads of a store to a peer."""
        self._logger.debug("connecting to %s", peer)
        try:
            self.direct_channel.connect(peer)
        except Exception as err:
            raise RuntimeError(f"unable to connect to peer: {err}") from err
        self._logger.debug("connected to %s", peer)

        try:
            raw_local_heads = store.cache.get(_LOCAL_HEADS_KEY)
        except KeyError:
            raw_local_heads = None
        except Exception as err:
            raise RuntimeError(f"unable to get local heads from cache: {err}") from err

        heads: list[Any] = []
        if raw_local_heads:
            try:
                decoded = json.loads(raw_local_heads)
            except (json.JSONDecodeError, UnicodeDecodeError) as err:
                self._logger.warning("unable to unmarshal cached local heads: %s", err)
            else:
                if isinstance(decoded, list):
                    heads.extend(decoded)
                elif decoded is not None:
                    self._logger.warning("unable to unmarshal cached local heads: not a list")

        message = MessageExchangeHeads(address=str(store.address), heads=heads)
        try:
            payload = self._marshaler.marshal(message)
        except Exception as err:
            raise RuntimeError(f"unable to marshall message: {err}") from err

        self._logger.debug("sending payload %s", payload.hex())
        try:
            self.direct_channel.send(peer, payload)
        except Exception as err:
            raise RuntimeError(f"unable to send heads on direct channel: {err}") from err

    def monitor_direct_channel(self, bus: EventBus) -> None:
        """Merge heads received on the direct channel into the matching stores."""
        subscription = bus.subscribe(EventPubSubPayload, buffer_size=_DIRECT_CHANNEL_BUFFER)
        emitter = bus.emitter(EventExchangeHeads, stateful=True)
        self._track_subscription(subscription)
        self._track_emitter(emitter)
        self._spawn(self._dispatch_payloads, subscription, emitter)

    def _dispatch_payloads(self, subscription: Subscription, emitter: Emitter) -> None:
        for event in subscription:
            try:
                message = self._marshaler.unmarshal(event.payload)
            except ValueError as err:
                self._logger.error("unable to unmarshal message payload: %s", err)
                continue

            store = self._get_store(message.address)
            if store is None:
                self._logger.error("unable to get store from address %s", message.address)
                continue

            self._logger.debug("exchanging heads for %s", message.address)
            try:
                handle_exchange_heads(message, store, self._logger)
            except Exception as err:  # noqa: BLE001
                self._logger.error("unable to handle pubsub payload: %s", err)
                continue

            try:
                emitter.emit(EventExchangeHeads(peer=event.peer, message=message))
            except Exception as err:  # noqa: BLE001
                self._logger.warning("unable to emit new heads: %s", err)

    def close(self) -> None:
        """Stop every listener and close the direct channel."""
        self._closed.set()
        with self._lock:
            subscriptions, self._subscriptions = self._subscriptions, []
            emitters, self._emitters = self._emitters, []
        for subscription in subscriptions:
            subscription.close()
        for emitter in emitters:
            emitter.close()
        try:
            self.direct_channel.close()
        except Exception as err:  # noqa: BLE001
            self._logger.error("unable to close connection: %s", err)
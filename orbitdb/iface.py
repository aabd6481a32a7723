"""Shared data structures and interfaces of databases, stores and pub/sub."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Protocol, runtime_checkable

from .accesscontroller.manifest import AccessController, CreateAccessControllerOptions
from .cid import Cid


@dataclass(frozen=True)
class Identity:
    """The identity a database or store writes with."""

    id: str
    type: str = "orbitdb"
    public_key: bytes = b""


@dataclass
class MessageExchangeHeads:
    """Heads of a store sent to peers: the store address and its head entries."""

    address: str = ""
    heads: list[Any] = field(default_factory=list)


@dataclass
class CreateDBOptions:
    """Arguments for creating or opening a store; None means use the default."""

    event_bus: Any = None
    directory: str | None = None
    overwrite: bool | None = None
    local_only: bool | None = None
    create: bool | None = None
    store_type: str | None = None
    access_controller_address: str = ""
    access_controller: CreateAccessControllerOptions | None = None
    replicate: bool | None = None
    keystore: Any = None
    cache: Any = None
    identity: Identity | None = None
    sort_fn: Callable[..., Any] | None = None
    io: Any = None
    timeout: float = 0.0
    message_marshaler: Any = None
    store_specific_opts: Any = None


@dataclass
class DetermineAddressOptions:
    """Arguments used to determine a store address."""

    only_hash: bool | None = None
    replicate: bool | None = None
    access_controller: CreateAccessControllerOptions | None = None


@dataclass
class StreamOptions:
    """Bounds and amount for streaming entries of an event log."""

    gt: Cid | None = None
    gte: Cid | None = None
    lt: Cid | None = None
    lte: Cid | None = None
    amount: int | None = None


@dataclass
class NewStoreOptions:
    """Options handed to a store constructor."""

    event_bus: Any = None
    index: Callable[[bytes], Any] | None = None
    access_controller: AccessController | None = None
    cache: Any = None
    cache_destroy: Callable[[], None] | None = None
    replication_concurrency: int = 0
    reference_count: int | None = None
    replicate: bool | None = None
    max_history: int | None = None
    directory: str = ""
    sort_fn: Callable[..., Any] | None = None
    logger: logging.Logger | None = None
    io: Any = None
    store_specific_opts: Any = None


@dataclass
class DirectChannelOptions:
    logger: logging.Logger | None = None


@dataclass(frozen=True)
class EventPubSubMessage:
    """A message posted on a pub/sub topic."""

    content: bytes


@dataclass(frozen=True)
class EventPubSubPayload:
    """A payload received from a peer on a direct channel."""

    payload: bytes
    peer: str


@dataclass(frozen=True)
class EventPubSubJoin:
    """A peer joined a topic."""

    topic: str
    peer: str


@dataclass(frozen=True)
class EventPubSubLeave:
    """A peer left a topic."""

    topic: str
    peer: str


@runtime_checkable
class Store(Protocol):
    """Operations common to every store type."""

    @property
    def address(self) -> Any: ...

    @property
    def type(self) -> str: ...

    @property
    def db_name(self) -> str: ...

    @property
    def identity(self) -> Identity: ...

    @property
    def access_controller(self) -> AccessController | None: ...

    @property
    def cache(self) -> Any: ...

    @property
    def event_bus(self) -> Any: ...

    def close(self) -> None: ...

    def drop(self) -> None: ...

    def load(self, amount: int) -> None: ...

    def sync(self, heads: list[Any]) -> None: ...


@runtime_checkable
class PubSubTopic(Protocol):
    """A subscription to a pub/sub topic."""

    @property
    def topic(self) -> str: ...

    def publish(self, message: bytes) -> None: ...

    def peers(self) -> list[str]: ...

    def watch_peers(self) -> Iterator[EventPubSubJoin | EventPubSubLeave]: ...

    def watch_messages(self) -> Iterator[EventPubSubMessage]: ...


@runtime_checkable
class PubSubInterface(Protocol):
    def topic_subscribe(self, topic: str) -> PubSubTopic: ...


@runtime_checkable
class DirectChannel(Protocol):
    """A one-to-one channel between peers."""

    def connect(self, peer: str) -> None: ...

    def send(self, peer: str, data: bytes) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class MessageMarshaler(Protocol):
    """Converts head exchange messages to and from bytes."""

    def marshal(self, message: MessageExchangeHeads) -> bytes: ...

    def unmarshal(self, data: bytes) -> MessageExchangeHeads: ...


StoreConstructor = Callable[[Any, Identity, Any, NewStoreOptions], Store]
IndexConstructor = Callable[[bytes], Any]
AccessControllerConstructor = Callable[..., AccessController]
DirectChannelFactory = Callable[[Any, DirectChannelOptions], DirectChannel]
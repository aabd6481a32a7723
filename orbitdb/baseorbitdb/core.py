"""The database instance: creating, opening and addressing stores."""

from __future__ import annotations

import dataclasses
import logging
import posixpath
import threading
from typing import Any, Callable

from ..accesscontroller import utils as acutils
from ..accesscontroller.manifest import CreateAccessControllerOptions, clone_manifest_params
from ..address import Address, is_valid, parse
from ..cache import LevelDownCache
from ..cid import Cid, CidError, decode
from ..events import EventBus, Subscription
from ..iface import (
    AccessControllerConstructor,
    CreateDBOptions,
    DetermineAddressOptions,
    DirectChannelOptions,
    EventPubSubJoin,
    EventPubSubLeave,
    EventPubSubMessage,
    EventPubSubPayload,
    Identity,
    NewStoreOptions,
    Store,
    StoreConstructor,
)
from ..ipfs import MemoryIPFS
from .exchange import HeadsExchanger, make_direct_channel
from .options import CBOR_READ_DEFAULT_TIMEOUT, JSONMessageMarshaler, NewOrbitDBOptions

IN_MEMORY_DIRECTORY = ":memory:"
DEFAULT_ACCESS_CONTROLLER_TYPE = "ipfs"


class _LocalTopic:
    """A topic delivering messages within this process only; it has no remote peers."""

    def __init__(self, name: str):
        self._name = name
        self._bus = EventBus()
        self._emitter = self._bus.emitter(EventPubSubMessage)
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    @property
    def topic(self) -> str:
        return self._name

    def publish(self, message: bytes) -> None:
        self._emitter.emit(EventPubSubMessage(bytes(message)))

    def peers(self) -> list[str]:
        return []

    def _watch(self, types: Any) -> Subscription:
        subscription = self._bus.subscribe(types, buffer_size=None)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def watch_peers(self) -> Subscription:
        return self._watch((EventPubSubJoin, EventPubSubLeave))

    def watch_messages(self) -> Subscription:
        return self._watch(EventPubSubMessage)

    def close(self) -> None:
        with self._lock:
            subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.close()
        self._emitter.close()


class _LocalPubSub:
    """Process-local pub/sub used when no other implementation is given."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._topics: dict[str, _LocalTopic] = {}

    def topic_subscribe(self, topic: str) -> _LocalTopic:
        with self._lock:
            if topic not in self._topics:
                self._topics[topic] = _LocalTopic(topic)
            return self._topics[topic]

    def close(self) -> None:
        with self._lock:
            topics, self._topics = list(self._topics.values()), {}
        for topic in topics:
            topic.close()


class _LoopbackDirectChannel:
    """A direct channel that only reaches its own peer."""

    def __init__(self, peer_id: str, emitter: Any):
        self._peer_id = peer_id
        self._emitter = emitter

    def connect(self, peer: str) -> None:
        if peer != self._peer_id:
            raise ConnectionError(f"peer {peer} is not reachable")

    def send(self, peer: str, data: bytes) -> None:
        self.connect(peer)
        self._emitter.emit(EventPubSubPayload(payload=bytes(data), peer=self._peer_id))

    def close(self) -> None:
        self._emitter.close()


def _loopback_factory(peer_id: str) -> Callable[[Any, DirectChannelOptions], _LoopbackDirectChannel]:
    def factory(emitter: Any, options: DirectChannelOptions) -> _LoopbackDirectChannel:
        return _LoopbackDirectChannel(peer_id, emitter)

    return factory


def _manifest_cache_key(db_address: Address) -> str:
    return posixpath.join(str(db_address), "_manifest")


def _create_db_manifest(ipfs: MemoryIPFS, name: str, store_type: str, ac_address: str) -> Cid:
    manifest = {
        "name": name,
        "type": store_type,
        "accessController": posixpath.normpath(posixpath.join("/ipfs", ac_address)),
    }
    return ipfs.write_cbor(manifest)


class BaseOrbitDB:
    """Creates and opens stores, and keeps the registries of store and controller types."""

    def __init__(
        self,
        ipfs: MemoryIPFS,
        identity: Identity,
        peer_id: str,
        options: NewOrbitDBOptions,
        event_bus: EventBus,
        direct_channel: Any,
    ):
        self._ipfs = ipfs
        self._identity = identity
        self._peer_id = peer_id
        self._pubsub = options.pubsub
        self._cache = options.cache
        self._directory = options.directory
        self._keystore = options.keystore
        self._close_keystore = options.close_keystore
        self._logger = options.logger
        self._event_bus = event_bus
        self._message_marshaler = options.message_marshaler
        self._lock = threading.RLock()
        self._stores: dict[str, Store] = {}
        self._store_types: dict[str, StoreConstructor] = {}
        self._access_controller_types: dict[str, AccessControllerConstructor] = {}
        self._closed = False
        self._exchanger = HeadsExchanger(
            peer_id, direct_channel, self._message_marshaler, self._get_store, self._logger
        )
        self._exchanger.monitor_direct_channel(event_bus)

    @classmethod
    def _from_options(cls, ipfs: MemoryIPFS | None, options: NewOrbitDBOptions | None):
        if ipfs is None:
            raise ValueError("ipfs is a required argument")
        options = dataclasses.replace(options) if options is not None else NewOrbitDBOptions()
        self_id = ipfs.peer_id

        if options.directory is None:
            options.directory = IN_MEMORY_DIRECTORY
        if options.id is None:
            options.id = self_id
        if options.identity is None:
            options.identity = Identity(id=options.id, type="orbitdb")
        if options.logger is None:
            options.logger = logging.getLogger("orbitdb")
        if options.peer_id is None:
            options.peer_id = self_id
        if options.direct_channel_factory is None:
            options.direct_channel_factory = _loopback_factory(options.peer_id)

        event_bus = EventBus()
        try:
            direct_channel = make_direct_channel(
                event_bus,
                options.direct_channel_factory,
                DirectChannelOptions(logger=options.logger),
            )
        except Exception as err:
            raise RuntimeError(f"unable to create a direct connection with peer: {err}") from err

        if options.message_marshaler is None:
            options.message_marshaler = JSONMessageMarshaler()
        if options.pubsub is None:
            options.pubsub = _LocalPubSub()
        if options.cache is None:
            options.cache = LevelDownCache()

        return cls(ipfs, options.identity, options.peer_id, options, event_bus, direct_channel)

    # accessors

    @property
    def ipfs(self) -> MemoryIPFS:
        return self._ipfs

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def peer_id(self) -> str:
        return self._peer_id

    @property
    def keystore(self) -> Any:
        return self._keystore

    @property
    def cache(self) -> Any:
        return self._cache

    @property
    def directory(self) -> str:
        return self._directory

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    # registries

    def register_store_type(self, store_type: str, constructor: StoreConstructor) -> None:
        with self._lock:
            self._store_types[store_type] = constructor

    def unregister_store_type(self, store_type: str) -> None:
        with self._lock:
            self._store_types.pop(store_type, None)

    def _store_type_names(self) -> list[str]:
        with self._lock:
            return list(self._store_types)

    def _get_store_constructor(self, store_type: str) -> StoreConstructor | None:
        with self._lock:
            return self._store_types.get(store_type)

    def register_access_controller_type(self, constructor: AccessControllerConstructor) -> None:
        """Register a controller constructor under its ``controller_type``."""
        if constructor is None:
            raise ValueError("accessController class needs to be given as an option")
        controller_type = getattr(constructor, "controller_type", "")
        if not controller_type:
            raise ValueError("controller type cannot be empty")
        with self._lock:
            self._access_controller_types[controller_type] = constructor

    def unregister_access_controller_type(self, controller_type: str) -> None:
        with self._lock:
            self._access_controller_types.pop(controller_type, None)

    def get_access_controller_type(self, controller_type: str) -> AccessControllerConstructor | None:
        with self._lock:
            return self._access_controller_types.get(controller_type)

    def _get_store(self, address: str) -> Store | None:
        with self._lock:
            return self._stores.get(address)

    # stores

    def create(self, name: str, store_type: str, options: CreateDBOptions | None = None) -> Store:
        """Create a new store; fails if it exists locally unless overwrite is set."""
        options = dataclasses.replace(options) if options is not None else CreateDBOptions()
        if options.directory is None:
            options.directory = self._directory

        self._logger.debug("creating database '%s' as %s in '%s'", name, store_type, self._directory)

        db_address = self.determine_address(
            name, store_type, DetermineAddressOptions(access_controller=options.access_controller)
        )

        cache = self._load_cache(self._directory, db_address)
        if self._have_local_data(cache, db_address) and not options.overwrite:
            raise ValueError(f"database {db_address} already exists")

        self._add_manifest_to_cache(self._directory, db_address)
        self._logger.debug("created database '%s'", db_address)
        return self.open(str(db_address), options)

    def open(self, db_address: str, options: CreateDBOptions | None = None) -> Store:
        """Open a store from its address, or create it from a name when allowed."""
        options = dataclasses.replace(options) if options is not None else CreateDBOptions()
        self._logger.debug("open orbitdb store %s", db_address)

        if not options.timeout:
            options.timeout = CBOR_READ_DEFAULT_TIMEOUT
        if options.local_only is None:
            options.local_only = False
        if options.create is None:
            options.create = False

        directory = options.directory if options.directory is not None else self._directory

        if not is_valid(db_address):
            if not options.create:
                raise ValueError(
                    "'options.Create' set to 'false'. If you want to create a database, "
                    "set 'options.Create' to 'true'"
                )
            if not options.store_type:
                raise ValueError(
                    "database type not provided! Provide a type with 'options.StoreType' "
                    f"({'|'.join(self._store_type_names())})"
                )
            self._logger.debug("not a valid address '%s', creating the database", db_address)
            options.overwrite = True
            return self.create(db_address, options.store_type, options)

        parsed = parse(db_address)

        cache = self._load_cache(directory, parsed)
        if options.local_only and not self._have_local_data(cache, parsed):
            raise ValueError(f"database {db_address} doesn't exist!")

        try:
            manifest = self._ipfs.read_cbor(parsed.root)
        except (LookupError, ValueError) as err:
            raise ValueError(f"unable to fetch database manifest: {err}") from err
        if (
            not isinstance(manifest, dict)
            or not isinstance(manifest.get("type"), str)
            or not isinstance(manifest.get("accessController", ""), str)
        ):
            raise ValueError("unable to unmarshal manifest")

        options.access_controller_address = manifest.get("accessController", "")
        return self._create_store(manifest["type"], parsed, options)

    def determine_address(
        self, name: str, store_type: str, options: DetermineAddressOptions | None = None
    ) -> Address:
        """Return the address a store of this name and type would have."""
        if options is None:
            options = DetermineAddressOptions()
        if options.only_hash is None:
            options.only_hash = True

        if self._get_store_constructor(store_type) is None:
            raise ValueError("invalid database type")
        if is_valid(name):
            raise ValueError(
                "given database name is an address, give only the name of the database"
            )

        if options.access_controller is None:
            options.access_controller = CreateAccessControllerOptions()
        params = options.access_controller
        if not params.name:
            params.name = name
        if not params.type:
            params.type = DEFAULT_ACCESS_CONTROLLER_TYPE

        try:
            ac_address = acutils.create(self, params.type, params, self._logger)
        except Exception as err:
            raise ValueError(f"unable to create access controller: {err}") from err

        manifest_hash = _create_db_manifest(
            self._ipfs, name, store_type, ac_address.encode() if ac_address is not None else ""
        )
        return parse(posixpath.normpath(posixpath.join("/orbitdb", manifest_hash.encode(), name)))

    def _load_cache(self, directory: str, db_address: Address) -> Any:
        try:
            return self._cache.load(directory, db_address)
        except Exception as err:
            raise RuntimeError(f"unable to load cache: {err}") from err

    def _have_local_data(self, cache: Any, db_address: Address) -> bool:
        if cache is None:
            self._logger.debug("have_local_data: no cache provided")
            return False
        try:
            return bool(cache.has(_manifest_cache_key(db_address)))
        except Exception as err:  # noqa: BLE001 - an unreadable cache means no local data
            self._logger.error("have_local_data: error while getting value from cache: %s", err)
            return False

    def _add_manifest_to_cache(self, directory: str, db_address: Address) -> None:
        cache = self._load_cache(directory, db_address)
        cache.put(_manifest_cache_key(db_address), db_address.root.encode().encode("utf-8"))

    def _create_store(self, store_type: str, parsed: Address, options: CreateDBOptions) -> Store:
        constructor = self._get_store_constructor(store_type)
        if constructor is None:
            raise ValueError(f"store type {store_type} is not supported")

        access_controller = None
        ac_address = options.access_controller_address
        if ac_address.startswith("/ipfs/"):
            ac_address = ac_address[len("/ipfs/"):]
        options.access_controller_address = ac_address

        if ac_address:
            self._logger.debug("access controller address is %s", ac_address)
            try:
                cid: Cid | None = decode(ac_address)
            except CidError:
                cid = None
            if options.access_controller is None:
                params = CreateAccessControllerOptions()
            else:
                params = clone_manifest_params(options.access_controller)
            params.address = cid
            try:
                access_controller = acutils.resolve(self, ac_address, params, self._logger)
            except Exception as err:
                raise ValueError(f"unable to acquire an access controller: {err}") from err

        cache = self._load_cache(self._directory, parsed)

        if options.replicate is None:
            options.replicate = True
        options.keystore = self._keystore
        options.cache = cache
        identity = options.identity if options.identity is not None else self._identity
        if options.directory is None:
            options.directory = self._directory

        store = constructor(
            self._ipfs,
            identity,
            parsed,
            NewStoreOptions(
                access_controller=access_controller,
                cache=cache,
                replicate=options.replicate,
                directory=options.directory,
                sort_fn=options.sort_fn,
                cache_destroy=lambda: self._cache.destroy(self._directory, parsed),
                logger=self._logger,
                io=options.io,
                store_specific_opts=options.store_specific_opts,
            ),
        )

        topic = self._pubsub.topic_subscribe(str(parsed))
        with self._lock:
            self._stores[str(parsed)] = store

        if options.replicate:
            self._exchanger.store_listener(store, topic)
            self._exchanger.pubsub_listener(store, topic, parsed)

        return store

    def close(self) -> None:
        """Close every store, the direct channel, the cache and the keystore."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            stores, self._stores = list(self._stores.values()), {}

        for store in stores:
            try:
                store.close()
            except Exception as err:  # noqa: BLE001 - closing continues past failures
                self._logger.error("unable to close store: %s", err)

        self._exchanger.close()

        close_pubsub = getattr(self._pubsub, "close", None)
        if callable(close_pubsub):
            try:
                close_pubsub()
            except Exception as err:  # noqa: BLE001
                self._logger.error("unable to close pubsub: %s", err)

        try:
            self._cache.close()
        except Exception as err:  # noqa: BLE001
            self._logger.error("unable to close cache: %s", err)

        if self._close_keystore is not None:
            try:
                self._close_keystore()
            except Exception as err:  # noqa: BLE001
                self._logger.error("unable to close key store: %s", err)

    def __enter__(self) -> BaseOrbitDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def new_base_orbitdb(ipfs: MemoryIPFS | None, options: NewOrbitDBOptions | None = None) -> BaseOrbitDB:
    """Create a database instance with no store or controller types registered."""
    return BaseOrbitDB._from_options(ipfs, options)
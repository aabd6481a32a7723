# orbitdb

A library that manages databases whose manifests and access-controller
descriptions live in content-addressed storage. Databases are named by
addresses of the form `/orbitdb/<manifest CID>/<name>`, are created and
opened through one `OrbitDB` instance, and are guarded by pluggable access
controllers. Store implementations themselves are supplied by you and
registered by type name.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Building blocks

### Addresses

`orbitdb.address` parses and checks database addresses. The leading
`/orbitdb/` is optional; the first path component must be a valid CID.

```python
from orbitdb.address import parse, is_valid, InvalidAddressError

addr = parse("/orbitdb/bafyreieecvmpthaoyasxzhnew2d25uaebwldeokea2wigyq5wr4dwiaimi/first-database")
print(addr.path)  # first-database
print(str(addr))  # /orbitdb/bafyreieecvmpthaoyasxzhnew2d25uaebwldeokea2wigyq5wr4dwiaimi/first-database

print(is_valid(""))  # False

try:
    parse("")
except InvalidAddressError as exc:
    print(exc)  # not a valid OrbitDB address:
```

### Content identifiers

`orbitdb.cid` provides the `Cid` dataclass (version 0 and 1), `decode(text)`
for base58, base32 and hex string forms, `Cid.encode()` for the canonical
string, and `cid_for_cbor(data)` for the dag-cbor/sha2-256 identifier of an
encoded CBOR block. Malformed input raises `CidError`.

### Content-addressed storage

`orbitdb.ipfs.MemoryIPFS` is an in-process block store. `write_cbor(obj)`
encodes an object as canonical CBOR, stores it and returns its `Cid`;
`Cid` values inside objects are written as CBOR links and read back as
`Cid`. `read_cbor(cid)` accepts a `Cid` or its string form and raises
`BlockNotFoundError` for unknown blocks. Each instance has a `peer_id`.

### Events

`orbitdb.events.EventBus` routes events from typed `Emitter`s
(`bus.emitter(EventType, stateful=False)`) to `Subscription`s
(`bus.subscribe(EventType or [types] or WILDCARD, buffer_size=16)`).
A stateful emitter replays its last event to new subscribers. A
subscription can be iterated or polled with `get(timeout)`, which raises
`TimeoutError` when nothing arrives in time and returns `None` once closed.

`EventEmitter` is a simpler broadcaster: `emit(event)` delivers any object,
in order, to every subscription made with `subscribe()` before the event was
emitted; `global_channel()` returns one shared subscription;
`unsubscribe_all()` closes them all; `set_bus(bus)` fails if a bus is
already in use.

### Local cache

`orbitdb.cache.LevelDownCache` hands out one datastore per database address
and directory. The directory `":memory:"` gives a `MemoryDatastore`; any
other directory gives a `SqliteDatastore` in the directory
`datastore_key(directory, address)`. Datastores offer `get` (raising
`KeyError` for missing keys), `put`, `has`, `delete` and `close`.
`destroy(directory, address)` closes a database's datastore and removes its
directory.

### Access controllers

Three controller types come with the package, each with a constructor
`new_..._access_controller(db, params, logger)`:

- `ipfs` (`orbitdb.accesscontroller.ipfs`): a fixed list of writers saved as
  a block; the database identity is the writer by default. `grant`,
  `revoke` and `close` raise `RuntimeError`.
- `orbitdb` (`orbitdb.accesscontroller.orbitdb`): roles kept as JSON lists in
  a key-value store opened through the database's `key_value`, so access can
  be granted and revoked later; every writer also counts as admin. It needs a
  `"keyvalue"` store type to be registered.
- `simple` (`orbitdb.accesscontroller.simple`): a fixed in-memory list with
  no persistence; `grant` and `revoke` do nothing.

Every controller accepts the key `"*"` as "anyone may write", and
`can_append` raises `PermissionError` for an entry whose identity is not
allowed. Parameters are described with
`orbitdb.accesscontroller.manifest.CreateAccessControllerOptions`
(`type`, `name`, `address`, `skip_manifest`, `access`).
`orbitdb.accesscontroller.utils.create` saves a controller and returns its
manifest CID, `resolve` turns a manifest address back into a loaded
controller, and `ensure_address` appends `/_access` to an address.

## Opening databases

`orbitdb.db.new_orbitdb(ipfs, options)` builds an `OrbitDB` with the `ipfs`,
`orbitdb` and `simple` controllers registered. Store types are registered
with `register_store_type(name, constructor)`; a constructor is called as
`constructor(ipfs, identity, address, NewStoreOptions)`. `OrbitDB.log`,
`OrbitDB.key_value` and `OrbitDB.docs` open, creating where needed, stores
of the types `"eventlog"`, `"keyvalue"` and `"docstore"`, and raise
`TypeError` if the opened store has another type.

```python
from orbitdb.db import new_orbitdb
from orbitdb.iface import CreateDBOptions
from orbitdb.ipfs import MemoryIPFS


class NoteStore:
    type = "eventlog"

    def __init__(self, ipfs, identity, address, options):
        self.address = address
        self.identity = identity
        self.access_controller = options.access_controller
        self.cache = options.cache

    def close(self):
        pass


with new_orbitdb(MemoryIPFS()) as db:
    db.register_store_type("eventlog", NoteStore)
    store = db.log("notes", CreateDBOptions(replicate=False))
    print(str(store.address))  # /orbitdb/bafy.../notes
    print(store.access_controller.get_authorized_by_role("write") == [db.identity.id])  # True
```

`BaseOrbitDB` (from `orbitdb.baseorbitdb.core`, also built by
`new_base_orbitdb`) has no types registered and exposes `create`, `open`,
`determine_address` and `close`:

- `determine_address` and `create` raise `ValueError` for an unknown store
  type or a name that is already an address; `create` also refuses a
  database already recorded in the local cache unless `overwrite` is set.
- `open` on a plain name requires `create=True` and a `store_type`; on an
  address it reads the database manifest, resolves its access controller and
  builds the store.

Options are plain dataclasses: `NewOrbitDBOptions`
(`orbitdb.baseorbitdb.options`) for the instance — directory, identity,
cache, pub/sub, direct channel factory, message marshaler, logger — and
`CreateDBOptions`, `DetermineAddressOptions` (`orbitdb.iface`) per store.
The default directory is `":memory:"` and the default message marshaler is
`JSONMessageMarshaler`.

When `replicate` is on (the default), the store must have an `event_bus`:
heads of its `EventWrite` events are published on a topic named after the
store address while the topic has peers, heads arriving on the topic are
merged with `store.sync`, and cached local heads are sent to each joining
peer over the direct channel (`orbitdb.baseorbitdb.exchange.HeadsExchanger`).

## What this package does not do

- It contains no store implementations: no event log, key-value or document
  store. You supply them with `register_store_type`.
- It has no networking. Unless you pass your own `pubsub` and
  `direct_channel_factory`, topics only deliver within the process and have
  no peers, and the direct channel only reaches its own peer.
- It has no keystore and signs nothing: an `Identity` is a plain record,
  and controllers pass it to the identity provider you give to `can_append`.
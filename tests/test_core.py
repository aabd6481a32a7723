import time

import pytest

from orbitdb.accesscontroller.ipfs import new_ipfs_access_controller
from orbitdb.accesscontroller.manifest import CreateAccessControllerOptions
from orbitdb.accesscontroller.simple import new_simple_access_controller
from orbitdb.baseorbitdb.core import new_base_orbitdb
from orbitdb.baseorbitdb.options import JSONMessageMarshaler, NewOrbitDBOptions
from orbitdb.cache import LevelDownCache
from orbitdb.events import EventBus
from orbitdb.iface import (
    CreateDBOptions,
    DetermineAddressOptions,
    EventPubSubPayload,
    Identity,
    MessageExchangeHeads,
)
from orbitdb.ipfs import MemoryIPFS


class FakeStore:
    type = "eventlog"

    def __init__(self, ipfs, identity, address, options):
        self.ipfs = ipfs
        self.identity = identity
        self.address = address
        self.options = options
        self.access_controller = options.access_controller
        self.cache = options.cache
        self.event_bus = EventBus()
        self.db_name = address.path
        self.closed = False
        self.dropped = False
        self.synced = []

    def close(self):
        self.closed = True

    def drop(self):
        self.dropped = True

    def load(self, amount):
        pass

    def sync(self, heads):
        self.synced.append(list(heads))


class RecordingChannel:
    def __init__(self):
        self.closed = False
        self.sent = []

    def connect(self, peer):
        pass

    def send(self, peer, data):
        self.sent.append((peer, data))

    def close(self):
        self.closed = True


def _setup(db):
    db.register_store_type("eventlog", FakeStore)
    db.register_access_controller_type(new_ipfs_access_controller)
    db.register_access_controller_type(new_simple_access_controller)
    return db


@pytest.fixture
def orbit():
    db = _setup(new_base_orbitdb(MemoryIPFS(), NewOrbitDBOptions(cache=LevelDownCache())))
    yield db
    db.close()


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_requires_ipfs():
    with pytest.raises(ValueError, match="ipfs is a required argument"):
        new_base_orbitdb(None, None)


def test_create_invalid_type(orbit):
    with pytest.raises(ValueError, match="invalid database type"):
        orbit.create("first", "invalid-type", None)


def test_create_with_address_instead_of_name(orbit):
    with pytest.raises(ValueError, match="given database name is an address"):
        orbit.create(
            "/orbitdb/Qmc9PMho3LwTXSaUXJ8WjeBZyXesAwUofdkGeadFXsqMzW/first", "eventlog", None
        )


def test_create_existing_database(orbit):
    orbit.create("first", "eventlog", CreateDBOptions(replicate=False))
    with pytest.raises(ValueError, match="already exists"):
        orbit.create("first", "eventlog", CreateDBOptions(replicate=False))


def test_database_has_correct_address(orbit):
    db = orbit.create("second", "eventlog", CreateDBOptions(replicate=False))
    address = str(db.address)
    assert address.startswith("/orbitdb")
    assert "bafy" in address
    assert "second" in address
    assert db.address.path == "second"


def test_saves_manifest_reference_locally(orbit):
    db = orbit.create("second", "eventlog", CreateDBOptions(replicate=False))
    datastore = orbit.cache.load(orbit.directory, db.address)
    value = datastore.get(f"{db.address}/_manifest")
    assert bytes(value).decode() == db.address.root.encode()


def test_saves_manifest_file(orbit):
    db = orbit.create("second", "eventlog", CreateDBOptions(replicate=False))
    manifest = orbit.ipfs.read_cbor(db.address.root)
    assert manifest["name"] == "second"
    assert manifest["type"] == "eventlog"
    assert manifest["accessController"].startswith("/ipfs")


def test_default_access_controller_has_creator_as_writer(orbit):
    db = orbit.create("fourth", "eventlog", None)
    assert db.access_controller.get_authorized_by_role("write") == [orbit.identity.id]


def test_access_controller_with_writers(orbit):
    access = CreateAccessControllerOptions(
        access={"write": ["another-key", "yet-another-key", orbit.identity.id]}
    )
    db = orbit.create(
        "fourth", "eventlog", CreateDBOptions(access_controller=access, overwrite=True)
    )
    assert db.access_controller.get_authorized_by_role("write") == [
        "another-key",
        "yet-another-key",
        orbit.identity.id,
    ]


def test_determine_address_invalid_type(orbit):
    with pytest.raises(ValueError, match="invalid database type"):
        orbit.determine_address("first", "invalid-type", None)


def test_determine_address_rejects_address(orbit):
    with pytest.raises(
        ValueError,
        match="given database name is an address, give only the name of the database",
    ):
        orbit.determine_address(
            "/orbitdb/Qmc9PMho3LwTXSaUXJ8WjeBZyXesAwUofdkGeadFXsqMzW/first", "eventlog", None
        )


def test_determine_address_matches_created_and_is_not_saved(orbit):
    address = orbit.determine_address(
        "third", "eventlog", DetermineAddressOptions(replicate=False)
    )
    datastore = orbit.cache.load(orbit.directory, address)
    assert not datastore.has(f"{address}/_manifest")

    db = orbit.create("third", "eventlog", CreateDBOptions(replicate=False))
    assert str(address).startswith("/orbitdb")
    assert "bafy" in str(address)
    assert str(address) == str(db.address)


def test_open_name_without_create(orbit):
    with pytest.raises(ValueError, match="'options.Create' set to 'false'"):
        orbit.open("XXX", CreateDBOptions(create=False, store_type="eventlog"))


def test_open_name_without_store_type(orbit):
    with pytest.raises(
        ValueError, match="database type not provided! Provide a type with 'options.StoreType'"
    ):
        orbit.open("YYY", CreateDBOptions(create=True))


def test_open_name_only(orbit):
    orbit.open("abc", CreateDBOptions(create=True, store_type="eventlog"))
    db = orbit.open("abc", CreateDBOptions(create=True, store_type="eventlog", overwrite=True))
    assert str(db.address).startswith("/orbitdb")
    assert "bafy" in str(db.address)
    assert "abc" in str(db.address)


def test_open_with_different_identity(orbit):
    identity = Identity(id="test-id")
    db = orbit.open(
        "abc",
        CreateDBOptions(create=True, store_type="eventlog", overwrite=True, identity=identity),
    )
    assert "abc" in str(db.address)
    assert db.identity == identity


def test_open_same_database_from_address(orbit):
    first = orbit.open("abc", CreateDBOptions(create=True, store_type="eventlog"))
    second = orbit.open(str(first.address), None)
    assert str(second.address) == str(first.address)
    assert "abc" in str(second.address)


def test_open_adds_creator_as_only_writer(orbit):
    db = orbit.open("abc", CreateDBOptions(create=True, store_type="eventlog", overwrite=True))
    allowed = db.access_controller.get_authorized_by_role("write")
    assert allowed == [db.identity.id]


def test_open_local_only_missing(orbit):
    address = orbit.determine_address("ghost", "eventlog", None)
    with pytest.raises(ValueError, match="doesn't exist"):
        orbit.open(str(address), CreateDBOptions(local_only=True))


def test_open_unsupported_store_type(orbit):
    db = orbit.create("x", "eventlog", None)
    orbit.unregister_store_type("eventlog")
    with pytest.raises(ValueError, match="store type eventlog is not supported"):
        orbit.open(str(db.address), None)


def test_access_controller_registry(orbit):
    assert orbit.get_access_controller_type("ipfs") is new_ipfs_access_controller
    orbit.unregister_access_controller_type("ipfs")
    assert orbit.get_access_controller_type("ipfs") is None
    with pytest.raises(ValueError, match="accessController class"):
        orbit.register_access_controller_type(None)
    with pytest.raises(ValueError, match="controller type cannot be empty"):
        orbit.register_access_controller_type(lambda db, params, logger: None)


def test_close_closes_stores(orbit):
    db = orbit.create("closing", "eventlog", None)
    orbit.close()
    assert db.closed is True


def test_direct_channel_payload_syncs_store():
    captured = {}
    channel = RecordingChannel()

    def factory(emitter, options):
        captured["emitter"] = emitter
        return channel

    db = _setup(new_base_orbitdb(MemoryIPFS(), NewOrbitDBOptions(direct_channel_factory=factory)))
    try:
        store = db.create("exchange", "eventlog", None)
        payload = JSONMessageMarshaler().marshal(
            MessageExchangeHeads(address=str(store.address), heads=[{"hash": "h1"}])
        )
        captured["emitter"].emit(EventPubSubPayload(payload=payload, peer="peer-b"))
        assert _wait_for(lambda: store.synced)
        assert store.synced == [[{"hash": "h1"}]]
    finally:
        db.close()
    assert channel.closed is True
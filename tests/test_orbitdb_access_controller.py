import json
from types import SimpleNamespace

import pytest

from orbitdb.accesscontroller.manifest import CreateAccessControllerOptions
from orbitdb.accesscontroller.orbitdb import (
    EventUpdated,
    OrbitDBAccessController,
    new_orbitdb_access_controller,
)
from orbitdb.address import Address
from orbitdb.cid import cid_for_cbor
from orbitdb.events import EventBus
from orbitdb.iface import Identity


class EventWrite:
    pass


class FakeKV:
    def __init__(self, name):
        self.name = name
        self.data = {}
        self.closed = False
        self.loaded = []
        self.event_bus = EventBus()
        self.address = Address(root=cid_for_cbor(name.encode()), path=name)

    def all(self):
        return dict(self.data)

    def put(self, key, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)

    def close(self):
        self.closed = True

    def load(self, amount):
        self.loaded.append(amount)


class FakeDB:
    def __init__(self):
        self.identity = Identity(id="self-id")
        self.event_bus = EventBus()
        self.opened = []

    def key_value(self, address, options):
        self.opened.append((address, options))
        return FakeKV(address)


class FakeProvider:
    def verify_identity(self, identity):
        return ("verified", identity.id)


def entry_of(identity_id):
    return SimpleNamespace(identity=Identity(id=identity_id))


def make(write=(), **kwargs):
    db = FakeDB()
    params = CreateAccessControllerOptions(**kwargs)
    if write:
        params.set_access("write", list(write))
    return db, new_orbitdb_access_controller(db, params)


def test_grants_write_keys_on_creation():
    _, ac = make(write=["a", "b"])
    assert ac.get_authorized_by_role("write") == ["a", "b"]
    assert json.loads(ac.kv_store.data["write"]) == ["a", "b"]


def test_admin_includes_writers():
    _, ac = make(write=["a", "b"])
    assert set(ac.get_authorized_by_role("admin")) == {"a", "b"}


def test_unknown_role_is_empty():
    _, ac = make(write=["a"])
    assert ac.get_authorized_by_role("read") == []


def test_default_store_address():
    db, _ = make()
    assert db.opened[0] == ("default-access-controller", None)


def test_store_address_from_name():
    db, _ = make(name="my-db")
    assert db.opened[0][0] == "my-db"


def test_store_address_from_address():
    cid = cid_for_cbor(b"controller")
    db, _ = make(address=cid, name="ignored")
    assert db.opened[0][0] == str(cid)


def test_can_append_verifies_identity():
    _, ac = make(write=["writer"])
    assert ac.can_append(entry_of("writer"), FakeProvider()) == ("verified", "writer")


def test_can_append_rejects_unknown_key():
    _, ac = make(write=["writer"])
    with pytest.raises(PermissionError, match="unauthorized"):
        ac.can_append(entry_of("stranger"), FakeProvider())


def test_wildcard_allows_everyone():
    _, ac = make(write=["*"])
    assert ac.can_append(entry_of("anyone"), FakeProvider()) == ("verified", "anyone")


def test_grant_appends_key():
    _, ac = make(write=["a"])
    ac.grant("write", "b")
    assert ac.get_authorized_by_role("write") == ["a", "b"]


def test_revoke_removes_key():
    _, ac = make(write=["a", "b"])
    ac.revoke("write", "a")
    assert ac.get_authorized_by_role("write") == ["b"]


def test_revoke_last_key_deletes_role():
    _, ac = make(write=["a"])
    ac.revoke("write", "a")
    assert "write" not in ac.kv_store.all()
    assert ac.get_authorized_by_role("write") == []


def test_invalid_json_raises():
    _, ac = make()
    ac.kv_store.data["write"] = b"not json"
    with pytest.raises(ValueError, match="unable to unmarshal json"):
        ac.get_authorized_by_role("write")


def test_save_points_at_store_root():
    _, ac = make(write=["a"])
    params = ac.save()
    assert params.address == ac.kv_store.address.root
    assert params.type == "orbitdb"
    assert params.skip_manifest is False


def test_load_opens_access_store_with_db_identity():
    db, ac = make()
    first = ac.kv_store
    ac.load("some-db")
    address, options = db.opened[-1]
    assert address == "some-db/_access"
    assert options.access_controller.type == "ipfs"
    assert options.access_controller.skip_manifest is True
    assert options.access_controller.get_access("write") == ["self-id"]
    assert first.closed is True
    assert ac.kv_store.loaded == [-1]
    ac.close()


def test_load_uses_admin_keys():
    db = FakeDB()
    params = CreateAccessControllerOptions()
    params.set_access("admin", ["boss"])
    ac = new_orbitdb_access_controller(db, params)
    ac.load("x/_access")
    address, options = db.opened[-1]
    assert address == "x/_access"
    assert options.access_controller.get_access("write") == ["boss"]
    ac.close()


def test_store_write_emits_updated():
    db, ac = make()
    updates = db.event_bus.subscribe(EventUpdated)
    ac.load("db")
    emitter = ac.kv_store.event_bus.emitter(EventWrite)
    emitter.emit(EventWrite())
    assert updates.get(timeout=2) == EventUpdated()
    ac.close()
    updates.close()


def test_close_closes_store():
    _, ac = make()
    ac.close()
    assert ac.kv_store.closed is True


def test_type_and_address():
    _, ac = make()
    assert ac.type == "orbitdb"
    assert ac.address == ac.kv_store.address
    assert isinstance(ac, OrbitDBAccessController)


def test_requires_db():
    with pytest.raises(ValueError, match="an OrbitDB instance is required"):
        new_orbitdb_access_controller(None, CreateAccessControllerOptions())


def test_requires_key_value_provider():
    with pytest.raises(TypeError, match="key value store"):
        new_orbitdb_access_controller(object(), CreateAccessControllerOptions())
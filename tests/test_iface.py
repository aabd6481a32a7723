import dataclasses

import pytest

from orbitdb.accesscontroller.manifest import CreateAccessControllerOptions
from orbitdb.iface import (
    CreateDBOptions,
    DetermineAddressOptions,
    DirectChannel,
    DirectChannelOptions,
    EventPubSubJoin,
    EventPubSubLeave,
    EventPubSubMessage,
    EventPubSubPayload,
    Identity,
    MessageExchangeHeads,
    MessageMarshaler,
    NewStoreOptions,
    PubSubInterface,
    PubSubTopic,
    Store,
    StreamOptions,
)


def test_create_db_options_defaults_are_unset():
    options = CreateDBOptions()
    assert options.create is None
    assert options.overwrite is None
    assert options.local_only is None
    assert options.replicate is None
    assert options.store_type is None
    assert options.access_controller_address == ""
    assert options.timeout == 0.0


def test_create_db_options_carry_values():
    access = CreateAccessControllerOptions(access={"write": ["key-a"]})
    options = CreateDBOptions(create=True, store_type="eventlog", access_controller=access)
    assert options.create is True
    assert options.store_type == "eventlog"
    assert options.access_controller.get_access("write") == ["key-a"]


def test_determine_address_and_stream_options_defaults():
    determine = DetermineAddressOptions()
    stream = StreamOptions(amount=-1)
    assert determine.only_hash is None
    assert determine.access_controller is None
    assert stream.amount == -1
    assert stream.gt is None and stream.lte is None


def test_new_store_options_defaults():
    options = NewStoreOptions(directory=":memory:")
    assert options.directory == ":memory:"
    assert options.replication_concurrency == 0
    assert options.access_controller is None
    assert DirectChannelOptions().logger is None


def test_message_heads_default_lists_are_independent():
    first = MessageExchangeHeads(address="/orbitdb/a")
    second = MessageExchangeHeads(address="/orbitdb/a")
    first.heads.append({"hash": "h"})
    assert second.heads == []
    assert first != second


def test_events_compare_by_value():
    assert EventPubSubJoin("topic", "peer-a") == EventPubSubJoin("topic", "peer-a")
    assert EventPubSubJoin("topic", "peer-a") != EventPubSubLeave("topic", "peer-a")
    assert EventPubSubPayload(b"data", "peer-a").payload == b"data"
    assert EventPubSubMessage(b"msg").content == b"msg"


def test_events_are_immutable():
    event = EventPubSubJoin("topic", "peer-a")
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.peer = "peer-b"
    assert event.peer == "peer-a"
    assert event.topic == "topic"


def test_identity_is_immutable_and_defaults_type():
    identity = Identity(id="id-a")
    assert identity.type == "orbitdb"
    with pytest.raises(dataclasses.FrozenInstanceError):
        identity.id = "id-b"
    assert identity.id == "id-a"


class _JsonishMarshaler:
    def marshal(self, message):
        return message.address.encode()

    def unmarshal(self, data):
        return MessageExchangeHeads(address=data.decode())


class _Channel:
    def __init__(self):
        self.sent = []

    def connect(self, peer):
        pass

    def send(self, peer, data):
        self.sent.append((peer, data))

    def close(self):
        pass


def test_marshaler_protocol_matches_implementations():
    marshaler = _JsonishMarshaler()
    assert isinstance(marshaler, MessageMarshaler)
    assert not isinstance(object(), MessageMarshaler)
    message = marshaler.unmarshal(marshaler.marshal(MessageExchangeHeads(address="addr")))
    assert message.address == "addr"


def test_direct_channel_protocol_matches_implementations():
    channel = _Channel()
    assert isinstance(channel, DirectChannel)
    assert not isinstance(_JsonishMarshaler(), DirectChannel)
    assert not isinstance(channel, PubSubInterface)
    assert not isinstance(channel, PubSubTopic)
    assert not isinstance(channel, Store)

    data = _JsonishMarshaler().marshal(MessageExchangeHeads(address="/orbitdb/a"))
    channel.send("peer-a", data)
    peer, payload = channel.sent[0]
    event = EventPubSubPayload(payload, peer)
    assert event == EventPubSubPayload(b"/orbitdb/a", "peer-a")
import json

import pytest

from powchain.packet import Packet, PacketError, PacketName, PacketType
from powchain.peer import Peer


SENDER = Peer("abc", 1, "127.0.0.1", 8080)


@pytest.mark.parametrize(
    "packet_type, name, wire_type, wire_name",
    [
        (PacketType.SINGLE, PacketName.JOIN, "SINGLE", "JOIN"),
        (PacketType.SINGLE, PacketName.JOIN_ANSWER, "SINGLE", "JOINANSWER"),
        (PacketType.SINGLE, PacketName.GET_LATEST_BLOCK, "SINGLE", "GETLATESTBLOCK"),
        (PacketType.SINGLE, PacketName.GET_LATEST_BLOCK_ANSWER, "SINGLE", "GETLATESTBLOCKANSWER"),
        (PacketType.SINGLE, PacketName.DOWNLOAD_BLOCK, "SINGLE", "DOWNLOADBLOCK"),
        (PacketType.SINGLE, PacketName.DOWNLOAD_BLOCK_ANSWER, "SINGLE", "DOWNLOADBLOCKANSWER"),
        (PacketType.BROADCAST, PacketName.FOUND_BLOCK, "BROADCAST", "FOUNDBLOCK"),
    ],
)
def test_enum_wire_values(packet_type, name, wire_type, wire_name):
    wire = json.loads(Packet(SENDER, packet_type, name, None).to_json())
    assert wire["type"] == wire_type
    assert wire["name"] == wire_name


def test_round_trip():
    packet = Packet(SENDER, PacketType.SINGLE, PacketName.JOIN, b"{}")
    decoded = Packet.from_json(packet.to_json())
    assert decoded == packet
    assert decoded.type is PacketType.SINGLE
    assert decoded.name is PacketName.JOIN
    assert decoded.index == 0


def test_wire_format():
    packet = Packet(SENDER, PacketType.SINGLE, PacketName.JOIN, b"hello")
    wire = json.loads(packet.to_json())
    assert list(wire) == ["sender", "type", "name", "content", "index"]
    assert wire["content"] == "aGVsbG8="
    assert wire["type"] == "SINGLE"
    assert wire["sender"] == SENDER.to_dict()


def test_none_content_is_null():
    packet = Packet(SENDER, PacketType.SINGLE, PacketName.GET_LATEST_BLOCK, None)
    assert json.loads(packet.to_json())["content"] is None
    assert Packet.from_json(packet.to_json()).content is None


def test_broadcast():
    packet = Packet.broadcast(SENDER, PacketName.FOUND_BLOCK, b"7", 7)
    assert packet.type is PacketType.BROADCAST
    assert packet.index == 7
    assert Packet.from_json(packet.to_json()) == packet


def test_unknown_type_kept_as_text():
    data = b'{"sender":null,"type":"OTHER","name":"WHAT","content":null,"index":0}'
    packet = Packet.from_json(data)
    assert packet.type == "OTHER"
    assert packet.name == "WHAT"
    assert packet.sender is None


def test_null_gives_empty_packet():
    assert Packet.from_json(b"null") == Packet()


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"not json",
        b"[1]",
        b'{"content":"!!!"}',
        b'{"content":5}',
        b'{"index":1.5}',
        b'{"type":3}',
        b'{"sender":"x"}',
    ],
)
def test_from_json_errors(data):
    with pytest.raises(PacketError):
        Packet.from_json(data)


def test_str():
    packet = Packet(SENDER, PacketType.SINGLE, PacketName.JOIN, None)
    assert str(packet) == "Packet{Type: SINGLE, Name: JOIN, Sender: abc}"
"""Packets exchanged between peers and their JSON wire form."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .peer import Peer, PeerError


class PacketError(ValueError):
    """Raised when a packet cannot be decoded."""


class PacketType(str, Enum):
    SINGLE = "SINGLE"
    BROADCAST = "BROADCAST"

    def __str__(self) -> str:
        return self.value


class PacketName(str, Enum):
    JOIN = "JOIN"
    JOIN_ANSWER = "JOINANSWER"
    GET_LATEST_BLOCK = "GETLATESTBLOCK"
    GET_LATEST_BLOCK_ANSWER = "GETLATESTBLOCKANSWER"
    DOWNLOAD_BLOCK = "DOWNLOADBLOCK"
    DOWNLOAD_BLOCK_ANSWER = "DOWNLOADBLOCKANSWER"
    FOUND_BLOCK = "FOUNDBLOCK"

    def __str__(self) -> str:
        return self.value


def _as_enum(enum_type: type[Enum], value: str) -> Any:
    try:
        return enum_type(value)
    except ValueError:
        return value


def _text(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def _string_field(data: dict[str, Any], name: str) -> str:
    value = data.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise PacketError(f"failed to unmarshal packet: field {name} is not a string")
    return value


@dataclass
class Packet:
    """A message between peers; unknown type or name strings are kept as text."""

    sender: Peer | None = None
    type: PacketType | str = ""
    name: PacketName | str = ""
    content: bytes | None = None
    index: int = 0

    @classmethod
    def broadcast(
        cls, sender: Peer | None, name: PacketName | str, content: bytes | None, index: int
    ) -> Packet:
        """Create a broadcast packet carrying a deduplication index."""
        return cls(sender, PacketType.BROADCAST, name, content, index)

    def to_json(self) -> bytes:
        """Serialise to compact JSON; content travels as standard base64."""
        content = None
        if self.content is not None:
            content = base64.b64encode(self.content).decode("ascii")
        payload = {
            "sender": self.sender.to_dict() if self.sender is not None else None,
            "type": _text(self.type),
            "name": _text(self.name),
            "content": content,
            "index": self.index,
        }
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> Packet:
        """Decode a packet from JSON text or bytes."""
        try:
            decoded = json.loads(data)
        except (ValueError, TypeError) as exc:
            raise PacketError(f"failed to unmarshal packet: {exc}") from exc
        if decoded is None:
            return cls()
        if not isinstance(decoded, dict):
            raise PacketError("failed to unmarshal packet: expected a JSON object")

        sender_data = decoded.get("sender")
        try:
            sender = None if sender_data is None else Peer.from_dict(sender_data)
        except PeerError as exc:
            raise PacketError(f"failed to unmarshal packet: {exc}") from exc

        raw_content = decoded.get("content")
        if raw_content is None:
            content = None
        elif isinstance(raw_content, str):
            try:
                content = base64.b64decode(raw_content, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise PacketError(f"failed to unmarshal packet: bad content: {exc}") from exc
        else:
            raise PacketError("failed to unmarshal packet: field content is not a string")

        index = decoded.get("index")
        if index is None:
            index = 0
        elif isinstance(index, bool) or not isinstance(index, int):
            raise PacketError("failed to unmarshal packet: field index is not an integer")

        return cls(
            sender=sender,
            type=_as_enum(PacketType, _string_field(decoded, "type")),
            name=_as_enum(PacketName, _string_field(decoded, "name")),
            content=content,
            index=index,
        )

    def __str__(self) -> str:
        sender = self.sender.id if self.sender is not None else "<nil>"
        return f"Packet{{Type: {_text(self.type)}, Name: {_text(self.name)}, Sender: {sender}}}"
"""Peers of the network and the TCP exchange used to talk to them."""

from __future__ import annotations

import base64
import hashlib
import socket
import time
from dataclasses import dataclass
from typing import Any

CONNECT_TIMEOUT = 30.0
WRITE_TIMEOUT = 10.0
READ_TIMEOUT = 10.0
BUFFER_SIZE = 8192
PEER_ID_LENGTH = 16


class PeerError(Exception):
    """Raised when a peer cannot be reached or decoded."""


def generate_peer_id() -> str:
    """Return a 16-character identifier derived from the current time."""
    seed = str(time.time_ns()).encode("ascii")
    digest = hashlib.sha512(seed).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")[:PEER_ID_LENGTH]


def _field(data: dict[str, Any], name: str, kind: type, default: Any) -> Any:
    value = data.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, kind):
        raise PeerError(f"failed to unmarshal peer: field {name} has the wrong type")
    return value


@dataclass
class Peer:
    """A node of the network, identified by id, host and port."""

    id: str = ""
    popularity: int = 0
    host: str = ""
    port: int = 0

    @property
    def address(self) -> str:
        """The peer's address as host:port."""
        return f"{self.host}:{self.port}"

    def send_tcp(self, data: bytes) -> bytes:
        """Send data over a fresh TCP connection and return one read of the reply.

        An empty result means the peer closed the connection without answering.
        """
        try:
            conn = socket.create_connection((self.host, self.port), timeout=CONNECT_TIMEOUT)
        except OSError as exc:
            raise PeerError(f"failed to connect to peer {self.address}: {exc}") from exc
        with conn:
            conn.settimeout(WRITE_TIMEOUT)
            try:
                conn.sendall(data)
            except OSError as exc:
                raise PeerError(f"failed to send data to peer: {exc}") from exc
            conn.settimeout(READ_TIMEOUT)
            try:
                return conn.recv(BUFFER_SIZE)
            except OSError as exc:
                raise PeerError(f"failed to read response from peer: {exc}") from exc

    def is_equal(self, other: Peer | None) -> bool:
        """Tell whether two peers share id, host and port."""
        if other is None:
            return False
        return self.id == other.id and self.host == other.host and self.port == other.port

    def to_dict(self) -> dict[str, Any]:
        """Return the peer as a JSON-ready mapping in wire field order."""
        return {
            "id": self.id,
            "popularity": self.popularity,
            "host": self.host,
            "port": self.port,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Peer:
        """Build a peer from a decoded JSON object; missing fields take zero values."""
        if not isinstance(data, dict):
            raise PeerError("failed to unmarshal peer: expected a JSON object")
        return cls(
            id=_field(data, "id", str, ""),
            popularity=_field(data, "popularity", int, 0),
            host=_field(data, "host", str, ""),
            port=_field(data, "port", int, 0),
        )

    def __str__(self) -> str:
        return f"Peer {self.id} ({self.host}:{self.port}, popularity: {self.popularity})"
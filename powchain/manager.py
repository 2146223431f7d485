"""Peer management, packet handling and chain synchronisation over TCP."""

from __future__ import annotations

import json
import logging
import re
import socket
import socketserver
import threading
from typing import Any

from .block import Block, BlockError
from .broadcast import BroadcastManager
from .chain import Blockchain, ChainError
from .config import NetworkConfig
from .packet import Packet, PacketError, PacketName, PacketType
from .peer import Peer, PeerError, generate_peer_id

log = logging.getLogger(__name__)

SERVER_READ_TIMEOUT = 30.0
SERVER_WRITE_TIMEOUT = 10.0
SERVER_BUFFER_SIZE = 8192

_DECIMAL = re.compile(r"[+-]?[0-9]+")


class NetworkError(Exception):
    """Raised when a packet cannot be handled or a peer exchange fails."""


def _decode_json(content: bytes | None, what: str) -> Any:
    if content is None:
        raise NetworkError(f"failed to unmarshal {what}: unexpected end of JSON input")
    try:
        return json.loads(content)
    except (ValueError, TypeError) as exc:
        raise NetworkError(f"failed to unmarshal {what}: {exc}") from exc


def _decode_object(content: bytes | None, what: str) -> dict[str, Any]:
    decoded = _decode_json(content, what)
    if decoded is None:
        return {}
    if not isinstance(decoded, dict):
        raise NetworkError(f"failed to unmarshal {what}: expected a JSON object")
    return decoded


def _int_field(data: dict[str, Any], name: str, what: str) -> int:
    value = data.get(name)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise NetworkError(f"failed to unmarshal {what}: field {name} is not an integer")
    return value


def _encode(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _range_request(start_index: int, end_index: int) -> bytes:
    return _encode({"start_index": start_index, "end_index": end_index})


class _Handler(socketserver.BaseRequestHandler):
    def handle(self) -> None:
        self.server.manager._serve_connection(self.request)  # type: ignore[attr-defined]


class _Server(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, address: tuple[str, int], manager: Manager) -> None:
        self.manager = manager
        super().__init__(address, _Handler)


class Manager:
    """A node's view of the network: its own peer, known peers and the chain."""

    def __init__(self, config: NetworkConfig, blockchain: Blockchain) -> None:
        self.config = config
        self.blockchain = blockchain
        self.me = Peer(generate_peer_id(), 0, config.host, config.port)
        self.last_block_index = 0
        self._peers: list[Peer] = []
        self._lock = threading.RLock()
        self._broadcasts = BroadcastManager()

    @classmethod
    def joining(
        cls, config: NetworkConfig, blockchain: Blockchain, init_host: str, init_port: int
    ) -> Manager:
        """Create a manager that joins a network through an initial peer and syncs its chain."""
        manager = cls(config, blockchain)
        init_peer = Peer("0", 0, init_host, init_port)
        manager.add_peer(init_peer)
        try:
            manager.join_network(init_peer)
        except NetworkError as exc:
            log.warning("Failed to join network: %s", exc)
            return manager
        try:
            manager.sync_full_chain_from_peer(init_peer)
        except NetworkError as exc:
            raise NetworkError(f"failed to sync blockchain from peer: {exc}") from exc
        return manager

    @property
    def peers(self) -> list[Peer]:
        """A copy of the known peers, in the order they were added."""
        with self._lock:
            return list(self._peers)

    # ----- server side -------------------------------------------------

    def start_server(self) -> None:
        """Listen on the configured port and answer packets until interrupted."""
        try:
            server = _Server(("", self.me.port), self)
        except OSError as exc:
            raise NetworkError(f"failed to start server: {exc}") from exc
        log.info("Server listening on port %d", self.me.port)
        with server:
            server.serve_forever()

    def _serve_connection(self, conn: socket.socket) -> None:
        conn.settimeout(SERVER_READ_TIMEOUT)
        try:
            data = conn.recv(SERVER_BUFFER_SIZE)
        except OSError:
            return
        if not data:
            return
        try:
            response = self.process_packet(data)
        except NetworkError:
            response = b""
        conn.settimeout(SERVER_WRITE_TIMEOUT)
        try:
            conn.sendall(response)
        except OSError:
            pass

    def process_packet(self, data: bytes) -> bytes:
        """Handle one incoming packet and return the bytes to answer with."""
        try:
            packet = Packet.from_json(data)
        except PacketError as exc:
            raise NetworkError(f"failed to parse packet: {exc}") from exc
        if packet.type == PacketType.SINGLE:
            return self._handle_single(packet)
        if packet.type == PacketType.BROADCAST:
            return self._handle_broadcast(packet)
        raise NetworkError(f"unknown packet type: {packet.type}")

    def _handle_single(self, packet: Packet) -> bytes:
        handlers = {
            PacketName.JOIN: self._handle_join,
            PacketName.JOIN_ANSWER: self._handle_join_answer,
            PacketName.GET_LATEST_BLOCK: self._handle_get_latest_block,
            PacketName.GET_LATEST_BLOCK_ANSWER: lambda _packet: b"",
            PacketName.DOWNLOAD_BLOCK: self._handle_download_block,
            PacketName.DOWNLOAD_BLOCK_ANSWER: lambda _packet: b"",
        }
        handler = handlers.get(packet.name)  # type: ignore[call-overload]
        if handler is None:
            raise NetworkError(f"unknown packet name: {packet.name}")
        return handler(packet)

    def _handle_broadcast(self, packet: Packet) -> bytes:
        if self._broadcasts.has_packet(packet.index):
            return b""
        self._broadcasts.add_packet(packet.index)
        if packet.name == PacketName.FOUND_BLOCK:
            return self._handle_found_block(packet)
        return b""

    def _handle_join(self, packet: Packet) -> bytes:
        if packet.sender is not None and not self.has_peer(packet.sender):
            self.add_peer(packet.sender)
        try:
            latest = self.blockchain.latest_block()
        except ChainError as exc:
            raise NetworkError(f"failed to get latest block: {exc}") from exc
        self.last_block_index = latest.index
        return Packet(self.me, PacketType.SINGLE, PacketName.JOIN_ANSWER, self.to_json()).to_json()

    def _handle_join_answer(self, packet: Packet) -> bytes:
        answer = _decode_object(packet.content, "manager data")
        _int_field(answer, "last_block_index", "manager data")
        me_data = answer.get("me")
        try:
            remote_me = None if me_data is None else Peer.from_dict(me_data)
        except PeerError as exc:
            raise NetworkError(f"failed to unmarshal manager data: {exc}") from exc
        with self._lock:
            first = self._peers[0] if self._peers else None
        if first is not None and remote_me is not None:
            self.update_peer(first, remote_me)
        return b""

    def _handle_get_latest_block(self, packet: Packet) -> bytes:
        try:
            latest = self.blockchain.latest_block()
        except ChainError as exc:
            raise NetworkError(f"failed to get latest block: {exc}") from exc
        return Packet(
            self.me, PacketType.SINGLE, PacketName.GET_LATEST_BLOCK_ANSWER, latest.to_json()
        ).to_json()

    def _handle_download_block(self, packet: Packet) -> bytes:
        request = _decode_object(packet.content, "download request")
        start = _int_field(request, "start_index", "download request")
        end = _int_field(request, "end_index", "download request")
        try:
            blocks = self.blockchain.get_blocks(start, end)
        except ChainError as exc:
            raise NetworkError(f"failed to get blocks: {exc}") from exc
        content = _encode([block.to_dict() for block in blocks])
        return Packet(
            self.me, PacketType.SINGLE, PacketName.DOWNLOAD_BLOCK_ANSWER, content
        ).to_json()

    def _handle_found_block(self, packet: Packet) -> bytes:
        text = (packet.content or b"").decode("utf-8", errors="replace")
        if not _DECIMAL.fullmatch(text):
            return b""
        block_index = int(text)
        try:
            latest = self.blockchain.latest_block()
        except ChainError:
            latest = None
        if latest is not None and latest.index >= block_index:
            return b""
        self.sync_chain(packet.sender, block_index)
        return b""

    # ----- client side -------------------------------------------------

    def join_network(self, init_peer: Peer) -> None:
        """Send a join request to a peer and apply its answer."""
        request = Packet(self.me, PacketType.SINGLE, PacketName.JOIN, b"{}").to_json()
        try:
            response = init_peer.send_tcp(request)
        except PeerError as exc:
            raise NetworkError(f"failed to send join request: {exc}") from exc
        try:
            self.process_packet(response)
        except NetworkError as exc:
            raise NetworkError(f"failed to process join answer: {exc}") from exc

    def add_peer(self, peer: Peer) -> None:
        """Add a peer unless it is already known; popularity follows the peer count."""
        with self._lock:
            if not self._has_peer_unlocked(peer):
                self._peers.append(peer)
                self.me.popularity = len(self._peers)

    def remove_peer(self, peer: Peer) -> None:
        with self._lock:
            for position, known in enumerate(self._peers):
                if known.is_equal(peer):
                    del self._peers[position]
                    self.me.popularity = len(self._peers)
                    return

    def update_peer(self, old_peer: Peer, new_peer: Peer) -> None:
        """Replace the first peer equal to old_peer with new_peer."""
        with self._lock:
            for position, known in enumerate(self._peers):
                if known.is_equal(old_peer):
                    self._peers[position] = new_peer
                    return

    def has_peer(self, peer: Peer | None) -> bool:
        with self._lock:
            return self._has_peer_unlocked(peer)

    def _has_peer_unlocked(self, peer: Peer | None) -> bool:
        if peer is None:
            return False
        return any(known.is_equal(peer) for known in self._peers)

    def peer_index(self, peer: Peer | None) -> int:
        """Return the position of a peer, or -1 when it is unknown."""
        if peer is None:
            return -1
        with self._lock:
            for position, known in enumerate(self._peers):
                if known.is_equal(peer):
                    return position
        return -1

    def broadcast(self, data: bytes) -> None:
        """Send data to every known peer, each on its own thread."""
        for peer in self.peers:
            threading.Thread(target=self._send_quietly, args=(peer, data), daemon=True).start()

    @staticmethod
    def _send_quietly(peer: Peer, data: bytes) -> None:
        try:
            peer.send_tcp(data)
        except PeerError as exc:
            log.warning("Failed to broadcast to peer %s: %s", peer, exc)

    def sync_chain(self, peer: Peer | None, target_index: int) -> bool:
        """Fetch and append the blocks up to target_index; tell whether any were fetched."""
        if peer is None:
            return False
        try:
            latest = self.blockchain.latest_block()
        except ChainError:
            return False
        if latest.index >= target_index:
            return False
        try:
            blocks = self.download_blocks(peer, latest.index + 1, target_index)
        except NetworkError:
            return False
        for block in blocks:
            self.blockchain.add_block_without_verification(block)
        return True

    def download_blocks(self, peer: Peer | None, start_index: int, end_index: int) -> list[Block]:
        """Ask a peer for the blocks from start_index to end_index inclusive."""
        if peer is None:
            raise NetworkError("cannot download blocks from nil peer")
        request = Packet(
            self.me, PacketType.SINGLE, PacketName.DOWNLOAD_BLOCK,
            _range_request(start_index, end_index),
        ).to_json()
        try:
            response = peer.send_tcp(request)
        except PeerError as exc:
            raise NetworkError(f"failed to send download request: {exc}") from exc
        try:
            answer = Packet.from_json(response)
        except PacketError as exc:
            raise NetworkError(f"failed to parse response: {exc}") from exc
        decoded = _decode_json(answer.content, "blocks")
        if decoded is None:
            return []
        if not isinstance(decoded, list):
            raise NetworkError("failed to unmarshal blocks: expected a JSON array")
        try:
            return [Block.from_dict(item) for item in decoded]
        except BlockError as exc:
            raise NetworkError(f"failed to unmarshal blocks: {exc}") from exc

    def to_json(self) -> bytes:
        """Serialise this node's peer and last known block index."""
        return _encode({"me": self.me.to_dict(), "last_block_index": self.last_block_index})

    def sync_full_chain_from_peer(self, peer: Peer) -> None:
        """Replace the local chain with the peer's whole chain."""
        request = Packet(self.me, PacketType.SINGLE, PacketName.GET_LATEST_BLOCK, None).to_json()
        try:
            response = peer.send_tcp(request)
        except PeerError as exc:
            raise NetworkError(f"failed to get latest block: {exc}") from exc
        try:
            answer = Packet.from_json(response)
        except PacketError as exc:
            raise NetworkError(f"failed to parse latest block response: {exc}") from exc
        if answer.content is None:
            raise NetworkError("failed to unmarshal latest block: unexpected end of JSON input")
        try:
            latest = Block.from_json(answer.content)
        except BlockError as exc:
            raise NetworkError(f"failed to unmarshal latest block: {exc}") from exc
        try:
            blocks = self.download_blocks(peer, 0, latest.index)
        except NetworkError as exc:
            raise NetworkError(f"failed to download blocks: {exc}") from exc
        self.blockchain.replace_chain(blocks)
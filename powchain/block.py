"""Blocks of the proof-of-work chain: hashing, mining, validation and JSON form."""

from __future__ import annotations

import base64
import hashlib
import json
import time
from dataclasses import dataclass, fields
from typing import Any

MAX_BLOCK_SIZE = 2097152
MINING_NONCE_MODULUS = 4294967296


class BlockError(ValueError):
    """Raised when a block is invalid or cannot be decoded."""


_INT_FIELDS = ("index", "timestamp", "difficulty", "next_block_difficulty", "nonce")
_STR_FIELDS = ("data", "hash", "previous_hash")


@dataclass
class Block:
    """A single block of the chain."""

    index: int = 0
    timestamp: int = 0
    difficulty: int = 0
    next_block_difficulty: int = 0
    data: str = ""
    hash: str = ""
    previous_hash: str = ""
    nonce: int = 0

    @classmethod
    def new(
        cls,
        index: int,
        difficulty: int,
        next_difficulty: int,
        data: str,
        previous_hash: str,
    ) -> "Block":
        """Create an unmined block stamped with the current time."""
        return cls(
            index=index,
            timestamp=int(time.time()),
            difficulty=difficulty,
            next_block_difficulty=next_difficulty,
            data=data,
            previous_hash=previous_hash,
            nonce=0,
        )

    def compute_hash(self) -> str:
        """Return the URL-safe base64 SHA-512 digest of the block's fields."""
        payload = (
            f"{self.index}{self.nonce}{self.previous_hash}{self.difficulty}"
            f"{self.next_block_difficulty}{self.timestamp}{self.data}"
        )
        digest = hashlib.sha512(payload.encode("utf-8")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii")

    def is_hash_valid(self, hash_value: str) -> bool:
        """Tell whether a hash starts with as many zeros as the difficulty asks."""
        if self.difficulty == 0:
            return True
        return hash_value.startswith("0" * self.difficulty)

    def mine(self) -> None:
        """Search nonces until the block's hash meets its difficulty."""
        while not self.is_hash_valid(self.hash):
            self.timestamp = int(time.time())
            self.nonce = time.time_ns() % MINING_NONCE_MODULUS
            self.hash = self.compute_hash()

    def validate(self) -> None:
        """Check hash, difficulty and size; raise BlockError on the first failure."""
        calculated = self.compute_hash()
        if calculated != self.hash:
            raise BlockError(
                f"block hash mismatch: calculated {calculated}, stored {self.hash}"
            )
        if not self.is_hash_valid(self.hash):
            raise BlockError("block hash does not meet difficulty requirement")
        size = len(self.to_json())
        if size > MAX_BLOCK_SIZE:
            raise BlockError(f"block size {size} exceeds limit of 2MB")

    def to_dict(self) -> dict[str, Any]:
        """Return the block as a JSON-ready mapping in wire field order."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Any) -> "Block":
        """Build a block from a decoded JSON object; missing fields take zero values."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise BlockError("failed to unmarshal block: expected a JSON object")
        values: dict[str, Any] = {}
        for name in _INT_FIELDS:
            value = data.get(name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise BlockError(f"failed to unmarshal block: field {name} is not an integer")
            values[name] = value
        for name in _STR_FIELDS:
            value = data.get(name)
            if value is None:
                continue
            if not isinstance(value, str):
                raise BlockError(f"failed to unmarshal block: field {name} is not a string")
            values[name] = value
        return cls(**values)

    def to_json(self) -> bytes:
        """Serialise the block to compact UTF-8 JSON."""
        return json.dumps(
            self.to_dict(), separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> "Block":
        """Decode a block from JSON text or bytes."""
        try:
            decoded = json.loads(data)
        except (ValueError, TypeError) as exc:
            raise BlockError(f"failed to unmarshal block: {exc}") from exc
        return cls.from_dict(decoded)

    def __str__(self) -> str:
        return f"Block #{self.index} (Hash: {self.hash}, Nonce: {self.nonce})"
"""The chain of blocks, its validation and difficulty adjustment."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from .block import Block, BlockError

log = logging.getLogger(__name__)


class ChainError(ValueError):
    """Raised when the chain cannot satisfy a request."""


def _truncating_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


class Blockchain:
    """A thread-safe, append-only list of blocks."""

    def __init__(self, difficulty_calculation_blocks: int, target_block_time: int) -> None:
        self.difficulty_calculation_blocks = difficulty_calculation_blocks
        self.target_block_time = target_block_time
        self._lock = threading.RLock()
        self._chain: list[Block] = []

    def create_genesis_block(self) -> Block:
        """Mine the genesis block and append it."""
        log.info("Mining genesis block...")
        genesis = Block.new(0, 2, 2, "Genesis Block", "")
        genesis.mine()
        self.add_block_without_verification(genesis)
        log.info("Genesis block created: %s", genesis.hash)
        return genesis

    def can_add_block(self, block: Block) -> None:
        """Raise ChainError unless the block may follow the latest one."""
        with self._lock:
            if not self._chain:
                raise ChainError("blockchain is empty")
            latest = self._chain[-1]
        if block.difficulty != latest.next_block_difficulty:
            raise ChainError(
                f"block difficulty {block.difficulty} does not match expected "
                f"{latest.next_block_difficulty}"
            )
        if block.index != latest.index + 1:
            raise ChainError(f"block index {block.index} is not sequential")
        if block.previous_hash != latest.hash:
            raise ChainError("block previous hash does not match latest block hash")
        try:
            block.validate()
        except BlockError as exc:
            raise ChainError(f"block validation failed: {exc}") from exc

    def add_block(self, block: Block) -> None:
        """Verify and append a block."""
        try:
            self.can_add_block(block)
        except ChainError as exc:
            raise ChainError(f"cannot add block: {exc}") from exc
        self.add_block_without_verification(block)
        log.info(
            "Added block #%d to chain - Hash: %s, Difficulty: %d, Nonce: %d",
            block.index, block.hash, block.difficulty, block.nonce,
        )

    def add_block_without_verification(self, block: Block) -> None:
        """Append a block as is, as done when syncing."""
        with self._lock:
            self._chain.append(block)

    def has_block(self, index: int) -> bool:
        with self._lock:
            return 0 <= index < len(self._chain)

    def get_block(self, index: int) -> Block:
        with self._lock:
            if not 0 <= index < len(self._chain):
                raise ChainError(f"block index {index} out of range")
            return self._chain[index]

    def latest_block(self) -> Block:
        with self._lock:
            if not self._chain:
                raise ChainError("blockchain is empty")
            return self._chain[-1]

    def __len__(self) -> int:
        with self._lock:
            return len(self._chain)

    def validate(self) -> None:
        """Check every block after the first and the links between them."""
        with self._lock:
            if not self._chain:
                raise ChainError("blockchain is empty")
            chain = list(self._chain)
        for previous, current in zip(chain, chain[1:]):
            try:
                current.validate()
            except BlockError as exc:
                raise ChainError(f"block #{current.index} is invalid: {exc}") from exc
            if current.previous_hash != previous.hash:
                raise ChainError(f"chain integrity broken at block #{current.index}")

    def average_mining_time(self, start_block: int, stop_block: int) -> int:
        """Return the mean seconds between consecutive blocks in the range."""
        with self._lock:
            if start_block < 0 or stop_block >= len(self._chain) or start_block >= stop_block:
                raise ChainError(f"invalid block range: {start_block} to {stop_block}")
            span = self._chain[start_block : stop_block + 1]
        total = sum(cur.timestamp - prev.timestamp for prev, cur in zip(span, span[1:]))
        return _truncating_div(total, stop_block - start_block)

    def should_recalculate_difficulty(self) -> bool:
        try:
            latest = self.latest_block()
        except ChainError:
            return False
        return latest.index > 0 and latest.index % self.difficulty_calculation_blocks == 0

    def calculate_new_difficulty(self) -> int:
        """Adjust the latest difficulty by one towards the target block time."""
        try:
            latest = self.latest_block()
        except ChainError as exc:
            raise ChainError(f"failed to get latest block: {exc}") from exc
        start_index = max(latest.index - self.difficulty_calculation_blocks, 0)
        try:
            average = self.average_mining_time(start_index, latest.index)
        except ChainError as exc:
            raise ChainError(f"failed to calculate average mining time: {exc}") from exc

        difficulty = latest.difficulty
        target = self.target_block_time
        if average > int(target * 1.25):
            if difficulty > 0:
                difficulty -= 1
        elif average < int(target * 0.75):
            difficulty += 1
        return difficulty

    def get_blocks(self, start_index: int, end_index: int) -> list[Block]:
        """Return a copy of the blocks from start_index to end_index inclusive."""
        with self._lock:
            if start_index < 0 or end_index >= len(self._chain) or start_index > end_index:
                raise ChainError(f"invalid block range: {start_index} to {end_index}")
            return self._chain[start_index : end_index + 1]

    def replace_chain(self, new_chain: Iterable[Block]) -> None:
        """Replace the whole chain with the given blocks."""
        with self._lock:
            self._chain = list(new_chain)

    def __str__(self) -> str:
        return f"Blockchain with {len(self)} blocks"
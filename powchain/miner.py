"""The proof-of-work miner that extends the chain and announces found blocks."""

from __future__ import annotations

import logging
import threading
import time

from .block import Block
from .chain import ChainError
from .config import MinerConfig
from .manager import Manager
from .packet import Packet, PacketName

log = logging.getLogger(__name__)

RETRY_DELAY = 1.0
BLOCK_DATA = "data"


class Miner:
    """Mines blocks on top of the manager's chain until stopped."""

    def __init__(self, network_manager: Manager, config: MinerConfig) -> None:
        self.network_manager = network_manager
        self.config = config
        self._stop = threading.Event()
        self._mine_count = 0
        self._rate_started = time.monotonic()

    @property
    def stopped(self) -> bool:
        """Whether stop() has been called."""
        return self._stop.is_set()

    def mine_next(self) -> Block | None:
        """Try to mine one block on top of the latest one.

        Returns the block once it has been added and announced, or None when
        the chain is empty, mining was interrupted for a network sync, the
        miner was stopped, or the chain refused the block.
        """
        chain = self.network_manager.blockchain
        try:
            latest = chain.latest_block()
        except ChainError:
            self._stop.wait(RETRY_DELAY)
            return None

        next_difficulty = latest.next_block_difficulty
        if chain.should_recalculate_difficulty():
            try:
                new_difficulty = chain.calculate_new_difficulty()
            except ChainError as exc:
                log.warning("Failed to calculate new difficulty: %s", exc)
            else:
                next_difficulty = new_difficulty
                log.info("New difficulty: %d", new_difficulty)

        difficulty = max(latest.next_block_difficulty, 1)
        block = Block.new(latest.index + 1, difficulty, next_difficulty, BLOCK_DATA, latest.hash)

        if not self._search(block):
            return None

        try:
            chain.add_block(block)
        except ChainError as exc:
            log.warning("Failed to add block: %s", exc)
            return None
        log.info("Mined block #%d (Hash: %s, Nonce: %d)", block.index, block.hash, block.nonce)
        self._broadcast_found_block(block.index)
        return block

    def _search(self, block: Block) -> bool:
        """Hash until the block is valid; False when a sync or stop cuts it short."""
        interval = self.config.network_sync_interval
        while not block.is_hash_valid(block.hash):
            if self._stop.is_set():
                return False
            block.timestamp = int(time.time())
            block.nonce = time.time_ns() % self.config.max_nonce
            block.hash = block.compute_hash()
            self._mine_count += 1

            elapsed = time.monotonic() - self._rate_started
            if elapsed > interval:
                rate = self._mine_count / elapsed if elapsed > 0 else 0.0
                log.info("Mining rate: %.2f H/s", rate)
                self._mine_count = 0
                self._rate_started = time.monotonic()
                return False
        return True

    def _broadcast_found_block(self, block_index: int) -> None:
        packet = Packet.broadcast(
            self.network_manager.me,
            PacketName.FOUND_BLOCK,
            str(block_index).encode("ascii"),
            block_index,
        )
        self.network_manager.broadcast(packet.to_json())
        log.info("Broadcasted found block #%d", block_index)

    def run(self) -> None:
        """Mine blocks until stop() is called."""
        log.info("Starting miner...")
        while not self._stop.is_set():
            self.mine_next()
        log.info("Miner stopped")

    def stop(self) -> None:
        """Ask the mining loop to end."""
        self._stop.set()


def start(network_manager: Manager, config: MinerConfig) -> Miner:
    """Create a miner and run it in the calling thread until it is stopped."""
    miner = Miner(network_manager, config)
    miner.run()
    return miner
"""Deduplication of broadcast packets by index."""

from __future__ import annotations

import threading
import time


class BroadcastManager:
    """Remembers which broadcast indexes have already been handled."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._packets: dict[int, float] = {}

    def has_packet(self, index: int) -> bool:
        """Tell whether a broadcast with this index was seen."""
        with self._lock:
            return index in self._packets

    def add_packet(self, index: int) -> None:
        """Record a broadcast index with the time it was seen."""
        with self._lock:
            self._packets[index] = time.time()
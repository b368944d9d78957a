"""In-memory LRU cache bounded by total stored bytes."""

import logging
import threading
from collections import OrderedDict
from collections.abc import Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


class ByteBudgetLRU(Generic[V]):
    """LRU cache whose capacity is a byte budget rather than an entry count.

    Entries larger than the whole budget are never stored. Safe for use from
    multiple threads.
    """

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        self._entries: OrderedDict[Hashable, tuple[V, int]] = OrderedDict()
        self._total_bytes = 0
        self._lock = threading.Lock()

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: Hashable) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry[0]

    def put(self, key: Hashable, value: V, size: int) -> bool:
        """Store ``value`` and evict least recently used entries to fit.

        Returns:
            False if the value alone exceeds the budget and was not stored
        """
        if size > self.max_bytes:
            logger.info(f"Not caching {key}: {size} bytes exceeds budget of {self.max_bytes}")
            return False
        with self._lock:
            if key in self._entries:
                self._total_bytes -= self._entries.pop(key)[1]
            self._entries[key] = (value, size)
            self._total_bytes += size
            while self._total_bytes > self.max_bytes:
                evicted_key, (_, evicted_size) = self._entries.popitem(last=False)
                self._total_bytes -= evicted_size
                logger.debug(f"Evicted {evicted_key} ({evicted_size} bytes)")
        return True

    def evict(self, key: Hashable) -> None:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is not None:
                self._total_bytes -= entry[1]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0

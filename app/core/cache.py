"""Process-wide key/value caches shared by concurrent calls."""
import threading
from collections import OrderedDict
from typing import Generic, Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class KeyValueCache(Generic[K, V]):
    """Thread-safe key/value store with optional LRU eviction.

    Read-mostly, overwrite on miss. Two calls missing the same key at the same
    time may both compute and both write; the value for a key is deterministic
    so the last write wins without harm. With `max_entries` set, the least
    recently used key is evicted once the store grows past the limit.
    """

    def __init__(self, name: str = "cache", max_entries: Optional[int] = None):
        self.name = name
        self.max_entries = max_entries
        self._data: "OrderedDict[K, V]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            if key not in self._data:
                return None
            self._data.move_to_end(key)
            return self._data[key]

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            if self.max_entries is not None:
                while len(self._data) > self.max_entries:
                    self._data.popitem(last=False)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

"""
Process-local caches for registry metadata and extraction results

Callers depend only on the small get/set interface below, so swapping the
unbounded store for a bounded one is a configuration change:

- InMemoryCache keeps everything for the process lifetime
- LRUCache evicts the least recently used entry past max_size
"""
from collections import OrderedDict
from typing import Dict, Generic, Optional, Protocol, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class Cache(Protocol[K, V]):
    """Minimal cache interface injected into the registry and comparator"""

    def get(self, key: K) -> Optional[V]:
        ...

    def set(self, key: K, value: V) -> None:
        ...


class InMemoryCache(Generic[K, V]):
    """Unbounded dict-backed cache"""

    def __init__(self):
        self._data: Dict[K, V] = {}

    def get(self, key: K) -> Optional[V]:
        return self._data.get(key)

    def set(self, key: K, value: V) -> None:
        self._data[key] = value

    def clear(self):
        self._data.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class LRUCache(Generic[K, V]):
    """
    Bounded cache with least-recently-used eviction.

    Both get and set count as a use.
    """

    def __init__(self, max_size: int):
        """
        Args:
            max_size: Maximum number of entries. Oldest entries are evicted
                     when the limit is reached.
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._data: "OrderedDict[K, V]" = OrderedDict()
        self._max_size = max_size

    def get(self, key: K) -> Optional[V]:
        if key not in self._data:
            return None
        self._data.move_to_end(key)
        return self._data[key]

    def set(self, key: K, value: V) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = value
        while len(self._data) > self._max_size:
            self._data.popitem(last=False)

    def clear(self):
        self._data.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    @property
    def max_size(self) -> int:
        return self._max_size


def make_cache(max_entries: int = 0) -> Cache:
    """Unbounded cache for 0 (or less), LRU cache otherwise"""
    if max_entries > 0:
        return LRUCache(max_entries)
    return InMemoryCache()

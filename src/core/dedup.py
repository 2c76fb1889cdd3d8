"""Deduplication of redelivered events (core domain)."""

from __future__ import annotations

from collections import OrderedDict

from core.config import DEFAULT_DEDUP_HIGH_WATER_MARK, CacheConfig


class DedupCache:
    """Bounded set of ``chat_id:message_id`` keys seen during this run.

    Keys are kept in insertion order. Once the size goes past the high-water
    mark the oldest half is dropped, so memory stays bounded under long runs.
    """

    def __init__(self, high_water_mark: int = DEFAULT_DEDUP_HIGH_WATER_MARK) -> None:
        if high_water_mark < 1:
            raise ValueError("high_water_mark must be positive")
        self._high_water_mark = high_water_mark
        self._keys: "OrderedDict[str, None]" = OrderedDict()

    @classmethod
    def from_config(cls, cache_config: CacheConfig) -> "DedupCache":
        return cls(cache_config.dedup_high_water_mark)

    @property
    def high_water_mark(self) -> int:
        return self._high_water_mark

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def seen(self, key: str) -> bool:
        return key in self._keys

    def add(self, key: str) -> None:
        """Record a key, evicting the oldest half past the high-water mark."""

        if key in self._keys:
            return
        self._keys[key] = None
        if len(self._keys) > self._high_water_mark:
            self._evict(len(self._keys) // 2)

    def _evict(self, count: int) -> None:
        for _ in range(count):
            self._keys.popitem(last=False)

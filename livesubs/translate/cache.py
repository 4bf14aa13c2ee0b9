"""Bounded, time-expiring memo of translations."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

CacheKey = Tuple[str, str]


@dataclass
class TranslationCacheEntry:
    text: str
    inserted_at: float


def cache_key(text: str, target_language: str) -> CacheKey:
    return (text.strip().lower(), target_language)


class TranslationCache:
    """Insertion-ordered cache with lazy TTL expiry.

    Eviction drops the oldest *inserted* entry once ``max_size`` is reached.
    Reads never move an entry, so this is FIFO rather than LRU: a phrase that
    is looked up constantly is still evicted when its turn comes. Expired
    entries are removed when a lookup touches them.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: "OrderedDict[CacheKey, TranslationCacheEntry]" = OrderedDict()
        self._max_size = max(max_size, 1)
        self._ttl = max(ttl_seconds, 0.0)
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, text: str, target_language: str) -> Optional[str]:
        key = cache_key(text, target_language)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() - entry.inserted_at > self._ttl:
            self._entries.pop(key, None)
            self.misses += 1
            return None
        self.hits += 1
        return entry.text

    def put(self, text: str, target_language: str, translated: str) -> None:
        key = cache_key(text, target_language)
        if key in self._entries:
            # Re-inserting keeps the original slot; only the value is refreshed.
            self._entries[key] = TranslationCacheEntry(translated, self._clock())
            return
        while len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)
        self._entries[key] = TranslationCacheEntry(translated, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, object]:
        return {
            "size": len(self._entries),
            "maxSize": self._max_size,
            "ttlSeconds": self._ttl,
            "hits": self.hits,
            "misses": self.misses,
        }

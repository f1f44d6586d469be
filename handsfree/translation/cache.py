"""
TranslationCache: (source, target, normalized text) -> response, with TTL.

Bounded; when full, the entry inserted first is evicted. Expired entries are
dropped on lookup. Times are ms on the session clock.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass

from handsfree.config import get_settings
from handsfree.translation.base import TranslationResponse

CacheKey = tuple[str, str, str]


def normalize_text(text: str) -> str:
    return text.strip().lower()


def cache_key(source_language: str, target_language: str, text: str) -> CacheKey:
    return (source_language, target_language, normalize_text(text))


@dataclass
class CacheEntry:
    key: CacheKey
    response: TranslationResponse
    timestamp: float  # ms, insertion time
    hit_count: int = 0


class TranslationCache:
    def __init__(self, ttl_seconds: int | None = None, max_entries: int | None = None) -> None:
        settings = get_settings()
        ttl = ttl_seconds if ttl_seconds is not None else settings.TRANSLATION_CACHE_TTL_SECONDS
        self._ttl_ms = ttl * 1000.0
        self._max_entries = max_entries if max_entries is not None else settings.TRANSLATION_CACHE_MAX_ENTRIES
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._lookups = 0
        self._hits = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey, now: float) -> CacheEntry | None:
        """Live entry for key (hit_count incremented) or None."""
        self._lookups += 1
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now - entry.timestamp > self._ttl_ms:
            del self._entries[key]
            return None
        entry.hit_count += 1
        self._hits += 1
        return entry

    def put(self, key: CacheKey, response: TranslationResponse, now: float) -> CacheEntry:
        self._entries.pop(key, None)
        entry = CacheEntry(key=key, response=response, timestamp=now)
        self._entries[key] = entry
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, float]:
        return {
            "size": len(self._entries),
            "total_hits": sum(e.hit_count for e in self._entries.values()),
            "hit_rate": self._hits / self._lookups if self._lookups else 0.0,
        }

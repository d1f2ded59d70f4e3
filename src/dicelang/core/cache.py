"""
Result caching for dice expression evaluation.

Keys are the normalized token stream of an expression. The cache itself
stores whatever it is given; deciding whether a randomized result may be replayed is the
caller's policy (see ``CachePolicy``).
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class CachePolicy(StrEnum):
    """What the evaluation entry points are allowed to store."""

    # Only dice-free expressions: memoizing a pure computation
    DETERMINISTIC = "deterministic"
    # Every successful result: later lookups replay the first observed rolls
    REPLAY = "replay"


@dataclass
class CacheEntry:
    """A stored result and its bookkeeping."""

    expression_key: str
    stored_result: Any
    created_at: float
    hit_count: int = 0


@dataclass(frozen=True)
class CacheStats:
    """Cumulative lookup counters and current size."""

    hits: int
    misses: int
    hit_rate: float
    entries: int


def normalize_key(tokens: Iterable[str], case_sensitive: bool = False) -> str:
    """
    Build a cache key from token texts.

    Tokens are joined with single spaces and lower-cased unless
    case-sensitive. Whitespace inside a token is dropped. Texts that
    tokenize alike share a key; "12" and "1 2" do not.
    """
    key = " ".join("".join(token.split()) for token in tokens)
    return key if case_sensitive else key.lower()


class ResultCache:
    """
    Thread-safe expression cache with hit/miss accounting.

    Hit and miss counters are cumulative over the cache's lifetime and
    survive ``clear()``; use ``reset_stats()`` to zero them. When
    ``max_entries`` is set, the least recently used entry is evicted to
    make room.
    """

    def __init__(self, max_entries: int | None = None) -> None:
        if max_entries is not None and max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self._max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> CacheEntry | None:
        """Look up an entry, counting the hit or miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                logger.debug("Cache miss: %s", key)
                return None
            self._hits += 1
            entry.hit_count += 1
            self._entries.move_to_end(key)
            logger.debug("Cache hit: %s (%d hits)", key, entry.hit_count)
            return entry

    def set(self, key: str, result: Any) -> None:
        """Store a result, replacing any existing entry for the key."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif self._max_entries is not None and len(self._entries) >= self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache evicted: %s", evicted)
            self._entries[key] = CacheEntry(
                expression_key=key,
                stored_result=result,
                created_at=time.time(),
            )

    def clear(self) -> None:
        """Drop all entries. Hit/miss counters are kept."""
        with self._lock:
            self._entries.clear()

    def reset_stats(self) -> None:
        with self._lock:
            self._hits = 0
            self._misses = 0

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    @property
    def max_entries(self) -> int | None:
        return self._max_entries

    def get_stats(self) -> CacheStats:
        """Return cumulative counters; hit rate is 0 before any lookup."""
        with self._lock:
            lookups = self._hits + self._misses
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / lookups if lookups else 0.0,
                entries=len(self._entries),
            )

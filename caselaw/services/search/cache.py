"""In-process TTL cache for unified search responses.

Keys are SHA-256 digests of the normalized query: strings are trimmed
and lower-cased, empty values dropped, and the JSON serialized with
sorted keys so equivalent queries share an entry. The ``sources`` list
keeps its order since it is a priority override.

Expired entries are deleted lazily when looked up. Capacity is bounded;
the least recently used entry is evicted first.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from prometheus_client import Counter

if TYPE_CHECKING:
    from collections.abc import Callable

    from caselaw.models.domain import SearchQuery, UnifiedSearchResponse

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

CACHE_LOOKUPS = Counter(
    "caselaw_search_cache_lookups_total",
    "Search cache lookups",
    ["outcome"],
)


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expirations: int = 0
    evictions: int = 0


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return " ".join(value.split()).lower()
    if isinstance(value, list | tuple):
        return [_normalize(v) for v in value]
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items() if v not in (None, "")}
    return value


def make_key(query: SearchQuery) -> str:
    """Stable digest of every field of ``query``."""
    params = _normalize(query.model_dump(mode="json"))
    content = json.dumps(params, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class QueryCache:
    """Thread-safe LRU map of query key to (stored_at, response)."""

    def __init__(
        self,
        ttl_seconds: float = 1800.0,
        max_entries: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, UnifiedSearchResponse]] = OrderedDict()
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, query: SearchQuery) -> UnifiedSearchResponse | None:
        key = make_key(query)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                CACHE_LOOKUPS.labels(outcome="miss").inc()
                return None

            stored_at, response = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[key]
                self.stats.misses += 1
                self.stats.expirations += 1
                CACHE_LOOKUPS.labels(outcome="expired").inc()
                return None

            self._entries.move_to_end(key)
            self.stats.hits += 1
        CACHE_LOOKUPS.labels(outcome="hit").inc()
        logger.debug("search_cache_hit", key=key[:12])
        return response

    def put(self, query: SearchQuery, response: UnifiedSearchResponse) -> None:
        key = make_key(query)
        with self._lock:
            self._entries[key] = (self._clock(), response)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self.stats.evictions += 1

    def clear(self) -> int:
        """Drop every entry; returns how many were removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("search_cache_cleared", entries=count)
        return count

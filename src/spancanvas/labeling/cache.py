"""Deterministic cache for labeling results.

Cache keys are SHA256 hashes of canonical JSON containing:
(cache_key or "anon", text signature, max_spans, min_confidence,
template_version, policy).

Entries also store the exact text they were computed for; a lookup whose
text differs (hash collision or normalization drift) is a miss.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import OrderedDict
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel

from spancanvas.config import DEFAULT_CACHE_LIMIT, DEFAULT_CACHE_TTL_SECONDS
from spancanvas.labeling.backend import LabelingRequest, LabelingResponse

logger = logging.getLogger(__name__)

ANONYMOUS_CACHE_KEY = "anon"


class CacheEntry(BaseModel):
    """A cached labeling result.

    Attributes:
        cache_key: Deterministic hash key.
        text: Exact text the response was computed for.
        response: The cached LabelingResponse.
        created_at: When the entry was stored.
        expires_at: When the entry expires.
    """

    cache_key: str
    text: str
    response: LabelingResponse
    created_at: datetime
    expires_at: datetime


def compute_cache_key(request: LabelingRequest) -> str:
    """Compute a deterministic cache key for a labeling request.

    Args:
        request: The labeling request.

    Returns:
        SHA256 hex digest string.
    """
    canonical: dict[str, Any] = {
        "cache_key": request.cache_key or ANONYMOUS_CACHE_KEY,
        "max_spans": request.max_spans,
        "min_confidence": request.min_confidence,
        "policy": request.policy,
        "signature": request.signature,
        "template_version": request.template_version,
    }
    canonical_json = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


class SpanLabelingCache:
    """In-memory LRU cache for labeling results with TTL expiry.

    Single event loop only; no locking.
    """

    def __init__(
        self,
        limit: int = DEFAULT_CACHE_LIMIT,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize an empty cache.

        Args:
            limit: Maximum number of entries; least recently used are evicted.
            ttl_seconds: Entry lifetime. 0 disables caching entirely.
            clock: Returns the current time (UTC). Injectable for tests.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._limit = limit
        self._ttl = timedelta(seconds=max(0, ttl_seconds))
        self._clock = clock or (lambda: datetime.now(UTC))
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()

    @property
    def enabled(self) -> bool:
        return self._ttl.total_seconds() > 0

    def get(self, request: LabelingRequest) -> LabelingResponse | None:
        """Look up the cached response for ``request``.

        Returns None if not found, expired or computed for a different text.
        Expired entries are evicted.
        """
        if not self.enabled:
            return None
        entry = self.get_entry(request)
        return entry.response if entry is not None else None

    def get_entry(self, request: LabelingRequest) -> CacheEntry | None:
        """Like get() but returns the full entry (for cache-age reporting)."""
        key = compute_cache_key(request)
        entry = self._store.get(key)
        if entry is None:
            return None

        if self._clock() >= entry.expires_at:
            del self._store[key]
            logger.debug("Evicted expired labeling cache entry %s", key[:12])
            return None

        if entry.text != request.text:
            logger.debug("Labeling cache text mismatch for key %s", key[:12])
            return None

        self._store.move_to_end(key)
        return entry

    def age_ms(self, entry: CacheEntry) -> int:
        """Milliseconds since ``entry`` was stored, by this cache's clock."""
        return max(0, int((self._clock() - entry.created_at).total_seconds() * 1000))

    def put(self, request: LabelingRequest, response: LabelingResponse) -> None:
        """Store ``response`` for ``request``, evicting beyond the limit."""
        if not self.enabled:
            return
        key = compute_cache_key(request)
        now = self._clock()
        self._store[key] = CacheEntry(
            cache_key=key,
            text=request.text,
            response=response,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._store.move_to_end(key)
        while len(self._store) > self._limit:
            evicted, _ = self._store.popitem(last=False)
            logger.debug("Evicted least recently used labeling cache entry %s", evicted[:12])

    def clear(self) -> None:
        """Clear all cached entries."""
        self._store.clear()

    @property
    def size(self) -> int:
        """Return the number of entries in the cache."""
        return len(self._store)

    def snapshot(self) -> list[dict[str, Any]]:
        """JSON-ready dump of all entries, least recently used first."""
        return [entry.model_dump(mode="json") for entry in self._store.values()]

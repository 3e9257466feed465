"""Disk cache for remote plugin index documents.

Uses :mod:`diskcache` to keep the last successful response for every index
URL. Entries never expire on their own; each one records when it was
fetched so that callers can ask for a *fresh* copy (younger than a
maximum age) or fall back to a *stale* one when the network is down.

See Also:
    :func:`tack.plugins.index.search_indexes` -- the only consumer.
"""

from __future__ import annotations

import hashlib
import time
from pathlib import Path
from typing import Any, Callable, Optional

import diskcache

DEFAULT_MAX_AGE = 3600.0
"""Seconds an index response is considered fresh."""


class IndexCache:
    """Disk-backed cache of index JSON documents keyed by URL.

    Args:
        cache_dir: Directory for the underlying :class:`diskcache.Cache`.
        max_age: Seconds after which an entry is stale.
        clock: Source of the current time, replaceable in tests.

    Example::

        cache = IndexCache(get_index_cache_dir())
        body = cache.get_fresh(url)
        if body is None:
            body = fetch(url)
            cache.set(url, body)
    """

    def __init__(
        self,
        cache_dir: str | Path,
        max_age: float = DEFAULT_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache_dir = Path(cache_dir)
        self._cache = diskcache.Cache(str(self._cache_dir))
        self._max_age = max_age
        self._clock = clock

    def get_fresh(self, url: str) -> Optional[dict[str, Any]]:
        """Return the cached document for *url* if it is younger than ``max_age``."""
        record = self._cache.get(self._make_key(url))
        if record is None:
            return None
        if self._clock() - record["fetched_at"] > self._max_age:
            return None
        return record["body"]

    def get_stale(self, url: str) -> Optional[dict[str, Any]]:
        """Return the cached document for *url* regardless of its age."""
        record = self._cache.get(self._make_key(url))
        if record is None:
            return None
        return record["body"]

    def set(self, url: str, body: dict[str, Any]) -> None:
        """Store *body* as the latest document for *url*."""
        self._cache.set(
            self._make_key(url), {"fetched_at": self._clock(), "body": body}
        )

    def clear(self) -> None:
        """Remove all entries from the cache."""
        self._cache.clear()

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()

    def _make_key(self, url: str) -> str:
        return hashlib.sha256(url.encode()).hexdigest()

"""Search remote plugin indexes.

An index is a JSON document published next to a registry that lists the
plugins available there::

    {
      "repository": "https://github.com/reglet-dev/reglet-plugins",
      "registry": "ghcr.io/reglet-dev/reglet-plugins",
      "updated": "2026-01-01T00:00:00Z",
      "plugins": [{"name": "dns", "description": "...", "capabilities": ["network"], "latest": "1.2.0"}]
    }

:func:`search_indexes` consults every configured
:class:`~tack.models.IndexSource`. Responses are kept in an
:class:`~tack.cache.IndexCache`; fresh copies are served without touching
the network, and when a fetch fails a stale copy is served with a warning.
One unreachable index never hides the results of the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from tack.cache.index_cache import IndexCache
from tack.exceptions import RegistryFetchError
from tack.models import IndexSource

logger = logging.getLogger(__name__)


class IndexEntry(BaseModel):
    """One plugin listed in an index."""

    name: str
    description: str = ""
    capabilities: list[str] = Field(default_factory=list)
    latest: str = ""


class PluginIndex(BaseModel):
    """A parsed index document."""

    repository: str = ""
    registry: str = ""
    updated: str = ""
    plugins: list[IndexEntry] = Field(default_factory=list)


@dataclass
class SearchHit:
    """An index entry matching a query, with where it came from."""

    entry: IndexEntry
    source: str
    registry: str


def fetch_index(
    url: str,
    timeout: float = 10.0,
    transport: Optional[httpx.BaseTransport] = None,
) -> PluginIndex:
    """Download and parse the index at *url*.

    Raises:
        RegistryFetchError: On transport errors, non-200 responses, or an
            unparseable document.
    """
    try:
        with httpx.Client(
            timeout=timeout, follow_redirects=True, transport=transport
        ) as client:
            response = client.get(url)
            response.raise_for_status()
            return PluginIndex.model_validate(response.json())
    except httpx.HTTPStatusError as exc:
        raise RegistryFetchError(
            f"index returned HTTP {exc.response.status_code}"
        ) from exc
    except httpx.RequestError as exc:
        raise RegistryFetchError(f"fetching index: {exc}") from exc
    except (ValueError, ValidationError) as exc:
        raise RegistryFetchError(f"parsing index: {exc}") from exc


def _cached_fetch(
    source: IndexSource,
    cache: IndexCache,
    *,
    timeout: float,
    transport: Optional[httpx.BaseTransport],
    force_refresh: bool,
) -> PluginIndex:
    if not force_refresh:
        fresh = cache.get_fresh(source.url)
        if fresh is not None:
            return PluginIndex.model_validate(fresh)

    try:
        index = fetch_index(source.url, timeout=timeout, transport=transport)
    except RegistryFetchError as exc:
        stale = cache.get_stale(source.url)
        if stale is None:
            raise
        logger.warning("Using stale %s index (fetch failed: %s)", source.name, exc)
        return PluginIndex.model_validate(stale)

    cache.set(source.url, index.model_dump(mode="json"))
    return index


def search_indexes(
    sources: list[IndexSource],
    query: str,
    cache: IndexCache,
    *,
    timeout: float = 10.0,
    transport: Optional[httpx.BaseTransport] = None,
    force_refresh: bool = False,
) -> list[SearchHit]:
    """Return index entries whose name or description contains *query*.

    Matching is case-insensitive; an empty query matches every entry.
    Results keep index order, then entry order within each index.

    Args:
        sources: Indexes to consult, in order.
        query: Substring to look for.
        cache: Response cache shared across runs.
        timeout: Seconds allowed per index request.
        transport: Optional :mod:`httpx` transport for tests.
        force_refresh: Ignore fresh cache entries and always fetch.
    """
    needle = query.lower()
    hits: list[SearchHit] = []
    for source in sources:
        try:
            index = _cached_fetch(
                source,
                cache,
                timeout=timeout,
                transport=transport,
                force_refresh=force_refresh,
            )
        except RegistryFetchError as exc:
            logger.warning("Failed to fetch %s index: %s", source.name, exc)
            continue
        for entry in index.plugins:
            if (
                not needle
                or needle in entry.name.lower()
                or needle in entry.description.lower()
            ):
                hits.append(SearchHit(entry=entry, source=source.name, registry=index.registry))
    return hits

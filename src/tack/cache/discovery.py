"""Persistent manifest cache for plugin discovery.

Reading a manifest means loading the plugin binary into the runtime, which
is by far the most expensive step of start-up. :class:`DiscoveryCache`
remembers the manifest for every source it has seen together with a cheap
staleness fingerprint:

* bundled plugins (``bundled://plugins/<file>``) are fingerprinted by size
  only, since their content is fixed when tack is packaged;
* local plugins (keyed by absolute path) are fingerprinted by size and
  modification time.

A mismatch on any part of the fingerprint is a miss. The document is
loaded once per discovery pass, mutated in memory, and written back at
most once, only when something changed. A missing or malformed file is
treated as an empty cache.

File format::

    {"files": {"<key>": {"mod_time": "<RFC 3339>", "size": 123, "manifest": {...}}}}
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from tack.config import atomic_write
from tack.models import CacheEntry, Manifest

logger = logging.getLogger(__name__)

BUNDLED_PREFIX = "bundled://plugins/"


def bundled_key(filename: str) -> str:
    """Return the cache key for a bundled plugin file."""
    return f"{BUNDLED_PREFIX}{filename}"


def format_mod_time(mtime_ns: int) -> str:
    """Render an ``st_mtime_ns`` value as an RFC 3339 UTC timestamp.

    Nanoseconds are kept so that two writes within the same second still
    produce different fingerprints on filesystems that record them.
    """
    seconds, nanos = divmod(mtime_ns, 1_000_000_000)
    stamp = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return f"{stamp:%Y-%m-%dT%H:%M:%S}.{nanos:09d}Z"


class _CacheDocument(BaseModel):
    files: dict[str, CacheEntry] = Field(default_factory=dict)


class DiscoveryCache:
    """In-memory view of the discovery cache file.

    Args:
        entries: Initial entries, usually produced by :meth:`load`.
    """

    def __init__(self, entries: Optional[dict[str, CacheEntry]] = None) -> None:
        self.entries: dict[str, CacheEntry] = dict(entries or {})
        self.changed = False

    @classmethod
    def load(cls, path: Path) -> "DiscoveryCache":
        """Read the cache at *path*.

        Never raises for content problems: a missing, unreadable, or
        malformed document yields an empty cache.
        """
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return cls()
        except OSError as exc:
            logger.debug("Cannot read discovery cache %s: %s", path, exc)
            return cls()
        try:
            document = _CacheDocument.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError, TypeError) as exc:
            logger.debug("Ignoring malformed discovery cache %s: %s", path, exc)
            return cls()
        return cls(document.files)

    def save(self, path: Path) -> None:
        """Overwrite *path* with the current entries, creating parent directories."""
        files: dict[str, dict] = {}
        for key, entry in self.entries.items():
            record: dict = {}
            if entry.mod_time is not None:
                record["mod_time"] = entry.mod_time
            record["size"] = entry.size
            record["manifest"] = entry.manifest.model_dump(mode="json")
            files[key] = record
        atomic_write(path, json.dumps({"files": files}, indent=2) + "\n")
        self.changed = False

    def lookup(
        self, key: str, size: int, mod_time: Optional[str] = None
    ) -> Optional[Manifest]:
        """Return the cached manifest for *key* if its fingerprint still matches.

        Pass ``mod_time`` for local sources and leave it ``None`` for
        bundled ones.
        """
        entry = self.entries.get(key)
        if entry is None or entry.size != size:
            return None
        if mod_time is not None and entry.mod_time != mod_time:
            return None
        return entry.manifest

    def store(
        self, key: str, size: int, manifest: Manifest, mod_time: Optional[str] = None
    ) -> None:
        """Record the manifest seen for *key* and mark the cache as changed."""
        self.entries[key] = CacheEntry(mod_time=mod_time, size=size, manifest=manifest)
        self.changed = True

    def evict(self, key: str) -> None:
        """Drop the entry for *key*, if any."""
        if self.entries.pop(key, None) is not None:
            self.changed = True

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

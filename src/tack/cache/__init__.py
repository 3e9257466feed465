"""On-disk caches used by tack.

* :class:`DiscoveryCache` -- the JSON document mapping plugin source keys to
  their last-known manifests, so start-up does not have to load every
  plugin binary just to read its metadata.
* :class:`IndexCache` -- a :mod:`diskcache` store of registry index
  responses that can still be served after they go stale.

Both caches are advisory: losing or corrupting either one costs time,
never correctness.
"""

from tack.cache.discovery import DiscoveryCache, bundled_key, format_mod_time
from tack.cache.index_cache import IndexCache

__all__ = ["DiscoveryCache", "IndexCache", "bundled_key", "format_mod_time"]

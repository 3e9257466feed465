"""Plugin resolution -- where plugins come from and how their bytes are run.

Key pieces:

* :class:`PluginLoader` -- discovers bundled and local plugins (through the
  discovery cache) and resolves single plugins by name, falling back to
  the registry.
* :class:`OCIRegistryResolver` -- downloads plugins from an OCI registry
  into the local plugin directory.
* :class:`PluginRuntime` / :class:`PluginInstance` -- the interface a
  sandbox implementation provides through the ``tack.runtimes`` entry
  point.
* :func:`search_indexes` -- searches remote plugin indexes.

Example:
    Typical usage from the main CLI entry point::

        from tack.plugins import PluginLoader, make_runtime_factory

        loader = PluginLoader(plugins_dir, make_runtime_factory())
        plugins = loader.discover_all()
"""

from tack.plugins.index import search_indexes
from tack.plugins.loader import PluginLoader
from tack.plugins.registry import OCIRegistryResolver, RegistryResolver, resolve_reference
from tack.plugins.runtime import (
    GrantProvider,
    PluginInstance,
    PluginRuntime,
    SessionGrants,
    TrustAllGrants,
    make_runtime_factory,
)

__all__ = [
    "GrantProvider",
    "OCIRegistryResolver",
    "PluginInstance",
    "PluginLoader",
    "PluginRuntime",
    "RegistryResolver",
    "SessionGrants",
    "TrustAllGrants",
    "make_runtime_factory",
    "resolve_reference",
    "search_indexes",
]

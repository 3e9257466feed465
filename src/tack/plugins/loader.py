"""Plugin source resolution across the bundled, local and registry tiers.

:class:`PluginLoader` answers two questions:

* *What plugins are there?* -- :meth:`PluginLoader.discover_all` walks the
  bundled tier and then the local plugin directory, reading each
  candidate's manifest either from the :class:`~tack.cache.DiscoveryCache`
  or, on a miss, from a single runtime call. Local plugins override
  bundled plugins of the same name.
* *Where is plugin X?* -- :meth:`PluginLoader.load_by_name` searches the
  tiers in precedence order and falls back to the registry when one is
  configured.

Every :class:`~tack.models.DiscoveredPlugin` carries a byte loader that
re-reads its file on each call instead of holding the binary in memory.
Discovery tolerates broken candidates: a plugin that cannot be read or
whose manifest cannot be obtained is logged and skipped, and the rest are
still returned.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from tack.cache.discovery import DiscoveryCache, bundled_key, format_mod_time
from tack.exceptions import LoadError, NotFoundError
from tack.models import (
    DEFAULT_REGISTRY,
    DiscoveredPlugin,
    Manifest,
    SourceKind,
    plugin_name_from_file,
)
from tack.plugins.registry import RegistryResolver, resolve_reference
from tack.plugins.runtime import RuntimeFactory

logger = logging.getLogger(__name__)

PLUGIN_SUFFIX = ".wasm"
BUNDLED_DIR = Path(__file__).resolve().parent.parent / "bundled"
"""Plugins shipped inside the tack distribution."""


def file_loader(path: Path) -> Callable[[], bytes]:
    """Return a byte loader that reads *path* afresh on every call."""

    def load() -> bytes:
        return path.read_bytes()

    return load


def _candidate_order(path: Path) -> tuple[str, int, str]:
    # Within one plugin name, versioned files sort first (greatest version
    # last) and the unversioned file after them, so the last one visited is
    # the file load_by_name would pick.
    versioned = "@" in path.stem
    return plugin_name_from_file(path), 0 if versioned else 1, path.name


def _list_candidates(directory: Optional[Path]) -> list[Path]:
    if directory is None or not directory.is_dir():
        return []
    return sorted(
        (p for p in directory.iterdir() if p.suffix == PLUGIN_SUFFIX and p.is_file()),
        key=_candidate_order,
    )


class PluginLoader:
    """Discovers plugins and resolves them by name.

    Args:
        plugins_dir: Local plugin directory (``<data_dir>/plugins``).
        runtime_factory: Returns the runtime used to read manifests from
            plugin bytes. Only called on a cache miss.
        bundled_dir: Directory of plugins shipped with tack.
        cache_path: Location of the discovery cache document. ``None``
            disables persistence.
        registry: Resolver used as the last tier of :meth:`load_by_name`.
        default_registry: Registry prefix for short plugin references.
        timeout: Seconds allowed for a registry fetch.

    Example::

        loader = PluginLoader(get_plugins_dir(), make_runtime_factory(),
                              cache_path=get_discovery_cache_path())
        for plugin in loader.discover_all():
            print(plugin.name, plugin.source.value)
    """

    def __init__(
        self,
        plugins_dir: Path,
        runtime_factory: RuntimeFactory,
        *,
        bundled_dir: Optional[Path] = BUNDLED_DIR,
        cache_path: Optional[Path] = None,
        registry: Optional[RegistryResolver] = None,
        default_registry: str = DEFAULT_REGISTRY,
        timeout: float = 30.0,
    ) -> None:
        self.plugins_dir = plugins_dir
        self.bundled_dir = bundled_dir
        self.cache_path = cache_path
        self.registry = registry
        self.default_registry = default_registry
        self.timeout = timeout
        self._runtime_factory = runtime_factory

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover_all(self) -> list[DiscoveredPlugin]:
        """Discover every bundled and local plugin, using the persisted cache.

        The cache is loaded from :attr:`cache_path`, threaded through
        :meth:`scan`, and written back once if any entry changed. Failing
        to write it only costs a re-parse on the next run.

        Returns:
            The discovered plugins sorted by name.
        """
        cache = (
            DiscoveryCache.load(self.cache_path)
            if self.cache_path is not None
            else DiscoveryCache()
        )
        plugins = self.scan(cache)
        if cache.changed and self.cache_path is not None:
            try:
                cache.save(self.cache_path)
            except OSError as exc:
                logger.warning("Could not write discovery cache %s: %s", self.cache_path, exc)
        return plugins

    def scan(self, cache: DiscoveryCache) -> list[DiscoveredPlugin]:
        """Enumerate both tiers against *cache*, updating it in memory.

        Nothing is written to disk; check ``cache.changed`` afterwards.
        """
        merged: dict[str, DiscoveredPlugin] = {}
        for plugin in self._scan_bundled(cache):
            merged[plugin.name] = plugin
        for plugin in self._scan_local(cache):
            merged[plugin.name] = plugin
        return [merged[name] for name in sorted(merged)]

    def _scan_bundled(self, cache: DiscoveryCache) -> Iterable[DiscoveredPlugin]:
        for path in _list_candidates(self.bundled_dir):
            key = bundled_key(path.name)
            try:
                size = path.stat().st_size
                manifest = cache.lookup(key, size)
                if manifest is None:
                    manifest = self.read_manifest(path.read_bytes())
                    cache.store(key, size, manifest)
            except Exception as exc:
                logger.warning("Skipping bundled plugin %s: %s", path.name, exc)
                continue
            if not manifest.name:
                logger.warning("Skipping bundled plugin %s: manifest has no name", path.name)
                continue
            yield DiscoveredPlugin(
                name=manifest.name,
                manifest=manifest,
                source=SourceKind.BUNDLED,
                path=key,
                loader=file_loader(path),
            )

    def _scan_local(self, cache: DiscoveryCache) -> Iterable[DiscoveredPlugin]:
        for path in _list_candidates(self.plugins_dir):
            key = str(path.resolve())
            try:
                stat = path.stat()
                mod_time = format_mod_time(stat.st_mtime_ns)
                manifest = cache.lookup(key, stat.st_size, mod_time)
                if manifest is None:
                    manifest = self.read_manifest(path.read_bytes())
                    cache.store(key, stat.st_size, manifest, mod_time=mod_time)
            except Exception as exc:
                logger.warning("Skipping plugin %s: %s", path, exc)
                continue
            if not manifest.name:
                logger.warning("Skipping plugin %s: manifest has no name", path)
                continue
            yield DiscoveredPlugin(
                name=manifest.name,
                manifest=manifest,
                source=SourceKind.LOCAL,
                path=key,
                loader=file_loader(path),
            )

    # ------------------------------------------------------------------
    # Resolution by name
    # ------------------------------------------------------------------

    def load_by_name(self, name: str) -> DiscoveredPlugin:
        """Resolve a single plugin by name.

        Resolution order:

        1. ``<plugins_dir>/<name>.wasm``
        2. ``<plugins_dir>/<name>@<version>.wasm``, lexicographically greatest
        3. bundled ``<name>.wasm``
        4. the registry, when a resolver is configured

        Raises:
            NotFoundError: If no tier has the plugin.
            LoadError: If the plugin was found but its manifest could not be read.
            RegistryFetchError: If the registry tier failed.
        """
        exact = self.plugins_dir / f"{name}{PLUGIN_SUFFIX}"
        if exact.is_file():
            return self._from_file(exact, SourceKind.LOCAL)

        versioned = sorted(self.plugins_dir.glob(f"{name}@*{PLUGIN_SUFFIX}"))
        if versioned:
            return self._from_file(versioned[-1], SourceKind.LOCAL)

        if self.bundled_dir is not None:
            bundled = self.bundled_dir / f"{name}{PLUGIN_SUFFIX}"
            if bundled.is_file():
                return self._from_file(bundled, SourceKind.BUNDLED)

        if self.registry is not None:
            reference = resolve_reference(name, self.default_registry)
            fetched = self.registry.fetch(reference, timeout=self.timeout)
            return self._from_file(fetched, SourceKind.REGISTRY)

        raise NotFoundError(f"plugin '{name}' not found")

    def _from_file(self, path: Path, source: SourceKind) -> DiscoveredPlugin:
        manifest = self.read_manifest(path.read_bytes())
        if source is SourceKind.BUNDLED:
            location = bundled_key(path.name)
        else:
            location = str(path.resolve())
        return DiscoveredPlugin(
            name=manifest.name,
            manifest=manifest,
            source=source,
            path=location,
            loader=file_loader(path),
        )

    # ------------------------------------------------------------------
    # Runtime access
    # ------------------------------------------------------------------

    def read_manifest(self, data: bytes) -> Manifest:
        """Load *data* into the runtime once and return its manifest.

        Raises:
            LoadError: If the runtime cannot load the plugin or produce a
                valid manifest.
        """
        instance = None
        try:
            runtime = self._runtime_factory()
            instance = runtime.load(data)
            raw: Any = instance.manifest()
            if isinstance(raw, Manifest):
                return raw
            return Manifest.model_validate(raw)
        except LoadError:
            raise
        except Exception as exc:
            raise LoadError(f"could not read plugin manifest: {exc}") from exc
        finally:
            if instance is not None:
                instance.close()

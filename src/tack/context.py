"""Per-run state shared by the root command and the built-in commands.

One :class:`AppState` is created by :func:`~tack.app.main` before the
command line is parsed and installed as the root context's ``obj``, so every
command reaches it through :func:`get_state`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import typer

from tack.cache.index_cache import IndexCache
from tack.config import get_discovery_cache_path, get_index_cache_dir, get_plugins_dir
from tack.generator.command_tree import build_plugin_app
from tack.models import TOP_GROUP, DiscoveredPlugin, GlobalConfig
from tack.plugins.loader import PluginLoader
from tack.plugins.registry import OCIRegistryResolver
from tack.plugins.runtime import RuntimeFactory, SessionGrants, make_runtime_factory

PROG_NAME = "tack"


@dataclass
class AppState:
    """Everything a command needs to reach plugins and configuration.

    Attributes:
        config: The effective configuration (file plus environment).
        loader: Resolves plugins across the bundled, local and registry tiers.
        runtime_factory: Returns the runtime that executes plugin binaries.
        grants: Capability policy handed to the runtime.
        discovered: Result of discovery, sorted by name.
        root_plugins: Names of plugins attached directly at the root.
        aliases: Accepted aliases, mapped to their expanded command path.
    """

    config: GlobalConfig
    loader: PluginLoader
    runtime_factory: RuntimeFactory
    grants: SessionGrants
    discovered: list[DiscoveredPlugin] = field(default_factory=list)
    root_plugins: set[str] = field(default_factory=set)
    aliases: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: GlobalConfig) -> "AppState":
        """Wire the loader, registry and runtime from *config*."""
        grants = SessionGrants()
        runtime_factory = make_runtime_factory(config.runtime, grants)
        plugins_dir = get_plugins_dir()
        loader = PluginLoader(
            plugins_dir,
            runtime_factory,
            cache_path=get_discovery_cache_path(),
            registry=OCIRegistryResolver(plugins_dir, timeout=config.timeout),
            default_registry=config.default_registry,
            timeout=config.timeout,
        )
        return cls(
            config=config,
            loader=loader,
            runtime_factory=runtime_factory,
            grants=grants,
        )

    def discover(self) -> list[DiscoveredPlugin]:
        """Run discovery and remember the result."""
        self.discovered = self.loader.discover_all()
        return self.discovered

    def find_discovered(self, name: str) -> Optional[DiscoveredPlugin]:
        for plugin in self.discovered:
            if plugin.name == name:
                return plugin
        return None

    def groups_of(self, plugin_name: str) -> list[str]:
        """Return the non-``top`` groups that list *plugin_name*, sorted."""
        return sorted(
            name
            for name, group in self.config.groups.items()
            if name != TOP_GROUP and plugin_name in group.plugins
        )

    def build_plugin(self, plugin: DiscoveredPlugin, prog: str = PROG_NAME) -> typer.Typer:
        """Build a fresh command subtree for *plugin* with the user's flag defaults."""
        return build_plugin_app(
            plugin.manifest,
            plugin.loader,
            self.runtime_factory,
            defaults=self.config.plugin_defaults.get(plugin.name),
            prog=prog,
        )

    def index_cache(self) -> IndexCache:
        return IndexCache(get_index_cache_dir())


def get_state(ctx: typer.Context) -> AppState:
    """Return the :class:`AppState` installed on the root context.

    Raises:
        RuntimeError: If the command runs outside the tack root command.
    """
    state = ctx.find_object(AppState)
    if state is None:
        raise RuntimeError("tack command invoked without application state")
    return state

"""Plugin commands -- list, inspect, install, remove and search plugins.

Provides the ``tack plugin`` sub-command group. Listing and inspection work
from the discovery result computed at startup; installation writes into the
local plugin directory, from an OCI registry or from a ``.wasm`` file on
disk.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import typer

from tack.cache.discovery import DiscoveryCache
from tack.config import get_discovery_cache_path
from tack.context import PROG_NAME, get_state
from tack.exceptions import InvalidUsageError, NotFoundError
from tack.models import DiscoveredPlugin, SourceKind
from tack.output import get_output, info, print_table, success, suggest, warning
from tack.plugins.loader import PLUGIN_SUFFIX
from tack.plugins.registry import resolve_reference

plugin_app = typer.Typer(no_args_is_help=True, rich_markup_mode=None)


def _is_local_path(target: str) -> bool:
    return (
        target.endswith(PLUGIN_SUFFIX)
        or target.startswith(("./", "../"))
        or Path(target).is_absolute()
    )


def _plugin_record(plugin: DiscoveredPlugin) -> dict:
    manifest = plugin.manifest
    services = {
        name: [op.name for op in service.operations]
        for name, service in sorted(manifest.services.items())
    }
    return {
        "name": manifest.name,
        "version": manifest.version,
        "description": manifest.description,
        "source": plugin.source.value,
        "path": plugin.path,
        "services": services,
        "capabilities": sorted(manifest.capabilities),
    }


@plugin_app.command("list")
def plugin_list(ctx: typer.Context) -> None:
    """List discovered plugins.

    Example::

        tack plugin list
        tack -o json plugin list
    """
    state = get_state(ctx)
    if not state.discovered:
        info("No plugins installed.")
        suggest(f"Run: {PROG_NAME} plugin install <name>")
        return

    rows = [
        [p.name, p.manifest.version, p.source.value, p.manifest.description]
        for p in state.discovered
    ]
    print_table(["Name", "Version", "Source", "Description"], rows)


@plugin_app.command("info")
def plugin_info(
    ctx: typer.Context,
    name: str = typer.Argument(help="Plugin name."),
) -> None:
    """Show a plugin's manifest summary: services, operations and capabilities.

    Plugins that were not discovered are resolved by name, which may fetch
    them from the registry.
    """
    state = get_state(ctx)
    plugin = state.find_discovered(name) or state.loader.load_by_name(name)
    get_output().print_record(_plugin_record(plugin), title=plugin.name)


@plugin_app.command("install")
def plugin_install(
    ctx: typer.Context,
    target: str = typer.Argument(
        help="Plugin name (dns, dns@1.2.0), full registry reference, or path to a .wasm file."
    ),
) -> None:
    """Install a plugin from the registry or a local file.

    Example::

        tack plugin install dns
        tack plugin install dns@1.2.0
        tack plugin install ghcr.io/my-org/plugins/custom:1.0.0
        tack plugin install ./custom.wasm
    """
    state = get_state(ctx)
    plugins_dir = state.loader.plugins_dir

    if _is_local_path(target):
        source = Path(target)
        if not source.is_file():
            raise NotFoundError(f"plugin file '{target}' not found")
        plugins_dir.mkdir(parents=True, exist_ok=True)
        dest = plugins_dir / f"{source.stem}{PLUGIN_SUFFIX}"
        shutil.copyfile(source, dest)
        success(f"Installed '{source.stem}' to {dest}")
        return

    reference = resolve_reference(target, state.config.default_registry)
    info(f"Pulling {reference} ...")
    if state.loader.registry is None:
        raise InvalidUsageError("no registry is configured")
    path = state.loader.registry.fetch(reference, timeout=state.config.timeout)
    success(f"Installed {path.stem} to {path}")


@plugin_app.command("remove")
def plugin_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Plugin name, optionally with @version."),
) -> None:
    """Remove a locally installed plugin.

    Without a version every installed version of the plugin is removed.
    Bundled plugins cannot be removed.
    """
    state = get_state(ctx)
    plugins_dir = state.loader.plugins_dir
    base, _, version = name.partition("@")

    if version:
        candidates = [plugins_dir / f"{base}@{version}{PLUGIN_SUFFIX}"]
    else:
        candidates = [plugins_dir / f"{base}{PLUGIN_SUFFIX}"]
        candidates.extend(sorted(plugins_dir.glob(f"{base}@*{PLUGIN_SUFFIX}")))
    removed = [path for path in candidates if path.is_file()]

    if not removed:
        plugin = state.find_discovered(base)
        if plugin is not None and plugin.source is SourceKind.BUNDLED:
            raise InvalidUsageError(f"plugin '{base}' is bundled and cannot be removed")
        raise NotFoundError(f"plugin '{name}' is not installed")

    cache_path = get_discovery_cache_path()
    cache = DiscoveryCache.load(cache_path)
    for path in removed:
        cache.evict(str(path.resolve()))
        path.unlink()
        success(f"Removed {path.name}")
    if cache.changed:
        cache.save(cache_path)

    groups = state.groups_of(base)
    if groups:
        warning(f"'{base}' is still listed in group(s): {', '.join(groups)}")


plugin_app.command("rm", hidden=True)(plugin_remove)


@plugin_app.command("refresh")
def plugin_refresh(
    ctx: typer.Context,
    indexes: bool = typer.Option(
        False, "--indexes", help="Also drop cached plugin index responses."
    ),
) -> None:
    """Rebuild the plugin discovery cache.

    Every plugin's manifest is read again from its binary.
    """
    state = get_state(ctx)
    cache_path = get_discovery_cache_path()
    cache_path.unlink(missing_ok=True)
    plugins = state.discover()
    success(f"Discovery cache rebuilt ({len(plugins)} plugin(s))")

    if indexes:
        index_cache = state.index_cache()
        try:
            index_cache.clear()
        finally:
            index_cache.close()
        success("Index cache cleared")


@plugin_app.command("search")
def plugin_search(
    ctx: typer.Context,
    query: str = typer.Argument("", help="Text to look for in plugin names and descriptions."),
    refresh: bool = typer.Option(
        False, "--refresh", help="Ignore cached index responses."
    ),
) -> None:
    """Search the configured plugin indexes.

    Example::

        tack plugin search dns
        tack plugin search --refresh
    """
    from tack.plugins.index import search_indexes

    state = get_state(ctx)
    cache = state.index_cache()
    try:
        hits = search_indexes(
            state.config.indexes,
            query,
            cache,
            timeout=state.config.timeout,
            force_refresh=refresh,
        )
    finally:
        cache.close()

    if not hits:
        info(f"No plugins match '{query}'." if query else "No plugins found.")
        return

    rows = [
        [hit.entry.name, hit.entry.latest, hit.entry.description, hit.source]
        for hit in hits
    ]
    print_table(["Name", "Latest", "Description", "Index"], rows)
    suggest(f"Install with: {PROG_NAME} plugin install <name>")

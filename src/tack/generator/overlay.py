"""Mount plugin subtrees under user-defined group commands.

Groups come from :attr:`~tack.models.GlobalConfig.groups`. Every group
except ``top`` becomes a root command holding a freshly built subtree for
each of its member plugins, so a plugin that belongs to two groups appears
under both without the copies sharing state. ``top`` never becomes a
command; its members are reported back to the caller, which attaches them
at the root.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

import typer

from tack.models import TOP_GROUP, DiscoveredPlugin, GroupConfig

logger = logging.getLogger(__name__)

PluginBuilder = Callable[[DiscoveredPlugin, str], typer.Typer]
"""Builds a plugin subtree; the second argument is the example command prefix."""


def group_help(description: str, plugin_names: list[str]) -> str:
    """Return the help text of a group node: its description plus its plugins."""
    listing = f"Plugins: {', '.join(plugin_names)}"
    return f"{description}\n\n{listing}" if description else listing


def register_groups(
    root: typer.Typer,
    groups: dict[str, GroupConfig],
    discovered: Iterable[DiscoveredPlugin],
    build: PluginBuilder,
    prog: str = "tack",
) -> set[str]:
    """Attach one command per non-``top`` group to *root*.

    Members that were not discovered are skipped with a warning; a group
    left with no members is not attached at all. Groups are attached in
    name order and members in the order the group lists them.

    Args:
        root: The root application.
        groups: Group definitions keyed by group name.
        discovered: Every plugin found by discovery.
        build: Returns a new subtree for a plugin, given the command prefix
            its examples should use.
        prog: Name of the root command.

    Returns:
        The names of ``top`` members that were discovered.
    """
    by_name = {plugin.name: plugin for plugin in discovered}
    top: set[str] = set()

    for group_name in sorted(groups):
        group = groups[group_name]
        if group_name == TOP_GROUP:
            for plugin_name in group.plugins:
                if plugin_name in by_name:
                    top.add(plugin_name)
                else:
                    logger.warning(
                        "Group '%s' references plugin '%s' which is not installed",
                        group_name,
                        plugin_name,
                    )
            continue

        members: list[DiscoveredPlugin] = []
        for plugin_name in group.plugins:
            plugin = by_name.get(plugin_name)
            if plugin is None:
                logger.warning(
                    "Group '%s' references plugin '%s' which is not installed",
                    group_name,
                    plugin_name,
                )
                continue
            if any(m.name == plugin_name for m in members):
                continue
            members.append(plugin)

        if not members:
            logger.debug("Group '%s' has no installed plugins; not attached", group_name)
            continue

        node = typer.Typer(
            name=group_name,
            help=group_help(group.description, [p.name for p in members]),
            no_args_is_help=True,
            rich_markup_mode=None,
        )
        for plugin in members:
            node.add_typer(build(plugin, f"{prog} {group_name}"), name=plugin.name)
        root.add_typer(node, name=group_name)

    return top

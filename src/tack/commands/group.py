"""Group commands -- organise plugins under named root commands.

Provides the ``tack group`` sub-command group. Each command loads the
global config, applies one mutation from :mod:`tack.groups` and saves the
result; a rejected mutation leaves the file untouched. Changes take effect
on the next invocation.
"""

from __future__ import annotations

from typing import List

import typer

from tack.config import load_global_config, save_global_config
from tack.context import PROG_NAME
from tack.groups import add_plugins, create_group, delete_group, remove_plugins
from tack.models import TOP_GROUP
from tack.output import info, print_table, success, suggest, warning

group_app = typer.Typer(no_args_is_help=True, rich_markup_mode=None)


@group_app.command("list")
def group_list() -> None:
    """List configured groups and their plugins."""
    config = load_global_config()
    if not config.groups:
        info("No groups configured.")
        suggest(f"Run: {PROG_NAME} group create <name>")
        return

    rows = [
        [name, group.description, ", ".join(group.plugins)]
        for name, group in sorted(config.groups.items())
    ]
    print_table(["Group", "Description", "Plugins"], rows)


@group_app.command("create")
def group_create(
    name: str = typer.Argument(help="Group name."),
    description: str = typer.Option(
        "", "--description", "-d", help="Shown in the group's help."
    ),
) -> None:
    """Create an empty group.

    Example::

        tack group create net --description "Network checks"
        tack group create top
    """
    config = load_global_config()
    create_group(config.groups, name, description)
    save_global_config(config)
    success(f"Created group '{name}'")
    suggest(f"Add plugins with: {PROG_NAME} group add {name} <plugin>...")


@group_app.command("delete")
def group_delete(name: str = typer.Argument(help="Group name.")) -> None:
    """Delete a group. Its plugins stay installed."""
    config = load_global_config()
    delete_group(config.groups, name)
    save_global_config(config)
    success(f"Deleted group '{name}'")


@group_app.command("add")
def group_add(
    name: str = typer.Argument(help="Group name."),
    plugins: List[str] = typer.Argument(help="Plugins to add."),
) -> None:
    """Add plugins to a group.

    Plugins already in the group are skipped with a warning. Members of
    the ``top`` group are shown at the root of the command tree.
    """
    config = load_global_config()
    added, skipped = add_plugins(config.groups, name, plugins)
    for plugin in skipped:
        warning(f"'{plugin}' is already in group '{name}'")
    if not added:
        return
    save_global_config(config)
    success(f"Added {', '.join(added)} to group '{name}'")


@group_app.command("remove")
def group_remove(
    name: str = typer.Argument(help="Group name."),
    plugins: List[str] = typer.Argument(help="Plugins to remove."),
) -> None:
    """Remove plugins from a group.

    A plugin can only leave the ``top`` group while another group still
    holds it.
    """
    config = load_global_config()
    remove_plugins(config.groups, name, plugins)
    save_global_config(config)
    success(f"Removed {', '.join(plugins)} from group '{name}'")
    if name != TOP_GROUP:
        orphaned = [
            p
            for p in plugins
            if not any(p in g.plugins for g in config.groups.values())
        ]
        if orphaned:
            info(f"{', '.join(orphaned)} will be shown at the root again")

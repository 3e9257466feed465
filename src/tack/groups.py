"""Validation and mutation rules for user-defined plugin groups.

Groups live in :attr:`~tack.models.GlobalConfig.groups`. Every group other
than :data:`~tack.models.TOP_GROUP` becomes a root command with its member
plugins nested beneath it; members of ``top`` are attached at the root
itself. The functions here enforce the rules that keep that tree
well-formed:

* group names are non-empty and never shadow a built-in command,
* ``top`` cannot be deleted,
* a plugin can only leave ``top`` while another group still holds it, so
  it never becomes unreachable.

All mutators operate on a ``dict[str, GroupConfig]`` in place and never
touch disk; :mod:`tack.commands.group` works on a copy of the loaded
config and saves it only once the mutation succeeded.
"""

from __future__ import annotations

from tack.exceptions import InvalidUsageError, NotFoundError
from tack.models import TOP_GROUP, GroupConfig

RESERVED_NAMES = frozenset(
    {"completion", "version", "plugin", "group", "config", "help"}
)
"""Root command names that neither a group nor a plugin may take."""


def validate_group_name(name: str) -> None:
    """Raise :class:`InvalidUsageError` if *name* cannot be used for a group."""
    if not name or not name.strip():
        raise InvalidUsageError("group name cannot be empty")
    if name in RESERVED_NAMES:
        raise InvalidUsageError(f"group name '{name}' conflicts with built-in command")


def validate_groups(groups: dict[str, GroupConfig]) -> None:
    """Check every group name in *groups*.

    Empty plugin lists are allowed; groups are often created before any
    plugin is added to them.
    """
    for name in groups:
        validate_group_name(name)


def _require(groups: dict[str, GroupConfig], name: str) -> GroupConfig:
    group = groups.get(name)
    if group is None:
        raise NotFoundError(f"group '{name}' not found")
    return group


def create_group(
    groups: dict[str, GroupConfig], name: str, description: str = ""
) -> GroupConfig:
    """Add an empty group called *name*.

    Raises:
        InvalidUsageError: If the name is empty, reserved, or already taken.
    """
    validate_group_name(name)
    if name in groups:
        raise InvalidUsageError(f"group '{name}' already exists")
    group = GroupConfig(description=description)
    groups[name] = group
    return group


def delete_group(groups: dict[str, GroupConfig], name: str) -> None:
    """Remove the group *name*.

    Raises:
        InvalidUsageError: If *name* is the ``top`` group.
        NotFoundError: If no such group exists.
    """
    if name == TOP_GROUP:
        raise InvalidUsageError(
            "cannot delete the 'top' group: it controls which plugins appear "
            "at the root level"
        )
    _require(groups, name)
    del groups[name]


def add_plugins(
    groups: dict[str, GroupConfig], name: str, plugins: list[str]
) -> tuple[list[str], list[str]]:
    """Append *plugins* to group *name*, skipping ones already present.

    Returns:
        A ``(added, skipped)`` pair. Callers warn about ``skipped``.

    Raises:
        NotFoundError: If no such group exists.
    """
    group = _require(groups, name)
    added: list[str] = []
    skipped: list[str] = []
    for plugin in plugins:
        if plugin in group.plugins:
            skipped.append(plugin)
            continue
        group.plugins.append(plugin)
        added.append(plugin)
    return added, skipped


def remove_plugins(
    groups: dict[str, GroupConfig], name: str, plugins: list[str]
) -> None:
    """Remove *plugins* from group *name*.

    Nothing is changed unless every plugin can be removed.

    Raises:
        NotFoundError: If no such group exists.
        InvalidUsageError: If a plugin is not a member, or removing it from
            ``top`` would leave it in no group at all.
    """
    group = _require(groups, name)
    for plugin in plugins:
        if plugin not in group.plugins:
            raise InvalidUsageError(f"plugin '{plugin}' is not in group '{name}'")

    if name == TOP_GROUP:
        for plugin in plugins:
            elsewhere = any(
                plugin in other.plugins
                for other_name, other in groups.items()
                if other_name != TOP_GROUP
            )
            if not elsewhere:
                raise InvalidUsageError(
                    f"cannot remove '{plugin}' from 'top' group: it is not in any "
                    "other group and would become inaccessible"
                )

    drop = set(plugins)
    group.plugins = [p for p in group.plugins if p not in drop]


def grouped_plugins(groups: dict[str, GroupConfig]) -> set[str]:
    """Return every plugin name that belongs to a non-``top`` group."""
    names: set[str] = set()
    for name, group in groups.items():
        if name != TOP_GROUP:
            names.update(group.plugins)
    return names

"""Built-in CLI sub-commands for tack.

This package groups the Typer sub-command modules that sit at the root of
the command tree next to the plugin commands:

* :mod:`~tack.commands.plugin` -- list, inspect, install, remove, refresh
  and search plugins.
* :mod:`~tack.commands.group` -- organise plugins into named groups.
* :mod:`~tack.commands.config` -- view and modify global settings.
* :mod:`~tack.commands.completion` -- print shell completion scripts.
* :mod:`~tack.commands.version` -- print version information.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``plugin`` and ``group``) or a plain callback
function registered directly on the root app (for single commands like
``version``). Their names are reserved: neither a group nor a plugin may
take them.
"""

"""CLI generator -- build Typer command trees from plugin manifests.

This sub-package turns the manifests found by
:class:`~tack.plugins.loader.PluginLoader` into commands:

Typical usage::

    from tack.generator import build_plugin_app, register_groups

    app = build_plugin_app(plugin.manifest, plugin.loader, runtime_factory)
    root.add_typer(app, name=plugin.name)

Sub-modules:

* :mod:`~tack.generator.param_mapper` -- Parse a plugin's config schema and
  map each property to a typed ``--option`` flag.
* :mod:`~tack.generator.command_tree` -- The core algorithm that lays out
  services and operations and attaches leaf commands with dynamically
  generated function signatures.
* :mod:`~tack.generator.overlay` -- Mount plugin subtrees under
  user-defined group commands.
"""

from tack.generator.command_tree import build_plugin_app
from tack.generator.overlay import register_groups

__all__ = ["build_plugin_app", "register_groups"]

"""Process exit statuses used by tack.

A script driving tack can branch on the status alone: 1 for a failed check
or unexpected error, 2 for bad usage, 4 for an unknown plugin, and so on.
:class:`~tack.exceptions.TackError` subclasses carry these values.

Example::

    $ tack nosuchplugin run
    $ echo $?
    4   # EXIT_NOT_FOUND -- no tier could resolve the plugin
"""

EXIT_SUCCESS = 0
"""Success, including a plugin check that passed."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred, or a plugin check reported failure."""

EXIT_INVALID_USAGE = 2
"""Bad arguments, a missing required flag, or a rejected group edit."""

EXIT_NOT_FOUND = 4
"""The requested plugin could not be resolved from any source tier."""

EXIT_REGISTRY_ERROR = 6
"""A registry or index request failed (timeout, DNS failure, bad response)."""

EXIT_SCHEMA_ERROR = 7
"""A plugin manifest carries a configuration schema that cannot be parsed."""

EXIT_PLUGIN_ERROR = 10
"""The plugin binary could not be loaded or its check call failed."""

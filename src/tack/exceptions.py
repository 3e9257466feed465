"""Errors raised by tack.

Each class fixes the process exit status through ``exit_code``.
:func:`tack.app.main` prints the message of any :class:`TackError` that
escapes a command and exits with that status; anything else ends in a
crash log.

Subclass hierarchy::

    TackError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- NotFoundError       (exit 4)
    +-- RegistryFetchError  (exit 6)
    +-- SchemaError         (exit 7)
    +-- PluginError         (exit 10)
    |   +-- LoadError       (exit 10)
    +-- ConfigError         (exit 1)
"""

from tack.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_PLUGIN_ERROR,
    EXIT_REGISTRY_ERROR,
    EXIT_SCHEMA_ERROR,
)


class TackError(Exception):
    """Root of the tack error classes.

    Args:
        message: Shown to the user as ``Error: <message>``.
        exit_code: Replaces the class default for this instance.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(TackError):
    """Raised for invalid CLI arguments, bad group names, or illegal group edits."""

    exit_code = EXIT_INVALID_USAGE


class NotFoundError(TackError):
    """Raised when a plugin name resolves in no source tier."""

    exit_code = EXIT_NOT_FOUND


class RegistryFetchError(TackError):
    """Raised on registry or index transport failures.

    Callers treat this as best-effort: warn, continue with other sources,
    and serve stale cached data when there is any.
    """

    exit_code = EXIT_REGISTRY_ERROR


class SchemaError(TackError):
    """Raised when a manifest's configuration schema cannot be parsed."""

    exit_code = EXIT_SCHEMA_ERROR


class PluginError(TackError):
    """Raised when a plugin fails to load, initialise, or run a check."""

    exit_code = EXIT_PLUGIN_ERROR


class LoadError(PluginError):
    """Raised when the runtime cannot read a manifest from a plugin binary."""


class ConfigError(TackError):
    """Raised for configuration problems (invalid JSON, invalid group definitions)."""

    exit_code = EXIT_GENERIC_FAILURE

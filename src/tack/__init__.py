"""tack -- a command-line front end synthesized from plugin manifests.

Plugins are sandboxed binaries that describe themselves with a declarative
*manifest*: a set of services, each exposing operations with a JSON-schema
shaped input. tack discovers plugins from a bundled tier, a local plugin
directory and a remote registry, and turns every manifest into typed,
help-documented sub-commands at start-up.

Typical workflow::

    tack plugin install dns          # fetch dns@latest from the registry
    tack dns resolve --hostname example.com
    tack group create net --description "Network checks"
    tack group add net dns

Modules:
    app: Root Typer application and CLI entry point.
    models: Pydantic models and value types shared across the package.
    config: XDG-aware directories and global configuration.
    groups: Validation and mutation rules for user-defined groups.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Process exit statuses.
    output: stdout/stderr formatting and result rendering.
"""

__version__ = "0.4.0"

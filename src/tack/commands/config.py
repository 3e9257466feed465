"""Config commands -- view and modify global configuration.

Provides the ``tack config`` sub-command group for reading, updating, and
resetting the user's global configuration file
(:class:`~tack.models.GlobalConfig`). Settings are persisted in the tack
config directory and control defaults such as the output format, registry,
aliases and per-plugin flag defaults.
"""

from __future__ import annotations

import typer

from tack.exit_codes import EXIT_INVALID_USAGE
from tack.output import error, get_output, info, success

config_app = typer.Typer(no_args_is_help=True, rich_markup_mode=None)

_FREE_FORM_SECTIONS = ("aliases", "plugin_defaults")
"""Top-level keys whose entries are user-named and may be created by ``set``."""


@config_app.command("show")
def config_show() -> None:
    """Show current configuration.

    Prints the config directory path to stderr followed by the full
    configuration in the active output format.

    Example::

        tack config show
        tack -o yaml config show
    """
    from tack.config import get_config_dir, load_global_config

    config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    get_output().print_record(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g. 'aliases.sg' or 'plugin_defaults.dns.nameserver')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to match the
    existing field's type (bool, int, float, or str); ``timeout`` also
    accepts durations such as ``500ms`` or ``2m``. Entries under
    ``aliases`` and ``plugin_defaults`` are created as needed. The updated
    config is validated against :class:`~tack.models.GlobalConfig` before
    saving.

    Args:
        key: Dot-separated config key path.
        value: String value to set; coerced to the target field type.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or validation fails.

    Example::

        tack config set output json
        tack config set timeout 10s
        tack config set aliases.sg "aws ec2 describe_security_groups"
        tack config set plugin_defaults.dns.nameserver 1.1.1.1
    """
    from tack.config import (
        OUTPUT_FORMATS,
        load_global_config,
        parse_timeout,
        save_global_config,
    )
    from tack.exceptions import ConfigError, InvalidUsageError
    from tack.groups import validate_groups
    from tack.models import GlobalConfig

    config = load_global_config()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    free_form = keys[0] in _FREE_FORM_SECTIONS and len(keys) > 1

    # Navigate the dot-separated key path.
    target = data
    for k in keys[:-1]:
        if k not in target and free_form:
            target[k] = {}
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target and not free_form:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    # Type coerce the value to match the current field type.
    current = target.get(final_key)
    if isinstance(current, (dict, list)):
        error(f"{key} is a section; set one of its entries instead")
        raise typer.Exit(code=EXIT_INVALID_USAGE)
    if key == "timeout":
        try:
            coerced = parse_timeout(value)
        except ConfigError as exc:
            error(str(exc))
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    elif isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    elif isinstance(current, float):
        try:
            coerced = float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    else:
        coerced = value

    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
        validate_groups(new_config.groups)
    except (ValueError, InvalidUsageError) as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if new_config.output not in OUTPUT_FORMATS:
        error(f"Unknown output format '{new_config.output}'. Choose one of: {', '.join(OUTPUT_FORMATS)}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Reset configuration to defaults.

    Replaces the persisted global config, including groups and aliases,
    with a fresh :class:`~tack.models.GlobalConfig`. Asks for confirmation
    unless ``--yes`` is given.

    Example::

        tack config reset --yes
    """
    from tack.config import save_global_config
    from tack.models import GlobalConfig

    if not yes:
        confirmed = typer.confirm("Reset all config to defaults?", err=True)
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")

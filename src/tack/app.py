"""Typer application factory and CLI entry point for tack.

This module wires together the root Typer application: the built-in
sub-commands (``plugin``, ``group``, ``config``, ``completion``,
``version``), one command subtree per discovered plugin, the user's group
commands and aliases.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and logging, loads the
configuration, discovers plugins, builds the application with
:func:`create_app`, and finally invokes it. Unhandled exceptions are
written to a crash log under the data directory.

See Also:
    :mod:`tack.config`: Global configuration resolution.
    :mod:`tack.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import shlex
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from typer.completion import completion_init
from typer.core import TyperGroup

from tack import __version__
from tack.context import PROG_NAME, AppState
from tack.exit_codes import EXIT_GENERIC_FAILURE, EXIT_NOT_FOUND
from tack.exceptions import NotFoundError
from tack.generator.overlay import register_groups
from tack.groups import RESERVED_NAMES, grouped_plugins
from tack.output import OutputFormat

logger = logging.getLogger(__name__)

APP_HELP = "Run WebAssembly plugins as native commands."


class TackGroup(TyperGroup):
    """Root command group that expands aliases and resolves plugins on demand.

    Both behaviours read the :class:`~tack.context.AppState` installed as
    the root context's ``obj``.
    """

    def resolve_command(
        self, ctx: typer.Context, args: list[str]
    ) -> tuple[Optional[str], Any, list[str]]:
        state = ctx.find_object(AppState)
        if args and state is not None:
            target = state.aliases.get(args[0])
            if target:
                args = [*target, *args[1:]]
        return super().resolve_command(ctx, args)

    def get_command(self, ctx: typer.Context, cmd_name: str) -> Any:
        command = super().get_command(ctx, cmd_name)
        if command is not None or ctx.resilient_parsing or cmd_name.startswith("-"):
            return command
        state = ctx.find_object(AppState)
        if state is None:
            return None
        return resolve_plugin_command(state, cmd_name)


def resolve_plugin_command(state: AppState, name: str) -> TyperGroup:
    """Build the command for a plugin that is not attached at the root.

    The plugin is located with
    :meth:`~tack.plugins.loader.PluginLoader.load_by_name`, which falls back
    to the registry. Plugins that were discovered but belong only to groups
    are not resolved; the user is pointed at their groups instead.

    Raises:
        typer.Exit: With :data:`~tack.exit_codes.EXIT_NOT_FOUND` when the
            plugin cannot be found.
    """
    from tack.output import error, info

    groups = state.groups_of(name) if state.find_discovered(name) else []
    if groups:
        error(f"plugin '{name}' is only available under group(s): {', '.join(groups)}")
        info(f"  Run: {PROG_NAME} {groups[0]} {name}")
        raise typer.Exit(code=EXIT_NOT_FOUND)

    try:
        plugin = state.loader.load_by_name(name)
    except NotFoundError:
        error(f"plugin '{name}' not found")
        if state.root_plugins:
            info(f"  Installed plugins: {', '.join(sorted(state.root_plugins))}")
        info(f"  To install: {PROG_NAME} plugin install {name}")
        raise typer.Exit(code=EXIT_NOT_FOUND) from None

    logger.debug("Resolved plugin '%s' from %s", name, plugin.source.value)
    return typer.main.get_group(state.build_plugin(plugin))


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"{PROG_NAME} {__version__}")
        raise typer.Exit()


def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    output: Optional[OutputFormat] = typer.Option(
        None,
        "--output",
        "-o",
        case_sensitive=False,
        help="Output format for plugin results (default from config).",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    quiet: bool = typer.Option(
        False, "--quiet", help="Suppress output; the exit code indicates the result."
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    trust_plugins: bool = typer.Option(
        False,
        "--trust-plugins",
        help="Grant every capability plugins request without prompting.",
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~tack.output.OutputManager` from the
    CLI flags layered over the configuration, and applies
    ``--trust-plugins`` to the run's grant policy.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        output: Result format; overrides ``output`` from the config.
        verbose: Enable debug-level diagnostic output.
        quiet: Print no results and suppress non-essential diagnostics.
        no_color: Disable all colour and Rich markup.
        trust_plugins: Grant all requested plugin capabilities.
    """
    from tack.output import OutputManager, set_output

    state = ctx.find_object(AppState)
    config_output = state.config.output if state is not None else OutputFormat.TABLE.value
    config_quiet = state.config.quiet if state is not None else False

    fmt = output or OutputFormat(config_output)
    if quiet or config_quiet:
        fmt = OutputFormat.QUIET

    set_output(
        OutputManager(
            format=fmt,
            no_color=no_color,
            quiet=quiet or config_quiet,
            verbose=verbose,
        )
    )
    if verbose:
        logging.getLogger("tack").setLevel(logging.DEBUG)
    if state is not None and trust_plugins:
        state.grants.trust_all = True


# ------------------------------------------------------------------ #
# Assembly
# ------------------------------------------------------------------ #


def _register_builtins(root: typer.Typer) -> None:
    from tack.commands.completion import completion_command
    from tack.commands.config import config_app
    from tack.commands.group import group_app
    from tack.commands.plugin import plugin_app
    from tack.commands.version import version_command

    root.command("version")(version_command)
    root.command("completion")(completion_command)
    root.add_typer(plugin_app, name="plugin", help="Manage plugins.")
    root.add_typer(group_app, name="group", help="Organise plugins into groups.")
    root.add_typer(config_app, name="config", help="Configuration management.")


def _root_names(root: typer.Typer) -> set[str]:
    names = {info.name for info in root.registered_commands if info.name}
    names.update(info.name for info in root.registered_groups if info.name)
    return names


def attach_plugins(root: typer.Typer, state: AppState) -> set[str]:
    """Attach discovered plugins at the root and under their groups.

    With no groups configured every plugin is attached at the root.
    Otherwise the root holds the ``top`` members and plugins that belong
    to no group. Plugins whose name is taken by a built-in command or a
    group are skipped with a warning.

    Returns:
        The names of the plugins attached at the root.
    """
    groups = state.config.groups
    if groups:
        top = register_groups(root, groups, state.discovered, state.build_plugin, PROG_NAME)
        grouped = grouped_plugins(groups)
        candidates = [p for p in state.discovered if p.name in top or p.name not in grouped]
    else:
        candidates = list(state.discovered)

    taken = _root_names(root) | RESERVED_NAMES
    attached: set[str] = set()
    for plugin in candidates:
        if plugin.name in taken:
            logger.warning(
                "Plugin '%s' conflicts with an existing command; not attached at the root",
                plugin.name,
            )
            continue
        root.add_typer(state.build_plugin(plugin), name=plugin.name)
        attached.add(plugin.name)

    state.root_plugins = attached
    return attached


def register_aliases(root: typer.Typer, aliases: dict[str, str]) -> dict[str, list[str]]:
    """Validate *aliases* against the commands already on *root*.

    Aliases that collide with an existing command or expand to nothing are
    skipped with a warning.

    Returns:
        The accepted aliases, each mapped to its expanded command path.
    """
    taken = _root_names(root) | RESERVED_NAMES
    accepted: dict[str, list[str]] = {}
    for name in sorted(aliases):
        if name in taken:
            logger.warning("Alias '%s' conflicts with an existing command; skipped", name)
            continue
        target = shlex.split(aliases[name])
        if not target:
            logger.warning("Alias '%s' has an empty target; skipped", name)
            continue
        accepted[name] = target
    return accepted


def _aliases_epilog(aliases: dict[str, list[str]]) -> Optional[str]:
    if not aliases:
        return None
    lines = "\n".join(f"  {name} = {shlex.join(target)}" for name, target in aliases.items())
    return f"Aliases:\n\n\b\n{lines}"


def create_app(state: AppState) -> typer.Typer:
    """Build the root application for one run.

    ``state.discovered`` must already hold the discovery result.

    Args:
        state: The run's state; installed as the root context's ``obj``.

    Returns:
        A new :class:`typer.Typer` ready to be invoked.
    """
    root = typer.Typer(
        name=PROG_NAME,
        cls=TackGroup,
        help=APP_HELP,
        no_args_is_help=True,
        add_completion=False,
        rich_markup_mode=None,
        context_settings={"obj": state},
    )
    root.callback()(main_callback)
    # add_completion=False skips Typer's own registration of shell handlers.
    completion_init()
    _register_builtins(root)
    attach_plugins(root, state)
    state.aliases = register_aliases(root, state.config.aliases)
    root.info.epilog = _aliases_epilog(state.aliases)
    return root


# ------------------------------------------------------------------ #
# Process setup
# ------------------------------------------------------------------ #


def _setup_logging(verbose: bool) -> None:
    """Route library logging to stderr through Rich."""
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    logging.basicConfig(level=logging.WARNING, format="%(message)s", handlers=[handler])
    logging.getLogger("tack").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.

    Returns:
        Absolute path to the written crash log file.
    """
    from tack.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``tack`` console script.

    Performs the following sequence:

    1. Install signal handlers and logging.
    2. Resolve the configuration (file plus environment).
    3. Discover plugins and build the application with :func:`create_app`.
    4. Invoke the Typer application.

    Unhandled :class:`~tack.exceptions.TackError` instances cause a clean
    exit with the error's ``exit_code``. All other exceptions produce a
    crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    argv = sys.argv[1:]
    _setup_logging(verbose="-v" in argv or "--verbose" in argv)
    try:
        from tack.config import resolve_config

        state = AppState.from_config(resolve_config())
        state.discover()
        app = create_app(state)
        app(prog_name=PROG_NAME)
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from tack.exceptions import TackError
        from tack.output import error

        if isinstance(exc, TackError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)

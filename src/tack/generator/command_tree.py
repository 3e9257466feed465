"""Build a Typer command subtree from a plugin manifest.

This is the core algorithm of tack. It takes one
:class:`~tack.models.Manifest` and produces a :class:`typer.Typer`
application for the plugin whose sub-commands mirror the plugin's services
and operations.

**Algorithm summary**

1. Parse the manifest's config schema. If that fails, the plugin still gets
   a command, but invoking it reports the schema error.
2. With exactly one service, its operations become direct children of the
   plugin node. With two or more, each service becomes an intermediate
   node (in name order) holding its operations.
3. Each operation is a dynamically generated function whose signature has
   one ``--option`` per mapped schema property
   (:func:`~tack.generator.param_mapper.build_flag_descriptors`).
4. Non-error manifest examples are rendered back into flag invocations and
   attached to the operation's help, then promoted to the service node (or
   the plugin node for single-service plugins). With several services, the
   first example of each is also promoted to the plugin node.
5. Invoking an operation reads the plugin's bytes through its byte loader,
   loads them into the runtime, runs ``check`` with a config built from
   ``service``, ``operation`` and the flags the user actually typed, and
   hands the result to :mod:`tack.output`.

Every call builds fresh Typer objects, so the same plugin can be mounted
under several groups without the copies sharing any state.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import typer

from tack.exceptions import PluginError, SchemaError, TackError
from tack.exit_codes import EXIT_GENERIC_FAILURE
from tack.generator.param_mapper import (
    IMPLIED_FIELDS,
    build_flag_descriptors,
    config_value,
    field_to_flag,
    parse_config_schema,
    sanitize_param_name,
)
from tack.models import (
    CheckResult,
    ConfigSchema,
    Manifest,
    OperationExample,
    OperationManifest,
    ServiceManifest,
)
from tack.output import get_output
from tack.plugins.runtime import RuntimeFactory

ByteLoader = Callable[[], bytes]

CONTEXT_PARAM = "_tack_ctx"
"""Name of the generated functions' context parameter. Schema properties
never sanitize to it (see :func:`~tack.generator.param_mapper.sanitize_param_name`)."""


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def build_plugin_app(
    manifest: Manifest,
    loader: ByteLoader,
    runtime_factory: RuntimeFactory,
    defaults: Optional[dict[str, str]] = None,
    prog: str = "tack",
) -> typer.Typer:
    """Build the command subtree for one plugin.

    Args:
        manifest: The plugin's manifest.
        loader: Byte loader for the plugin binary. Only called when an
            operation is invoked.
        runtime_factory: Returns the runtime used to execute the plugin.
        defaults: The user's per-plugin flag defaults, keyed by flag name.
        prog: Command prefix used when rendering examples (``"tack"``, or
            ``"tack <group>"`` for plugins mounted under a group).

    Returns:
        A new :class:`typer.Typer` named after the plugin. Mount it with
        ``root.add_typer(app, name=manifest.name)``.

    Example::

        app = build_plugin_app(plugin.manifest, plugin.loader, runtime_factory)
        root.add_typer(app, name=plugin.name)
    """
    try:
        schema = parse_config_schema(manifest.config_schema)
    except SchemaError as exc:
        return _build_broken_app(manifest, exc)

    services = sorted(manifest.services.items())
    plugin_path = f"{prog} {manifest.name}"

    if len(services) == 1:
        service_name, service = services[0]
        commands, examples = _prepare_operations(
            manifest, service_name, service, schema, loader, runtime_factory,
            defaults, plugin_path,
        )
        app = typer.Typer(
            name=manifest.name,
            help=manifest.description or None,
            epilog=render_epilog(examples),
            no_args_is_help=True,
            rich_markup_mode=None,
        )
        _register(app, commands)
        return app

    sub_apps: list[tuple[str, typer.Typer]] = []
    promoted: list[str] = []
    for service_name, service in services:
        commands, examples = _prepare_operations(
            manifest, service_name, service, schema, loader, runtime_factory,
            defaults, f"{plugin_path} {service_name}",
        )
        sub = typer.Typer(
            name=service_name,
            help=service.description or None,
            epilog=render_epilog(examples),
            no_args_is_help=True,
            rich_markup_mode=None,
        )
        _register(sub, commands)
        sub_apps.append((service_name, sub))
        if examples:
            promoted.append(examples[0])

    app = typer.Typer(
        name=manifest.name,
        help=manifest.description or None,
        epilog=render_epilog(promoted),
        no_args_is_help=True,
        rich_markup_mode=None,
    )
    for service_name, sub in sub_apps:
        app.add_typer(sub, name=service_name)
    return app


def _register(app: typer.Typer, commands: list[tuple[str, str, str, Callable[..., Any]]]) -> None:
    for name, help_text, epilog, fn in commands:
        app.command(name=name, help=help_text or None, epilog=epilog)(fn)


def _build_broken_app(manifest: Manifest, error: SchemaError) -> typer.Typer:
    """Return a plugin node that raises *error* whenever it is invoked."""
    message = f"plugin '{manifest.name}' has an invalid config schema: {error}"
    summary = manifest.description or manifest.name
    app = typer.Typer(
        name=manifest.name,
        help=f"{summary} (unavailable: invalid config schema)",
        invoke_without_command=True,
        no_args_is_help=False,
        rich_markup_mode=None,
    )

    @app.callback()
    def _report() -> None:
        raise SchemaError(message)

    return app


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def _prepare_operations(
    manifest: Manifest,
    service_name: str,
    service: ServiceManifest,
    schema: ConfigSchema,
    loader: ByteLoader,
    runtime_factory: RuntimeFactory,
    defaults: Optional[dict[str, str]],
    parent_path: str,
) -> tuple[list[tuple[str, str, str, Callable[..., Any]]], list[str]]:
    """Build every operation command of one service.

    Returns:
        ``(commands, examples)`` where ``commands`` holds
        ``(name, help, epilog, function)`` tuples and ``examples`` every
        rendered example of the service, in operation order.
    """
    commands: list[tuple[str, str, str, Callable[..., Any]]] = []
    examples: list[str] = []
    for operation in service.operations:
        descriptors = build_flag_descriptors(schema, operation, defaults)
        fn = build_operation_function(
            manifest.name, service_name, operation, descriptors, loader, runtime_factory
        )
        op_examples = render_examples(
            operation.examples, f"{parent_path} {operation.name}"
        )
        commands.append(
            (operation.name, operation.description, render_epilog(op_examples), fn)
        )
        examples.extend(op_examples)
    return commands, examples


def build_operation_function(
    plugin_name: str,
    service_name: str,
    operation: OperationManifest,
    descriptors: list[dict[str, Any]],
    loader: ByteLoader,
    runtime_factory: RuntimeFactory,
) -> Callable[..., Any]:
    """Dynamically generate a Typer-compatible function for *operation*.

    The function source is built as a string, compiled, and executed into
    a namespace so that :mod:`inspect` (which Typer relies on) can read its
    signature. Each parameter's annotation and :func:`typer.Option`
    default are injected into that namespace as sentinels. The first
    parameter is annotated :class:`typer.Context`, so Typer passes the
    invocation context in and the dispatcher can ask where each value
    came from.

    Args:
        plugin_name: Name of the owning plugin, used in error messages.
        service_name: Value of ``service`` in the plugin config.
        operation: The operation; its name becomes ``operation``.
        descriptors: Option descriptors from
            :func:`~tack.generator.param_mapper.build_flag_descriptors`.
        loader: The plugin's byte loader.
        runtime_factory: Returns the runtime that executes the plugin.

    Returns:
        A callable suitable for registration via :meth:`typer.Typer.command`.
    """
    func_name = "_op_" + "_".join(
        sanitize_param_name(part) for part in (plugin_name, service_name, operation.name)
    )

    namespace: dict[str, Any] = {"_ann_ctx": typer.Context}
    sig_parts: list[str] = [f"{CONTEXT_PARAM}: _ann_ctx"]
    for idx, desc in enumerate(descriptors):
        sentinel = f"_default_opt_{idx}"
        namespace[sentinel] = desc["default"]
        ann = f"_ann_opt_{idx}"
        namespace[ann] = desc["type"]
        sig_parts.append(f"{desc['name']}: {ann} = {sentinel}")

    values = ", ".join(f"{desc['name']!r}: {desc['name']}" for desc in descriptors)
    source = (
        f"def {func_name}({', '.join(sig_parts)}):\n"
        f"    return _dispatch({CONTEXT_PARAM}, {{{values}}})\n"
    )

    namespace["_dispatch"] = _make_dispatch(
        plugin_name, service_name, operation, descriptors, loader, runtime_factory
    )
    code = compile(
        source,
        f"<tack:{plugin_name}/{service_name}/{operation.name}>",
        "exec",
        dont_inherit=True,
    )
    exec(code, namespace)  # noqa: S102 -- controlled code generation
    fn = namespace[func_name]
    fn.__doc__ = operation.description or None
    return fn


def build_input_config(
    service_name: str,
    operation_name: str,
    descriptors: list[dict[str, Any]],
    values: dict[str, Any],
    supplied: Callable[[str], bool],
) -> dict[str, Any]:
    """Assemble the config passed to the plugin's ``check`` call.

    Starts from ``{"service": ..., "operation": ...}`` and adds each flag
    for which ``supplied(param_name)`` is true, keyed by its schema field
    name. Defaults the user did not type are left for the plugin to apply.
    """
    config: dict[str, Any] = {"service": service_name, "operation": operation_name}
    for desc in descriptors:
        if supplied(desc["name"]):
            config[desc["field"]] = config_value(desc, values[desc["name"]])
    return config


def _make_dispatch(
    plugin_name: str,
    service_name: str,
    operation: OperationManifest,
    descriptors: list[dict[str, Any]],
    loader: ByteLoader,
    runtime_factory: RuntimeFactory,
) -> Callable[[typer.Context, dict[str, Any]], None]:
    """Return the closure that runs *operation* with the parsed flag values."""

    def _dispatch(ctx: typer.Context, values: dict[str, Any]) -> None:
        def supplied(name: str) -> bool:
            source = ctx.get_parameter_source(name)
            return source is not None and source.name == "COMMANDLINE"

        config = build_input_config(
            service_name, operation.name, descriptors, values, supplied
        )
        result = run_check(plugin_name, loader, runtime_factory, config)

        out = get_output()
        if result.status == "error":
            out.result_error(result)
        else:
            out.format_result(result, operation.output_schema)
        if not result.is_success:
            raise typer.Exit(code=EXIT_GENERIC_FAILURE)

    return _dispatch


def run_check(
    plugin_name: str,
    loader: ByteLoader,
    runtime_factory: RuntimeFactory,
    config: dict[str, Any],
) -> CheckResult:
    """Load the plugin afresh and run one ``check`` call.

    Exactly one instance is created and it is always closed.

    Raises:
        PluginError: If the bytes cannot be read or the runtime fails.
    """
    try:
        data = loader()
    except OSError as exc:
        raise PluginError(f"cannot read plugin '{plugin_name}': {exc}") from exc

    runtime = runtime_factory()
    try:
        instance = runtime.load(data)
    except TackError:
        raise
    except Exception as exc:
        raise PluginError(f"failed to load plugin '{plugin_name}': {exc}") from exc

    try:
        raw = instance.check(config)
    except TackError:
        raise
    except Exception as exc:
        raise PluginError(f"plugin '{plugin_name}' failed: {exc}") from exc
    finally:
        instance.close()

    if isinstance(raw, CheckResult):
        return raw
    return CheckResult.model_validate(raw)


# ---------------------------------------------------------------------------
# Examples
# ---------------------------------------------------------------------------


def example_to_flags(example_input: dict[str, Any]) -> str:
    """Render an example's input object as command-line flags.

    Booleans render as a bare flag when true and are omitted when false;
    lists are comma-joined and objects rendered as ``key=value`` pairs.
    """
    parts: list[str] = []
    for field, value in example_input.items():
        if field in IMPLIED_FIELDS or value is None:
            continue
        flag = f"--{field_to_flag(field)}"
        if isinstance(value, bool):
            if value:
                parts.append(flag)
            continue
        if isinstance(value, list):
            text = ",".join(str(v) for v in value)
        elif isinstance(value, dict):
            text = ",".join(f"{k}={v}" for k, v in value.items())
        else:
            text = str(value)
        parts.append(f"{flag} {json.dumps(text)}")
    return " ".join(parts)


def render_examples(examples: list[OperationExample], command_path: str) -> list[str]:
    """Render the non-error *examples* as ``# description`` + invocation blocks."""
    rendered: list[str] = []
    for example in examples:
        if example.expected_error:
            continue
        flags = example_to_flags(example.input)
        line = f"{command_path} {flags}".rstrip()
        title = example.description or example.name
        rendered.append(f"# {title}\n{line}" if title else line)
    return rendered


def render_epilog(examples: list[str]) -> Optional[str]:
    """Join rendered examples into a help epilog, or ``None`` when there are none.

    Each block is prefixed with click's ``\\b`` marker so its line breaks
    survive help-text wrapping.
    """
    if not examples:
        return None
    blocks = "\n\n".join(f"\b\n{block}" for block in examples)
    return f"Examples:\n\n{blocks}"

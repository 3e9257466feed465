"""Map a plugin's config schema to Typer ``--option`` flags.

This module turns the JSON-schema shaped ``config_schema`` of a
:class:`~tack.models.Manifest` into descriptor dictionaries that
:func:`~tack.generator.command_tree.build_operation_function` uses to
construct dynamically generated function signatures.

**Mapping rules:**

* ``service`` and ``operation`` never become flags; they are implied by the
  command path.
* When an operation declares ``input_fields``, only those properties get a
  flag.
* The flag for a property is its name with every ``_`` replaced by ``-``
  (:func:`field_to_flag`); :func:`flag_to_field` reverses it exactly.
* Each :class:`~tack.models.PropertyKind` has one handler in
  ``_KIND_HANDLERS``. Properties of any other JSON Schema type produce no
  flag.
* Defaults come from the user's per-plugin defaults (keyed by flag name),
  then the schema's ``default``, then the kind's zero value.
* Required properties become mandatory options, so click rejects a missing
  one before any plugin code runs.
"""

from __future__ import annotations

import json
import keyword
import logging
import re
from typing import Any, Callable, List, Optional

import typer

from tack.exceptions import SchemaError
from tack.models import ConfigSchema, OperationManifest, PropertyKind, SchemaProperty

logger = logging.getLogger(__name__)

IMPLIED_FIELDS = frozenset({"service", "operation"})
"""Config keys derived from the command path rather than from flags."""


# ---------------------------------------------------------------------------
# Schema parsing
# ---------------------------------------------------------------------------


def _kind_of(raw_type: Any) -> Optional[PropertyKind]:
    # ["string", "null"] style unions use their first non-null member.
    if isinstance(raw_type, list):
        non_null = [t for t in raw_type if t != "null"]
        raw_type = non_null[0] if non_null else None
    if not isinstance(raw_type, str):
        return None
    try:
        return PropertyKind(raw_type)
    except ValueError:
        return None


def parse_config_schema(raw: Any) -> ConfigSchema:
    """Parse a manifest's raw ``config_schema`` into a :class:`ConfigSchema`.

    ``None`` and empty documents yield an empty schema. JSON text and bytes
    are decoded first.

    Raises:
        SchemaError: If the document is not a JSON object, or its
            ``properties``/``required`` members have the wrong shape.
    """
    if raw is None or raw == "" or raw == b"":
        return ConfigSchema()
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SchemaError(f"config schema is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise SchemaError("config schema must be a JSON object")

    properties = raw.get("properties")
    if properties is None:
        properties = {}
    required = raw.get("required")
    if required is None:
        required = []
    if not isinstance(properties, dict):
        raise SchemaError("config schema 'properties' must be an object")
    if not isinstance(required, list) or not all(isinstance(r, str) for r in required):
        raise SchemaError("config schema 'required' must be a list of names")

    required_set = set(required)
    parsed: dict[str, SchemaProperty] = {}
    for name, body in properties.items():
        if not isinstance(body, dict):
            raise SchemaError(f"config schema property '{name}' must be an object")
        enum_values = body.get("enum") or []
        if not isinstance(enum_values, list):
            raise SchemaError(f"config schema property '{name}' has a non-list enum")
        parsed[name] = SchemaProperty(
            name=name,
            kind=_kind_of(body.get("type")),
            enum_values=[str(v) for v in enum_values],
            default=body.get("default"),
            description=str(body.get("description") or ""),
            required=name in required_set,
        )
    return ConfigSchema(properties=parsed, required=required)


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------

_INVALID_IDENT_RE = re.compile(r"[^a-zA-Z0-9_]")


def field_to_flag(name: str) -> str:
    """Return the flag name (without ``--``) for a schema field name."""
    return name.replace("_", "-")


def flag_to_field(flag: str) -> str:
    """Return the schema field name for a flag name; inverse of :func:`field_to_flag`."""
    return flag.replace("-", "_")


def sanitize_param_name(name: str) -> str:
    """Convert a schema property name to a valid Python identifier.

    Only the generated function's parameter names use this; the flag and
    the config key keep the property's own spelling.

    Example::

        >>> sanitize_param_name("record-type")
        'record_type'
        >>> sanitize_param_name("class")
        'class_'
    """
    result = _INVALID_IDENT_RE.sub("_", name).lower()
    result = re.sub(r"_+", "_", result).strip("_") or "param"
    if result[0].isdigit():
        result = f"_{result}"
    if keyword.iskeyword(result):
        result = f"{result}_"
    return result


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def split_list(values: List[str]) -> List[str]:
    """Flatten repeated and comma-delimited values: ``["a,b", "c"]`` -> ``["a", "b", "c"]``."""
    items: List[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def parse_key_values(values: List[str]) -> dict[str, str]:
    """Parse repeated and comma-delimited ``key=value`` pairs into a dict.

    Raises:
        typer.BadParameter: If an item has no ``=`` or an empty key.
    """
    pairs: dict[str, str] = {}
    for item in split_list(values):
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got '{item}'")
        pairs[key.strip()] = value.strip()
    return pairs


def _split_list_callback(value: List[str]) -> List[str]:
    return split_list(value)


def _key_value_callback(value: List[str]) -> List[str]:
    # Validates at parse time. Typer converts list-typed values after the
    # callback runs, so the dict is built later by config_value().
    return [f"{k}={v}" for k, v in parse_key_values(value).items()]


def _enum_completer(values: list[str]) -> Callable[[str], list[str]]:
    def complete(incomplete: str) -> list[str]:
        return [v for v in values if v.startswith(incomplete)]

    return complete


# ---------------------------------------------------------------------------
# Default resolution
# ---------------------------------------------------------------------------


def _coerce_user_default(kind: PropertyKind, raw: str) -> Any:
    if kind is PropertyKind.STRING:
        return raw
    if kind is PropertyKind.INTEGER:
        return int(raw.strip())
    if kind is PropertyKind.BOOLEAN:
        return raw.strip().lower() == "true"
    if kind is PropertyKind.STRING_ARRAY:
        return split_list([raw])
    return [f"{k}={v}" for k, v in parse_key_values([raw]).items()]


def _coerce_schema_default(kind: PropertyKind, raw: Any) -> Any:
    if kind is PropertyKind.STRING:
        return str(raw)
    if kind is PropertyKind.INTEGER:
        return int(raw)
    if kind is PropertyKind.BOOLEAN:
        if isinstance(raw, str):
            return raw.lower() == "true"
        return bool(raw)
    if kind is PropertyKind.STRING_ARRAY:
        if isinstance(raw, list):
            return [str(v) for v in raw]
        return split_list([str(raw)])
    if isinstance(raw, dict):
        return [f"{k}={v}" for k, v in raw.items()]
    raise ValueError(f"expected an object, got {type(raw).__name__}")


_ZERO_VALUES: dict[PropertyKind, Callable[[], Any]] = {
    PropertyKind.STRING: str,
    PropertyKind.INTEGER: int,
    PropertyKind.BOOLEAN: bool,
    PropertyKind.STRING_ARRAY: list,
    PropertyKind.STRING_MAP: list,
}


def resolve_default(
    prop: SchemaProperty, user_default: Optional[str] = None
) -> Any:
    """Pick a flag's default: user default, then schema default, then zero value.

    Defaults for string-map flags are returned as ``key=value`` items, the
    form click passes through the option's callback. A user or schema
    default that cannot be coerced to the property's kind is logged and
    ignored.

    Raises:
        ValueError: If *prop* has an unrecognised kind and so no flag.
    """
    if prop.kind is None:
        raise ValueError(f"property '{prop.name}' has no flag type")
    if user_default is not None:
        try:
            return _coerce_user_default(prop.kind, user_default)
        except (ValueError, typer.BadParameter) as exc:
            logger.warning(
                "Ignoring default %r for --%s: %s",
                user_default,
                field_to_flag(prop.name),
                exc,
            )
    if prop.default is not None:
        try:
            return _coerce_schema_default(prop.kind, prop.default)
        except (ValueError, TypeError) as exc:
            logger.debug("Ignoring schema default for %s: %s", prop.name, exc)
    return _ZERO_VALUES[prop.kind]()


# ---------------------------------------------------------------------------
# Per-kind option builders
# ---------------------------------------------------------------------------


def _help_for(prop: SchemaProperty) -> Optional[str]:
    help_text = prop.description
    if prop.enum_values:
        hint = f"Choices: {', '.join(prop.enum_values)}"
        help_text = f"{help_text}  {hint}" if help_text else hint
    return help_text or None


def _string_option(prop: SchemaProperty, cli_name: str, default: Any) -> tuple[Any, Any]:
    completer = _enum_completer(prop.enum_values) if prop.enum_values else None
    return str, typer.Option(
        default, cli_name, help=_help_for(prop), autocompletion=completer
    )


def _integer_option(prop: SchemaProperty, cli_name: str, default: Any) -> tuple[Any, Any]:
    return int, typer.Option(default, cli_name, help=_help_for(prop))


def _boolean_option(prop: SchemaProperty, cli_name: str, default: Any) -> tuple[Any, Any]:
    # A flag that defaults to true needs a --no- twin to switch it off.
    if default is True:
        cli_name = f"{cli_name}/--no-{cli_name[2:]}"
    return bool, typer.Option(default, cli_name, help=_help_for(prop))


def _array_option(prop: SchemaProperty, cli_name: str, default: Any) -> tuple[Any, Any]:
    help_text = _help_for(prop)
    note = "Repeatable or comma-separated."
    return List[str], typer.Option(
        default,
        cli_name,
        help=f"{help_text}  {note}" if help_text else note,
        callback=_split_list_callback,
    )


def _map_option(prop: SchemaProperty, cli_name: str, default: Any) -> tuple[Any, Any]:
    help_text = _help_for(prop)
    note = "key=value pairs, repeatable or comma-separated."
    return List[str], typer.Option(
        default,
        cli_name,
        help=f"{help_text}  {note}" if help_text else note,
        callback=_key_value_callback,
    )


_KIND_HANDLERS: dict[PropertyKind, Callable[[SchemaProperty, str, Any], tuple[Any, Any]]] = {
    PropertyKind.STRING: _string_option,
    PropertyKind.INTEGER: _integer_option,
    PropertyKind.BOOLEAN: _boolean_option,
    PropertyKind.STRING_ARRAY: _array_option,
    PropertyKind.STRING_MAP: _map_option,
}


# ---------------------------------------------------------------------------
# Descriptor building
# ---------------------------------------------------------------------------


def map_property_to_typer(
    prop: SchemaProperty, user_default: Optional[str] = None
) -> Optional[dict[str, Any]]:
    """Map one schema property to a Typer option descriptor.

    Args:
        prop: The property to map.
        user_default: The user's configured default for this flag, as text.

    Returns:
        ``None`` for unrecognised kinds, otherwise a dict with:

        * ``name`` (``str``) -- Python-safe parameter name.
        * ``field`` (``str``) -- The schema property name, used as the
          config key when the flag is supplied.
        * ``flag`` (``str``) -- The flag without leading dashes.
        * ``kind`` (:class:`~tack.models.PropertyKind`)
        * ``type`` -- Python type annotation for the parameter.
        * ``default`` -- A :func:`typer.Option` descriptor.
        * ``help`` (``str``) -- Help text for ``--help`` output.
        * ``required`` (``bool``)
    """
    if prop.kind is None:
        logger.debug("No flag mapping for property '%s'", prop.name)
        return None

    flag = field_to_flag(prop.name)
    default: Any = ... if prop.required else resolve_default(prop, user_default)
    py_type, option = _KIND_HANDLERS[prop.kind](prop, f"--{flag}", default)
    return {
        "name": sanitize_param_name(prop.name),
        "field": prop.name,
        "flag": flag,
        "kind": prop.kind,
        "type": py_type,
        "default": option,
        "help": _help_for(prop) or "",
        "required": prop.required,
    }


def build_flag_descriptors(
    schema: ConfigSchema,
    operation: Optional[OperationManifest] = None,
    defaults: Optional[dict[str, str]] = None,
) -> list[dict[str, Any]]:
    """Build the option descriptors for one operation.

    Args:
        schema: The plugin's parsed config schema.
        operation: Supplies the ``input_fields`` allowlist; ``None`` or an
            empty allowlist keeps every property.
        defaults: The user's per-plugin defaults, keyed by flag name.

    Returns:
        Descriptors in schema property order, as produced by
        :func:`map_property_to_typer`.
    """
    allowlist = set(operation.input_fields) if operation and operation.input_fields else None
    defaults = defaults or {}
    descriptors: list[dict[str, Any]] = []
    used_names: set[str] = set()
    used_flags: set[str] = set()

    for name, prop in schema.properties.items():
        if name in IMPLIED_FIELDS:
            continue
        if allowlist is not None and name not in allowlist:
            continue
        desc = map_property_to_typer(prop, defaults.get(field_to_flag(name)))
        if desc is None:
            continue
        if desc["flag"] in used_flags:
            logger.warning("Skipping property '%s': flag --%s is already taken", name, desc["flag"])
            continue
        base, suffix = desc["name"], 2
        while desc["name"] in used_names:
            desc["name"] = f"{base}_{suffix}"
            suffix += 1
        used_names.add(desc["name"])
        used_flags.add(desc["flag"])
        descriptors.append(desc)

    return descriptors


def config_value(descriptor: dict[str, Any], value: Any) -> Any:
    """Convert a parsed flag value into the value placed in the plugin config."""
    if descriptor["kind"] is PropertyKind.STRING_MAP:
        return parse_key_values(list(value or []))
    if descriptor["kind"] is PropertyKind.STRING_ARRAY:
        return list(value or [])
    return value

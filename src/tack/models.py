"""Canonical data shapes shared across all tack modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Manifest models** -- the declarative self-description a plugin returns from
its runtime, persisted verbatim inside the discovery cache:
    :class:`Manifest`, :class:`ServiceManifest`, :class:`OperationManifest`,
    :class:`OperationExample`, plus the parsed schema view
    :class:`SchemaProperty` / :class:`ConfigSchema`.

**Discovery and execution models** -- produced while resolving plugins and
running checks:
    :class:`SourceKind`, :class:`DiscoveredPlugin`, :class:`CacheEntry`,
    :class:`CheckResult`, and :class:`ResultError`.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`GroupConfig`, :class:`IndexSource`, and :class:`GlobalConfig`.

Manifest models use ``extra="allow"`` so that keys tack does not know about
survive a trip through the discovery cache unchanged.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

TOP_GROUP = "top"
"""Reserved group whose members attach directly at the root command."""

DEFAULT_REGISTRY = "ghcr.io/reglet-dev/reglet-plugins"
DEFAULT_INDEX_URL = (
    "https://raw.githubusercontent.com/reglet-dev/reglet-plugins/main/index.json"
)


# --- Manifest Models ---


class OperationExample(BaseModel):
    """A worked example attached to an operation.

    Examples with a non-empty ``expected_error`` document failure modes for
    plugin authors and are never rendered into command help.
    """

    model_config = ConfigDict(extra="allow")

    name: str = ""
    description: str = ""
    input: dict[str, Any] = Field(default_factory=dict)
    expected_error: str = ""


class OperationManifest(BaseModel):
    """A single invocable operation within a service.

    ``input_fields`` is an allowlist over the plugin's config schema; an empty
    list means every schema property becomes a flag for this operation.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    description: str = ""
    input_fields: list[str] = Field(default_factory=list)
    output_schema: Optional[dict[str, Any]] = None
    examples: list[OperationExample] = Field(default_factory=list)


class ServiceManifest(BaseModel):
    """Named grouping of related operations within one plugin."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    description: str = ""
    operations: list[OperationManifest] = Field(default_factory=list)


class Manifest(BaseModel):
    """Declarative description of a plugin.

    ``config_schema`` is kept as raw JSON and only parsed when the command
    tree is synthesized, so a malformed schema affects the plugin's own
    command and nothing else. ``capabilities`` is handed to the grant
    provider untouched.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    version: str = ""
    description: str = ""
    services: dict[str, ServiceManifest] = Field(default_factory=dict)
    config_schema: Any = None
    capabilities: dict[str, Any] = Field(default_factory=dict)


class PropertyKind(str, enum.Enum):
    """Schema property kinds that map onto command-line flags.

    Values are the JSON Schema ``type`` names they are parsed from.
    """

    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    STRING_ARRAY = "array"
    STRING_MAP = "object"


class SchemaProperty(BaseModel):
    """One property of a plugin's config schema, reduced to what flags need.

    ``kind`` is ``None`` for JSON Schema types tack has no flag mapping for.
    """

    name: str
    kind: Optional[PropertyKind] = None
    enum_values: list[str] = Field(default_factory=list)
    default: Any = None
    description: str = ""
    required: bool = False


class ConfigSchema(BaseModel):
    """Parsed view of :attr:`Manifest.config_schema`."""

    properties: dict[str, SchemaProperty] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)


# --- Discovery Models ---


class SourceKind(str, enum.Enum):
    """The tier a plugin was discovered in."""

    BUNDLED = "bundled"
    LOCAL = "local"
    REGISTRY = "registry"


@dataclass(frozen=True)
class DiscoveredPlugin:
    """A plugin found by :class:`~tack.plugins.loader.PluginLoader`.

    ``loader`` re-reads the plugin's bytes on every call. It captures only
    the source path, never the bytes, so many plugins can be enumerated for
    their metadata without holding their binaries in memory.
    """

    name: str
    manifest: Manifest
    source: SourceKind
    path: str
    loader: Callable[[], bytes]


class CacheEntry(BaseModel):
    """Last-known manifest for one source key plus its staleness fingerprint.

    ``mod_time`` is only recorded for local files; bundled plugins are
    fingerprinted by size alone.
    """

    mod_time: Optional[str] = None
    size: int
    manifest: Manifest


# --- Execution Models ---


class ResultError(BaseModel):
    """Structured error reported by a plugin check."""

    model_config = ConfigDict(extra="allow")

    type: str = ""
    code: str = ""
    message: str = ""


class CheckResult(BaseModel):
    """Outcome of one ``check`` call against a plugin instance."""

    model_config = ConfigDict(extra="allow")

    status: str = "success"
    message: str = ""
    data: Any = None
    error: Optional[ResultError] = None

    @property
    def is_success(self) -> bool:
        return self.status == "success"


# --- Configuration Models ---


class GroupConfig(BaseModel):
    """A user-defined group of plugins shown under one root command."""

    description: str = ""
    plugins: list[str] = Field(default_factory=list)


class IndexSource(BaseModel):
    """A remote plugin index consulted by ``tack plugin search``."""

    name: str
    url: str


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/tack/config.json``.

    Loaded and saved by :func:`~tack.config.load_global_config` and
    :func:`~tack.config.save_global_config`. Environment variables and CLI
    flags override these values; see :func:`~tack.config.resolve_config`.
    """

    output: str = Field(default="table", description="table, json, yaml, or quiet")
    quiet: bool = False
    timeout: float = Field(default=30.0, description="Registry timeout in seconds")
    default_registry: str = DEFAULT_REGISTRY
    runtime: Optional[str] = Field(
        default=None, description="Entry-point name of the plugin runtime to use"
    )
    aliases: dict[str, str] = Field(default_factory=dict)
    plugin_defaults: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Per-plugin flag defaults, keyed by plugin then flag name",
    )
    indexes: list[IndexSource] = Field(
        default_factory=lambda: [IndexSource(name="official", url=DEFAULT_INDEX_URL)]
    )
    groups: dict[str, GroupConfig] = Field(default_factory=dict)


def plugin_name_from_file(path: Path) -> str:
    """Return the plugin name encoded in a ``<name>[@<version>].wasm`` file name."""
    return path.stem.split("@", 1)[0]

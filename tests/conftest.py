"""Shared test fixtures for tack.

Provides a fake plugin runtime, helpers that write plugin files, isolated
config environments, and output-state management. These fixtures are
automatically discovered by pytest and available to all test modules
without explicit imports.

Plugin files used in tests are JSON documents rather than WebAssembly::

    {"manifest": {...}, "result": {...}, "broken": false}

:class:`FakeRuntime` "loads" such a file by parsing it, returns the
embedded manifest, and answers every ``check`` with the embedded result.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Optional

import pytest

from tack.models import CheckResult, GlobalConfig, Manifest
from tack.output import OutputFormat, OutputManager, reset_output, set_output
from tack.plugins.registry import RegistryResolver
from tack.plugins.runtime import PluginInstance, PluginRuntime

DNS_MANIFEST: dict[str, Any] = {
    "name": "dns",
    "version": "1.0.0",
    "description": "DNS lookups",
    "services": {
        "dns": {
            "name": "dns",
            "description": "Name resolution",
            "operations": [
                {
                    "name": "resolve",
                    "description": "Resolve a hostname",
                    "input_fields": ["hostname", "record_type", "nameserver"],
                    "output_schema": {
                        "type": "object",
                        "properties": {
                            "hostname": {"type": "string"},
                            "addresses": {"type": "array"},
                        },
                    },
                    "examples": [
                        {
                            "name": "basic",
                            "description": "Resolve an A record",
                            "input": {"hostname": "example.com"},
                        },
                        {
                            "name": "missing",
                            "description": "No hostname",
                            "input": {},
                            "expected_error": "hostname is required",
                        },
                    ],
                }
            ],
        }
    },
    "config_schema": {
        "type": "object",
        "properties": {
            "hostname": {"type": "string", "description": "Host to resolve"},
            "record_type": {
                "type": "string",
                "enum": ["A", "AAAA", "MX"],
                "default": "A",
            },
            "nameserver": {"type": "string"},
        },
        "required": ["hostname"],
    },
}

DNS_RESULT: dict[str, Any] = {
    "status": "success",
    "data": {"hostname": "example.com", "addresses": ["93.184.216.34"]},
}


def make_manifest(name: str, **overrides: Any) -> dict[str, Any]:
    """Return a copy of the dns manifest renamed to *name*."""
    manifest = copy.deepcopy(DNS_MANIFEST)
    manifest["name"] = name
    manifest.update(overrides)
    return manifest


def write_plugin(
    directory: Path,
    filename: str,
    manifest: Optional[dict[str, Any]] = None,
    result: Optional[dict[str, Any]] = None,
    broken: bool = False,
) -> Path:
    """Write a fake plugin file that :class:`FakeRuntime` can load."""
    directory.mkdir(parents=True, exist_ok=True)
    doc = {
        "manifest": manifest if manifest is not None else DNS_MANIFEST,
        "result": result if result is not None else DNS_RESULT,
        "broken": broken,
    }
    path = directory / filename
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


class FakeInstance(PluginInstance):
    def __init__(self, doc: dict[str, Any], runtime: "FakeRuntime") -> None:
        self._doc = doc
        self._runtime = runtime

    def manifest(self) -> Manifest:
        self._runtime.manifest_calls += 1
        return Manifest.model_validate(self._doc["manifest"])

    def check(self, config: dict[str, Any]) -> CheckResult:
        self._runtime.checks.append(config)
        return CheckResult.model_validate(self._doc["result"])

    def close(self) -> None:
        self._runtime.closed += 1


class FakeRuntime(PluginRuntime):
    """Parses plugin bytes as JSON and records every call."""

    def __init__(self, grants=None) -> None:
        super().__init__(grants)
        self.loads = 0
        self.manifest_calls = 0
        self.closed = 0
        self.checks: list[dict[str, Any]] = []

    def load(self, data: bytes) -> FakeInstance:
        self.loads += 1
        doc = json.loads(data)
        if doc.get("broken"):
            raise ValueError("not a plugin")
        return FakeInstance(doc, self)


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    A manager installed by one test (through ``main_callback`` or a
    fixture) would otherwise leak its format into the next.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Runtime fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def runtime_factory(fake_runtime: FakeRuntime):
    """A runtime factory that always returns :func:`fake_runtime`."""
    return lambda: fake_runtime


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config. Clears all TACK_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("tack.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["TACK_OUTPUT", "TACK_TIMEOUT", "TACK_DEFAULT_REGISTRY", "NO_COLOR"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def plugins_dir(isolated_config: Path) -> Path:
    """The local plugin directory inside the isolated data directory."""
    path = isolated_config / "data" / "tack" / "plugins"
    path.mkdir(parents=True, exist_ok=True)
    return path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.JSON, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def table_output() -> OutputManager:
    """Install a colourless table-format OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.TABLE, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Application fixtures
# ---------------------------------------------------------------------------


class StubRegistry(RegistryResolver):
    """Registry that "pulls" by writing a fake plugin named after the reference."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.references: list[str] = []

    def fetch(self, reference: str, timeout: Optional[float] = None) -> Path:
        self.references.append(reference)
        repository, _, tag = reference.rpartition(":")
        name = repository.rsplit("/", 1)[-1]
        return write_plugin(self.directory, f"{name}@{tag}.wasm", make_manifest(name))


@pytest.fixture
def make_state(fake_runtime: FakeRuntime, plugins_dir: Path):
    """Return a factory for an :class:`AppState` wired to the fake runtime.

    Discovery has already run on the returned state. Bundled plugins are
    disabled so only files under :func:`plugins_dir` are seen.
    """
    from tack.config import get_discovery_cache_path, load_global_config
    from tack.context import AppState
    from tack.plugins.loader import PluginLoader
    from tack.plugins.runtime import SessionGrants

    def make(
        config: Optional[GlobalConfig] = None,
        registry: Optional[RegistryResolver] = None,
    ) -> AppState:
        loader = PluginLoader(
            plugins_dir,
            lambda: fake_runtime,
            bundled_dir=None,
            cache_path=get_discovery_cache_path(),
            registry=registry,
        )
        state = AppState(
            config=config if config is not None else load_global_config(),
            loader=loader,
            runtime_factory=lambda: fake_runtime,
            grants=SessionGrants(),
        )
        state.discover()
        return state

    return make


@pytest.fixture
def run_cli(cli_runner):
    """Build the root application for a state and invoke it with *args*."""
    from tack.app import create_app

    def run(state, args: list[str], **kwargs: Any):
        return cli_runner.invoke(create_app(state), args, **kwargs)

    return run

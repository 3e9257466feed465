"""Interfaces to the plugin execution sandbox and the capability gatekeeper.

tack itself never interprets plugin binaries. Loading bytes into a sandbox,
calling into them, and enforcing capability grants is the job of a
*runtime*: any class implementing :class:`PluginRuntime` that is registered
under the ``tack.runtimes`` entry-point group::

    [project.entry-points."tack.runtimes"]
    wazero = "tack_wazero.runtime:WazeroRuntime"

A runtime is constructed with a :class:`GrantProvider`, which it consults
with the capability set a plugin requests when that plugin is loaded (and,
at the runtime's discretion, again before each check).
"""

from __future__ import annotations

import importlib.metadata
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import typer

from tack.exceptions import PluginError
from tack.models import CheckResult, Manifest

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "tack.runtimes"
"""The entry-point group name used for runtime discovery."""


# ------------------------------------------------------------------
# Grants
# ------------------------------------------------------------------


class GrantProvider(ABC):
    """Decides which of a plugin's requested capabilities are granted."""

    @abstractmethod
    def grant(self, plugin: str, requested: dict[str, Any]) -> dict[str, Any]:
        """Return the subset of *requested* that *plugin* may use."""
        ...


class TrustAllGrants(GrantProvider):
    """Grants every requested capability (``--trust-plugins``)."""

    def grant(self, plugin: str, requested: dict[str, Any]) -> dict[str, Any]:
        return dict(requested)


class ConfirmGrants(GrantProvider):
    """Asks once per plugin on the terminal before granting anything.

    Plugins that request no capabilities are never prompted. Declining
    grants nothing; the runtime decides whether the plugin can still run.
    """

    def __init__(self) -> None:
        self._answers: dict[str, bool] = {}

    def grant(self, plugin: str, requested: dict[str, Any]) -> dict[str, Any]:
        if not requested:
            return {}
        if plugin not in self._answers:
            listing = ", ".join(sorted(requested))
            self._answers[plugin] = typer.confirm(
                f"Plugin '{plugin}' requests: {listing}. Allow?", err=True
            )
        return dict(requested) if self._answers[plugin] else {}


class SessionGrants(GrantProvider):
    """Grant policy for one CLI run.

    The runtime is created before the command line is parsed, so the
    ``--trust-plugins`` flag flips :attr:`trust_all` on the provider the
    runtime already holds. Until then every request goes through
    :class:`ConfirmGrants`.
    """

    def __init__(self, trust_all: bool = False) -> None:
        self.trust_all = trust_all
        self._confirm = ConfirmGrants()

    def grant(self, plugin: str, requested: dict[str, Any]) -> dict[str, Any]:
        if self.trust_all:
            return dict(requested)
        return self._confirm.grant(plugin, requested)


# ------------------------------------------------------------------
# Runtime interfaces
# ------------------------------------------------------------------


class PluginInstance(ABC):
    """A plugin loaded into a runtime, ready to answer calls."""

    @abstractmethod
    def manifest(self) -> Manifest:
        """Return the plugin's self-description."""
        ...

    @abstractmethod
    def check(self, config: dict[str, Any]) -> CheckResult:
        """Run one operation; ``config`` carries ``service`` and ``operation``."""
        ...

    def close(self) -> None:
        """Release the instance. The default does nothing."""


class PluginRuntime(ABC):
    """Loads plugin binaries into a sandbox.

    Args:
        grants: Consulted with each plugin's requested capabilities.
    """

    def __init__(self, grants: Optional[GrantProvider] = None) -> None:
        self.grants = grants or TrustAllGrants()

    @abstractmethod
    def load(self, data: bytes) -> PluginInstance:
        """Instantiate the plugin contained in *data*."""
        ...


RuntimeFactory = Callable[[], PluginRuntime]


def available_runtimes() -> dict[str, Any]:
    """Return the entry points registered under ``tack.runtimes``, keyed by name."""
    entry_points = importlib.metadata.entry_points()
    if hasattr(entry_points, "select"):
        eps = entry_points.select(group=ENTRY_POINT_GROUP)
    else:
        eps = entry_points.get(ENTRY_POINT_GROUP, [])  # type: ignore[union-attr]
    return {ep.name: ep for ep in eps}


def make_runtime_factory(
    name: Optional[str] = None, grants: Optional[GrantProvider] = None
) -> RuntimeFactory:
    """Return a factory for the configured runtime.

    Resolution is deferred until the factory is first called, so commands
    that never touch a plugin binary (help, group edits, cached discovery)
    work without any runtime installed. The constructed runtime is reused
    for the rest of the process.

    Args:
        name: Entry-point name to use. When ``None`` the first registered
            runtime in name order is chosen.
        grants: Passed to the runtime's constructor.
    """
    runtime: Optional[PluginRuntime] = None

    def factory() -> PluginRuntime:
        nonlocal runtime
        if runtime is not None:
            return runtime
        candidates = available_runtimes()
        if not candidates:
            raise PluginError(
                "No plugin runtime is installed. Install a package that "
                f"provides the '{ENTRY_POINT_GROUP}' entry point."
            )
        if name is not None:
            if name not in candidates:
                raise PluginError(
                    f"Runtime '{name}' is not installed "
                    f"(available: {', '.join(sorted(candidates))})"
                )
            chosen = name
        else:
            chosen = sorted(candidates)[0]
        try:
            runtime_cls = candidates[chosen].load()
            runtime = runtime_cls(grants)
        except Exception as exc:
            raise PluginError(f"Failed to initialise runtime '{chosen}': {exc}") from exc
        logger.debug("Using plugin runtime '%s'", chosen)
        return runtime

    return factory

"""Where tack keeps its files, and how the global config is read and overridden.

* **Directory layout** -- config, cache and data directories follow the
  XDG variables on Linux/BSD and live under ``~/.tack/`` everywhere else.
  See :func:`get_config_dir`, :func:`get_cache_dir`, :func:`get_data_dir`
  and :func:`get_plugins_dir`.
* **Global config** -- A single :class:`~tack.models.GlobalConfig`
  JSON file storing the output mode, registry, aliases, per-plugin flag
  defaults, index sources and group definitions.
* **Precedence resolution** -- :func:`resolve_config` layers environment
  variables and CLI flags over the global config file.

Both the config file and the discovery cache are written through
:func:`atomic_write`; readers only ever see a complete old or new document.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from tack.exceptions import ConfigError, InvalidUsageError
from tack.groups import validate_groups
from tack.models import GlobalConfig

_APP_NAME = "tack"
_CONFIG_FILENAME = "config.json"
_DISCOVERY_CACHE_FILENAME = "discovery_cache.json"

OUTPUT_FORMATS = ("table", "json", "yaml", "quiet")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform follows the XDG Base Directory layout (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """``~/.tack``, the single root used on macOS and Windows."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Return ``$env_var`` as a path, or ``$HOME/<default_segments...>`` when it is unset."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the directory holding ``config.json``; it is created on first use.

    On Linux/BSD: ``$XDG_CONFIG_HOME/tack/`` (default ``~/.config/tack/``).
    On macOS/Windows: ``~/.tack/``.

    Returns:
        The existing configuration directory.
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache root, created on first use.

    Holds the discovery cache and cached registry indexes. Everything here
    can be deleted at any time; the next run rebuilds it.

    On Linux/BSD: ``$XDG_CACHE_HOME/tack/`` (default ``~/.cache/tack/``).
    On macOS/Windows: ``~/.tack/cache/``.

    Returns:
        The existing cache directory.
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CACHE_HOME", (".cache",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data root (installed plugins, crash logs), created on first use.

    On Linux/BSD: ``$XDG_DATA_HOME/tack/`` (default ``~/.local/share/tack/``).
    On macOS/Windows: ``~/.tack/data/``.

    Returns:
        The existing data directory.
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_plugins_dir() -> Path:
    """Return the local plugin directory (``<data_dir>/plugins/``), creating it if necessary."""
    path = get_data_dir() / "plugins"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_discovery_cache_path() -> Path:
    """Return the path of the discovery cache JSON document.

    The file itself is not created here; a missing cache is an empty cache.
    """
    return get_cache_dir() / _DISCOVERY_CACHE_FILENAME


def get_index_cache_dir() -> Path:
    """Return the directory backing the registry index response cache."""
    path = get_cache_dir() / "indexes"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* in one step.

    *data* goes to a sibling temp file first, which is fsynced and then
    moved over *path* with ``os.replace``. If anything fails the temp file
    is removed and *path* keeps its previous content.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    """``<config dir>/config.json``."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Read ``config.json``, or return defaults when there is none.

    Group definitions are validated after parsing, so a hand-edited file
    with an empty or reserved group name is rejected here rather than
    surfacing later as a confusing command-tree conflict.

    Returns:
        The deserialised :class:`~tack.models.GlobalConfig`. If the
        file is missing, ``GlobalConfig()``.

    Raises:
        ConfigError: If the file exists but contains invalid JSON, fails
            Pydantic validation, or defines invalid groups.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        config = GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc
    try:
        validate_groups(config.groups)
    except InvalidUsageError as exc:
        raise ConfigError(f"Invalid group configuration in {path}: {exc}") from exc
    return config


def save_global_config(config: GlobalConfig) -> None:
    """Write *config* to ``config.json`` through :func:`atomic_write`.

    Args:
        config: The configuration to persist.
    """
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def parse_timeout(value: str) -> float:
    """Parse a timeout such as ``"30"``, ``"30s"``, ``"500ms"`` or ``"2m"`` into seconds.

    Raises:
        ConfigError: If *value* is not a positive duration.
    """
    text = value.strip().lower()
    scale = 1.0
    for suffix, factor in (("ms", 0.001), ("s", 1.0), ("m", 60.0)):
        if text.endswith(suffix):
            text = text[: -len(suffix)]
            scale = factor
            break
    try:
        seconds = float(text) * scale
    except ValueError as exc:
        raise ConfigError(f"Invalid timeout '{value}'") from exc
    if seconds <= 0:
        raise ConfigError(f"Timeout must be positive, got '{value}'")
    return seconds


def resolve_config(
    cli_output: Optional[str] = None,
    cli_quiet: bool = False,
) -> GlobalConfig:
    """Build the effective configuration for this run.

    Precedence (high to low):
        1. CLI flags (``--output``, ``--quiet``)
        2. Environment variables (``TACK_OUTPUT``, ``TACK_TIMEOUT``,
           ``TACK_DEFAULT_REGISTRY``)
        3. User config (``~/.config/tack/config.json``)
        4. Defaults

    Returns:
        The effective :class:`~tack.models.GlobalConfig`.

    Raises:
        ConfigError: If the config file or an override is invalid.
    """
    cfg = load_global_config()

    env_output = os.environ.get("TACK_OUTPUT")
    if env_output:
        cfg.output = env_output
    env_timeout = os.environ.get("TACK_TIMEOUT")
    if env_timeout:
        cfg.timeout = parse_timeout(env_timeout)
    env_registry = os.environ.get("TACK_DEFAULT_REGISTRY")
    if env_registry:
        cfg.default_registry = env_registry

    if cli_output is not None:
        cfg.output = cli_output
    if cli_quiet:
        cfg.quiet = True

    if cfg.output not in OUTPUT_FORMATS:
        raise ConfigError(
            f"Unknown output format '{cfg.output}'. "
            f"Choose one of: {', '.join(OUTPUT_FORMATS)}"
        )
    return cfg

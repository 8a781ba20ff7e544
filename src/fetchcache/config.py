"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.fetchcache/`` on macOS and Windows.  See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Config file** -- an optional JSON file holding a partial
  :class:`~fetchcache.models.CacheConfig` (``config.json`` in the config
  directory, or the path in ``FETCHCACHE_CONFIG``).
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, the config file, and defaults into one
  :class:`~fetchcache.models.CacheConfig`.

Config file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from fetchcache.exceptions import ConfigError
from fetchcache.models import CacheConfig

_APP_NAME = "fetchcache"
_CONFIG_FILENAME = "config.json"

ENV_CONFIG = "FETCHCACHE_CONFIG"
ENV_CACHE_DIR = "FETCHCACHE_CACHE_DIR"
ENV_EXPIRATION = "FETCHCACHE_EXPIRATION"
ENV_SERVE_STALE = "FETCHCACHE_SERVE_STALE"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory (not created).

    On Linux/BSD: ``$XDG_CONFIG_HOME/fetchcache/`` (default ``~/.config/fetchcache/``).
    On macOS/Windows: ``~/.fetchcache/``.
    """
    if _is_xdg_platform():
        return _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    return _fallback_base_dir()


def get_cache_dir() -> Path:
    """Return the default cache directory (not created).

    The :class:`~fetchcache.cache.CacheStore` creates it on first write.

    On Linux/BSD: ``$XDG_CACHE_HOME/fetchcache/`` (default ``~/.cache/fetchcache/``).
    On macOS/Windows: ``~/.fetchcache/cache/``.
    """
    if _is_xdg_platform():
        return _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    return _fallback_base_dir() / "cache"


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/fetchcache/`` (default ``~/.local/share/fetchcache/``).
    On macOS/Windows: ``~/.fetchcache/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_file_path() -> Path:
    """Path of the config file: ``$FETCHCACHE_CONFIG`` or ``<config_dir>/config.json``."""
    override = os.environ.get(ENV_CONFIG)
    if override:
        return Path(override).expanduser()
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On any failure the temp file is cleaned up.
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
        fd = None
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


# --- Value parsing ---


def parse_expiration(value: str) -> Optional[timedelta]:
    """Parse an expiration given in seconds.

    ``""``, ``"none"`` and ``"never"`` mean no expiration.

    Raises:
        ConfigError: If *value* is not a non-negative number.
    """
    text = value.strip().lower()
    if text in ("", "none", "never"):
        return None
    try:
        seconds = float(text)
    except ValueError:
        raise ConfigError(f"Invalid expiration '{value}': expected seconds") from None
    if seconds < 0:
        raise ConfigError(f"Invalid expiration '{value}': must not be negative")
    try:
        return timedelta(seconds=seconds)
    except (OverflowError, ValueError):
        raise ConfigError(f"Invalid expiration '{value}': out of range") from None


def parse_bool(value: str, name: str) -> bool:
    """Parse a boolean environment value.

    Raises:
        ConfigError: If *value* is not a recognised boolean spelling.
    """
    text = value.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid boolean for {name}: '{value}'")


# --- Config file ---


def load_config_file(path: Optional[Path] = None) -> dict[str, Any]:
    """Load the JSON config file.

    Returns:
        The parsed mapping, or an empty dict when the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = path or config_file_path()
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid config file at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file at {path}: expected a JSON object")
    return data


def save_config(config: CacheConfig, path: Optional[Path] = None) -> Path:
    """Persist *config* atomically as JSON and return the path written.

    Raises:
        ConfigError: If the file cannot be written.
    """
    path = path or config_file_path()
    data = config.model_dump(mode="json")
    try:
        _atomic_write(path, json.dumps(data, indent=2) + "\n")
    except OSError as exc:
        raise ConfigError(f"Cannot write config file at {path}: {exc}") from exc
    return path


# --- Precedence resolution ---


def resolve_config(
    cli_cache_dir: Optional[str] = None,
    cli_expiration: Optional[str] = None,
    cli_serve_stale: Optional[bool] = None,
    config_path: Optional[Path] = None,
) -> CacheConfig:
    """Resolve the effective cache configuration.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``FETCHCACHE_CACHE_DIR``,
           ``FETCHCACHE_EXPIRATION``, ``FETCHCACHE_SERVE_STALE``)
        3. Config file
        4. Defaults (XDG cache directory, no expiration, no stale fallback)

    Raises:
        ConfigError: If any layer holds an invalid value.
    """
    data = load_config_file(config_path)
    data.setdefault("cache_directory", str(get_cache_dir()))

    env_cache_dir = os.environ.get(ENV_CACHE_DIR)
    if env_cache_dir:
        data["cache_directory"] = env_cache_dir
    env_expiration = os.environ.get(ENV_EXPIRATION)
    if env_expiration is not None:
        data["expiration"] = parse_expiration(env_expiration)
    env_serve_stale = os.environ.get(ENV_SERVE_STALE)
    if env_serve_stale is not None:
        data["serve_stale_on_error"] = parse_bool(env_serve_stale, ENV_SERVE_STALE)

    if cli_cache_dir is not None:
        data["cache_directory"] = cli_cache_dir
    if cli_expiration is not None:
        data["expiration"] = parse_expiration(cli_expiration)
    if cli_serve_stale is not None:
        data["serve_stale_on_error"] = cli_serve_stale

    data["cache_directory"] = str(Path(data["cache_directory"]).expanduser())

    try:
        return CacheConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

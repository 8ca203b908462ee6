"""Configuration management with XDG paths and precedence resolution.

This module turns the scattered startup inputs of the server into a single
immutable :class:`~modcache.models.Settings` value:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.modcache/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Config file** -- an optional JSON file deserialised into
  :class:`~modcache.models.Settings`. See :func:`load_config_file`.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables, the config file, and defaults into the final
  effective configuration.
* **Forward-proxy selection** -- :func:`select_proxy_url` picks the proxy
  string from an explicit value or the conventional environment variables.
"""

from __future__ import annotations

import json
import os
import platform
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from modcache.exceptions import ConfigError
from modcache.models import Settings

_APP_NAME = "modcache"
_CONFIG_FILENAME = "config.json"

# Consulted in order; the first non-empty value wins.
PROXY_ENV_VARS = ("HTTP_PROXY", "HTTPS_PROXY", "SOCKS5_PROXY")

# setting name -> environment variable
_ENV_SETTINGS = {
    "port": "PORT",
    "cache_dir": "CACHE_DIR",
    "upstream": "UPSTREAM_PROXY",
    "dns": "DNS_SERVER",
}


# --- Directories ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _home_dir(env_var: str, *fallback: str) -> Path:
    """$env_var if set, else the fallback path under the home directory."""
    value = os.environ.get(env_var)
    return Path(value) if value else Path.home().joinpath(*fallback)


def get_config_dir() -> Path:
    """Return the configuration directory (not created).

    On Linux/BSD: ``$XDG_CONFIG_HOME/modcache/`` (default ``~/.config/modcache/``).
    On macOS/Windows: ``~/.modcache/``.
    """
    if _is_xdg_platform():
        return _home_dir("XDG_CONFIG_HOME", ".config") / _APP_NAME
    return Path.home() / f".{_APP_NAME}"


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/modcache/`` (default ``~/.local/share/modcache/``).
    On macOS/Windows: ``~/.modcache/``, shared with the config file.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _home_dir("XDG_DATA_HOME", ".local", "share") / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_config_path() -> Path:
    """Path of the config file read when ``--config`` is not given."""
    return get_config_dir() / _CONFIG_FILENAME


# --- Config file ---


def load_config_file(path: Optional[Path] = None) -> dict[str, Any]:
    """Load the JSON config file.

    Args:
        path: Explicit file path. When ``None``, :func:`default_config_path`
            is used and a missing file is not an error.

    Returns:
        The parsed JSON object, or an empty dict when the default file does
        not exist.

    Raises:
        ConfigError: If an explicit path does not exist, or the file holds
            invalid JSON or something other than a JSON object.
    """
    explicit = path is not None
    path = path if path is not None else default_config_path()
    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid config file at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file at {path}: expected a JSON object")
    return data


# --- Forward proxy selection ---


def select_proxy_url(
    explicit: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Pick the forward-proxy string.

    An explicit value wins. Otherwise ``HTTP_PROXY``, ``HTTPS_PROXY`` and
    ``SOCKS5_PROXY`` are consulted in that order (each also accepted in
    lower case) and the first non-empty one is returned.

    Args:
        explicit: Value from a CLI flag or the config file.
        environ: Environment mapping; defaults to :data:`os.environ`.

    Returns:
        The selected proxy string, or ``""`` when none is configured.
    """
    if explicit:
        return explicit
    env = os.environ if environ is None else environ
    for name in PROXY_ENV_VARS:
        value = env.get(name) or env.get(name.lower())
        if value:
            return value
    return ""


# --- Precedence resolution ---


def resolve_settings(
    cli: Optional[Mapping[str, Any]] = None,
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli`` entries whose value is not ``None``)
        2. Environment variables (``PORT``, ``CACHE_DIR``,
           ``UPSTREAM_PROXY``, ``DNS_SERVER``, and the proxy variables
           listed in :data:`PROXY_ENV_VARS`)
        3. Config file (``--config`` or ``~/.config/modcache/config.json``)
        4. Defaults

    Args:
        cli: Flag values keyed by :class:`~modcache.models.Settings` field
            name.
        config_path: Explicit config file path.
        environ: Environment mapping; defaults to :data:`os.environ`.

    Returns:
        The validated :class:`~modcache.models.Settings`.

    Raises:
        ConfigError: If the config file is unreadable or any merged value
            fails validation.
    """
    env = os.environ if environ is None else environ
    # 4 + 3. Defaults are filled in by the model; the file layers on top.
    data = load_config_file(config_path)

    # 2. Environment variables
    for field, var in _ENV_SETTINGS.items():
        value = env.get(var)
        if value:
            data[field] = value

    # 1. CLI flags (highest precedence)
    for field, value in (cli or {}).items():
        if value is not None and field != "proxy":
            data[field] = value

    # The proxy follows its own chain: flag, then file, then environment.
    explicit_proxy = (cli or {}).get("proxy") or data.get("proxy")
    data["proxy"] = select_proxy_url(explicit_proxy, env)

    try:
        return Settings.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def ensure_cache_dir(settings: Settings) -> Path:
    """Create the cache root if needed and return it.

    Raises:
        ConfigError: If the directory cannot be created.
    """
    path = Path(settings.cache_dir)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"Failed to create cache directory {path}: {exc}") from exc
    return path

"""
Configuration loader — reads picolayer.yml into ``Settings``.

Precedence (lowest to highest): built-in defaults, YAML file,
environment variables, CLI flags (applied by the caller via
``apply_overrides``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from picolayer.core.models.settings import Settings

logger = logging.getLogger(__name__)

CONFIG_FILE = "picolayer.yml"
SYSTEM_CONFIG = Path("/etc/picolayer/config.yml")

# env var → dotted settings key
_ENV_OVERRIDES: dict[str, str] = {
    "GITHUB_TOKEN": "github_token",
    "PICOLAYER_INSTALL_DIR": "install_dir",
    "PICOLAYER_KEEP_RUNTIME": "keep_runtime",
    "PICOLAYER_MAX_RETRIES": "retry.max_retries",
    "PICOLAYER_NETWORK_TIMEOUT": "network_timeout",
    "PICOLAYER_PIPX_HOME": "pipx_home",
}


class ConfigError(Exception):
    """Raised when the configuration file is invalid or unreadable."""


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Locate the config file.

    Order: explicit path, ``PICOLAYER_CONFIG``, ``./picolayer.yml``,
    ``/etc/picolayer/config.yml``.
    """
    if explicit is not None:
        return explicit

    env_path = os.environ.get("PICOLAYER_CONFIG")
    if env_path:
        return Path(env_path)

    for candidate in (Path.cwd() / CONFIG_FILE, SYSTEM_CONFIG):
        if candidate.is_file():
            return candidate
    return None


def _set_dotted(data: dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    node = data
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Allow everything to sit under a top-level "picolayer" key
    return data.get("picolayer", data) if "picolayer" in data else data


def load_settings(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit config file. When None, searched for.
        environ: Environment mapping (default: ``os.environ``).

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    env = os.environ if environ is None else environ
    config_path = find_config_file(path)
    data: dict[str, Any] = _read_yaml(config_path) if config_path else {}

    for var, key in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            _set_dotted(data, key, value)

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        source = config_path or "environment"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e


def apply_overrides(settings: Settings, overrides: dict[str, Any]) -> Settings:
    """Return a copy of ``settings`` with non-None dotted overrides applied."""
    data = settings.model_dump()
    changed = False
    for key, value in overrides.items():
        if value is None:
            continue
        _set_dotted(data, key, value)
        changed = True
    if not changed:
        return settings
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid option value: {e}") from e

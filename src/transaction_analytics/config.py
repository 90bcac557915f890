"""Configuration: data locations, broker and listener settings.

Values are resolved once per process, in this order of precedence:
1. Environment variables
2. An optional YAML file (``--config`` or ``TXN_ANALYTICS_CONFIG``)
3. Documented defaults

A ``.env`` file in the working directory (or a parent) is loaded with
python-dotenv before the environment is read, unless running under pytest
or ``TXN_ANALYTICS_DISABLE_DOTENV`` is set.

Usage:
    from transaction_analytics.config import load_config

    config = load_config()
    config.csv_path
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from transaction_analytics.core.errors import ConfigurationError
from transaction_analytics.core.utils import is_readable_file

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "TXN_ANALYTICS_CONFIG"
DISABLE_DOTENV_ENV = "TXN_ANALYTICS_DISABLE_DOTENV"

# key -> (environment variable, default)
DEFAULTS: Dict[str, tuple[str, str]] = {
    "csv_path": ("CSV_FILE_PATH", "data/sample.csv"),
    "parquet_path": ("PARQUET_FILE_PATH", "data/sample.parquet"),
    "kafka_broker": ("KAFKA_BROKER", "kafka:9092"),
    "kafka_topic": ("KAFKA_TOPIC", "transactions"),
    "kafka_group_id": ("KAFKA_GROUP_ID", "transaction-analytics"),
    "api_host": ("API_HOST", "127.0.0.1"),
    "api_port": ("API_PORT", "3000"),
    "metrics_host": ("METRICS_HOST", "0.0.0.0"),
    "metrics_port": ("METRICS_PORT", "9000"),
}

_PORT_KEYS = ("api_port", "metrics_port")
_PATH_KEYS = ("csv_path", "parquet_path")


@dataclass(frozen=True)
class AppConfig:
    csv_path: Path
    parquet_path: Path
    kafka_broker: str
    kafka_topic: str
    kafka_group_id: str
    api_host: str
    api_port: int
    metrics_host: str
    metrics_port: int

    def get(self, key: str) -> Any:
        if key not in DEFAULTS:
            raise ConfigurationError(f"Unknown configuration key: {key}")
        return getattr(self, key)

    def as_dict(self) -> Dict[str, str]:
        return {f.name: str(getattr(self, f.name)) for f in fields(self)}


_CACHED: Optional[AppConfig] = None


def _load_dotenv() -> None:
    if os.environ.get("PYTEST_CURRENT_TEST") or str(
        os.environ.get(DISABLE_DOTENV_ENV, "")
    ).lower() in {"1", "true", "yes"}:
        logger.debug("Skipping .env loading (pytest or disabled)")
        return
    from dotenv import find_dotenv, load_dotenv

    env_file = find_dotenv(usecwd=True)
    if env_file:
        load_dotenv(env_file, override=False)
        logger.debug("Loaded environment from %s", env_file)


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    unknown = sorted(set(data) - set(DEFAULTS))
    if unknown:
        raise ConfigurationError(f"Unknown keys in {path}: {', '.join(unknown)}")
    return data


def _parse_port(key: str, raw: str) -> int:
    try:
        port = int(str(raw).strip())
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer port, got {raw!r}") from e
    if not 0 < port < 65536:
        raise ConfigurationError(f"{key} out of range: {port}")
    return port


def build_config(
    env: Optional[Mapping[str, str]] = None,
    config_file: Optional[Union[str, Path]] = None,
) -> AppConfig:
    """Resolve configuration from an environment mapping and optional YAML file.

    Args:
        env: Environment to read (defaults to ``os.environ``).
        config_file: YAML file with any of the keys in DEFAULTS.

    Raises:
        ConfigurationError: Unreadable or malformed YAML, unknown keys, or an
            invalid port.
    """
    env = os.environ if env is None else env
    file_values: Dict[str, Any] = {}
    if config_file is None and env.get(CONFIG_FILE_ENV):
        config_file = env[CONFIG_FILE_ENV]
    if config_file is not None:
        file_values = _read_yaml(Path(config_file))

    resolved: Dict[str, Any] = {}
    for key, (env_name, default) in DEFAULTS.items():
        raw = env.get(env_name)
        if raw is None or raw == "":
            raw = file_values.get(key, default)
        if key in _PORT_KEYS:
            resolved[key] = _parse_port(key, raw)
        elif key in _PATH_KEYS:
            resolved[key] = Path(str(raw))
        else:
            resolved[key] = str(raw)
    return AppConfig(**resolved)


def load_config(config_file: Optional[Union[str, Path]] = None, *, reload: bool = False) -> AppConfig:
    """Load configuration once per process and return the cached value."""
    global _CACHED
    if _CACHED is not None and not reload:
        return _CACHED
    _load_dotenv()
    _CACHED = build_config(config_file=config_file)
    logger.debug("Configuration: %s", _CACHED.as_dict())
    return _CACHED


def require_readable(path: Path, key: str) -> Path:
    """Return ``path`` if it is a readable file, else raise ConfigurationError."""
    if not is_readable_file(path):
        raise ConfigurationError(f"{key} points to a missing or unreadable file: {path}")
    return path

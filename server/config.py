from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from server.core.MessageTypes import PROTOCOL_VERSION
from shared.log import get_logger
from shared.utils import is_valid_port

logger = get_logger(__name__)


class ConfigError(Exception):
    """Raised when a config file or override holds an unusable value."""
    pass


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 1337
    version: str = PROTOCOL_VERSION   # sent in HI
    log_level: str = "INFO"
    read_chunk_size: int = 4096


@dataclass(frozen=True)
class BridgeConfig:
    host: str = "127.0.0.1"           # WebSocket listen address
    port: int = 8080
    upstream_host: str = "127.0.0.1"  # relay server
    upstream_port: int = 1337


@dataclass(frozen=True)
class RelayConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)


# Environment variable -> (section, field)
ENV_OVERRIDES: Dict[str, tuple] = {
    "RELAY_HOST": ("server", "host"),
    "RELAY_PORT": ("server", "port"),
    "RELAY_VERSION": ("server", "version"),
    "RELAY_LOG_LEVEL": ("server", "log_level"),
    "RELAY_BRIDGE_HOST": ("bridge", "host"),
    "RELAY_BRIDGE_PORT": ("bridge", "port"),
    "RELAY_UPSTREAM_HOST": ("bridge", "upstream_host"),
    "RELAY_UPSTREAM_PORT": ("bridge", "upstream_port"),
}

_PORT_FIELDS = {"port", "upstream_port"}


def _coerce(section: str, name: str, value: Any, expected: type) -> Any:
    if expected is int:
        if isinstance(value, bool):
            raise ConfigError(f"{section}.{name} must be an integer, got {value!r}")
        try:
            value = int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{section}.{name} must be an integer, got {value!r}") from None
        if name in _PORT_FIELDS and not is_valid_port(value):
            raise ConfigError(f"{section}.{name} must be between 1 and 65535, got {value}")
        if name == "read_chunk_size" and value <= 0:
            raise ConfigError(f"{section}.{name} must be positive, got {value}")
        return value
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{section}.{name} must be a non-empty string, got {value!r}")
    return value


def _apply(section_obj: Any, section: str, values: Mapping[str, Any]) -> Any:
    known = {f.name: f for f in fields(section_obj)}
    updates = {}
    for name, value in values.items():
        if name not in known:
            raise ConfigError(f"Unknown option {section}.{name}")
        expected = int if known[name].type in (int, "int") else str
        updates[name] = _coerce(section, name, value, expected)
    return replace(section_obj, **updates)


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error reading {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def load_config(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> RelayConfig:
    """
    Build the effective configuration.

    Precedence (lowest first): built-in defaults, the YAML file at `path`
    (sections `server:` and `bridge:`), then RELAY_* environment variables.
    Command-line options are applied on top by the CLI.
    """
    env = os.environ if env is None else env
    config = RelayConfig()

    if path is not None:
        if not path.exists():
            raise ConfigError(f"Config file {path} does not exist")
        data = _load_yaml(path)
        unknown = set(data) - {"server", "bridge"}
        if unknown:
            raise ConfigError(f"Unknown config sections: {sorted(unknown)}")
        for section in ("server", "bridge"):
            values = data.get(section) or {}
            if not isinstance(values, dict):
                raise ConfigError(f"Section '{section}' must be a mapping")
            config = replace(config, **{section: _apply(getattr(config, section), section, values)})
        logger.info(f"Loaded config from {path}")

    overrides: Dict[str, Dict[str, Any]] = {"server": {}, "bridge": {}}
    for var, (section, name) in ENV_OVERRIDES.items():
        if var in env:
            overrides[section][name] = env[var]
    for section, values in overrides.items():
        if values:
            config = replace(config, **{section: _apply(getattr(config, section), section, values)})

    return config


def with_overrides(section_obj: Any, section: str, **options: Any) -> Any:
    """Apply CLI options that were actually given (None means not given)"""
    given = {k: v for k, v in options.items() if v is not None}
    if not given:
        return section_obj
    return _apply(section_obj, section, given)

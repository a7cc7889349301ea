"""
Device connection settings loaded from a YAML file.

Example file::

    port: /dev/ttyUSB0
    baudrate: 19200
    timeout: 1.0
    handshake: true
    log_level: INFO
    register_map: my_registers.yaml   # optional, relative to this file

Only ``port`` is required.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from .constants import DEFAULT_BAUD, DEFAULT_LOG_LEVEL, DEFAULT_TIMEOUT
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class DeviceConfig:
    """Validated connection settings."""

    port: str
    baudrate: int = DEFAULT_BAUD
    timeout: float = DEFAULT_TIMEOUT
    handshake: bool = True
    log_level: str = DEFAULT_LOG_LEVEL
    register_map: Path | None = None


def load_config(path: str | Path) -> DeviceConfig:
    """Load and validate device settings from a YAML file.

    Args:
        path: Path to the YAML config file.

    Returns:
        A validated :class:`DeviceConfig`.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValidationError: If the config is malformed or contains invalid values.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValidationError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    port = raw.get("port")
    if not isinstance(port, str) or not port:
        raise ValidationError("Config must specify a non-empty 'port' string")

    baudrate = raw.get("baudrate", DEFAULT_BAUD)
    if isinstance(baudrate, bool) or not isinstance(baudrate, int) or baudrate <= 0:
        raise ValidationError(f"'baudrate' must be a positive integer, got {baudrate!r}")

    timeout = raw.get("timeout", DEFAULT_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValidationError(f"'timeout' must be a positive number of seconds, got {timeout!r}")

    handshake = raw.get("handshake", True)
    if not isinstance(handshake, bool):
        raise ValidationError(f"'handshake' must be a boolean, got {type(handshake).__name__}")

    log_level = raw.get("log_level", DEFAULT_LOG_LEVEL)
    if not isinstance(log_level, str) or log_level.upper() not in _LOG_LEVELS:
        raise ValidationError(f"'log_level' must be one of {list(_LOG_LEVELS)}, got {log_level!r}")

    register_map = raw.get("register_map")
    if register_map is not None:
        if not isinstance(register_map, str) or not register_map:
            raise ValidationError("'register_map' must be a non-empty path string")
        register_map = path.parent / register_map

    config = DeviceConfig(
        port=port,
        baudrate=baudrate,
        timeout=float(timeout),
        handshake=handshake,
        log_level=log_level.upper(),
        register_map=register_map,
    )
    logger.debug("Loaded config from %s: %s", path, config)
    return config

"""
FILEKV - Configuration Management

Handles server configuration from environment variables and files.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

import yaml

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _coerce(name: str, value: Any, kind: type) -> Any:
    """
    Convert a config file value to its field type.

    Numeric strings are accepted for numeric fields, and the same true and
    false words as the environment for booleans.

    Raises:
        ValueError: If the value can't be used for the field
    """
    if kind is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE_VALUES + _FALSE_VALUES:
            return value.strip().lower() in _TRUE_VALUES
    elif kind in (int, float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if kind is float or float(value).is_integer():
                return kind(value)
        elif isinstance(value, str):
            try:
                return kind(value.strip())
            except ValueError:
                pass
    elif isinstance(value, str):
        return value

    raise ValueError(f"{name} must be of type {kind.__name__}, got {value!r}")


@dataclass
class ServerConfig:
    """Main server configuration."""

    # Listener settings
    host: str = "127.0.0.1"
    port: int = 5000
    backlog: int = 1  # Serial acceptance only

    # Storage settings
    storage_root: str = "./db"

    # Protocol limits
    max_message_length: int = 128  # Read buffer and response line cap (bytes)
    max_value_length: int = 100  # Largest storable value (bytes)

    # Connection handling
    connection_timeout: float = 5.0  # Per-connection read/write deadline in seconds
    accept_poll_interval: float = 0.5  # How often the loop checks the shutdown flag
    threaded: bool = False  # One thread per connection instead of serial handling

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - FILEKV_HOST: Address to bind
        - FILEKV_PORT: Port to bind
        - FILEKV_BACKLOG: Listen backlog
        - FILEKV_STORAGE_ROOT: Directory holding record files
        - FILEKV_TIMEOUT: Per-connection timeout (seconds)
        - FILEKV_THREADED: Handle connections in threads (1/true/yes/on)
        - FILEKV_LOG_LEVEL: Logging level name
        """
        return cls(
            host=os.environ.get("FILEKV_HOST", cls.host),
            port=int(os.environ.get("FILEKV_PORT", cls.port)),
            backlog=int(os.environ.get("FILEKV_BACKLOG", cls.backlog)),
            storage_root=os.environ.get("FILEKV_STORAGE_ROOT", cls.storage_root),
            connection_timeout=float(os.environ.get("FILEKV_TIMEOUT", cls.connection_timeout)),
            threaded=_env_bool("FILEKV_THREADED", cls.threaded),
            log_level=os.environ.get("FILEKV_LOG_LEVEL", cls.log_level),
        )

    @classmethod
    def _read_file(cls, path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            if path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(f)
            elif path.endswith(".json"):
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path}")

        data = data or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file must contain a mapping: {path}")

        types = {f.name: f.type for f in fields(cls)}
        unknown = sorted(set(data) - set(types))
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

        return {name: _coerce(name, value, types[name]) for name, value in data.items()}

    @classmethod
    def from_file(cls, path: str) -> "ServerConfig":
        """
        Load configuration from YAML or JSON file.

        Args:
            path: Path to configuration file (.yaml, .yml, or .json)

        Returns:
            ServerConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file format is invalid or has unknown keys
        """
        return cls(**cls._read_file(path))

    @classmethod
    def load(cls, config_file: Optional[str] = None) -> "ServerConfig":
        """
        Load configuration with priority: file > env > defaults.

        Args:
            config_file: Optional path to configuration file

        Returns:
            ServerConfig instance
        """
        config = cls.from_env()

        if config_file:
            # Only keys present in the file override env/defaults
            for key, value in cls._read_file(config_file).items():
                setattr(config, key, value)

        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if not 0 <= self.port <= 65535:
            raise ValueError("port must be between 0 and 65535")

        if self.backlog < 1:
            raise ValueError("backlog must be at least 1")

        if not self.storage_root:
            raise ValueError("storage_root is required")

        if self.max_message_length < 16:
            raise ValueError("max_message_length must be at least 16")

        if not 0 < self.max_value_length < self.max_message_length:
            raise ValueError("max_value_length must be positive and below max_message_length")

        if self.connection_timeout <= 0:
            raise ValueError("connection_timeout must be positive")

        if self.accept_poll_interval <= 0:
            raise ValueError("accept_poll_interval must be positive")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log_level: {self.log_level}")

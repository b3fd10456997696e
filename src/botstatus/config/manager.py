"""Configuration Manager - static configuration read once at startup.

This module implements the configuration layer of botstatus:
1. Typed keys (see registry.py) loaded from a TOML file and environment
2. Opaque probe category blocks kept verbatim for the probes that own them
3. Validation with a single ConfigError type so startup can fail fast

Precedence: code defaults < TOML file < environment variables.
"""

import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping, Optional

import structlog
from dotenv import load_dotenv

from .registry import (
    KEY_ALIASES,
    REGISTRY,
    get_config_key,
    get_default_values,
    validate_config_value,
)

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_FILE = Path("config/default.toml")
DEFAULT_ENV_FILE = Path(".env")

ENV_PREFIX = "BOTSTATUS_"

# Substrings marking values that should never be logged
SENSITIVE_KEYS = {
    "token",
    "password",
    "api_key",
    "secret",
}


class ConfigError(ValueError):
    """Raised when configuration cannot be loaded, parsed or validated."""


def _redact_sensitive_value(key: str, value: Any) -> Any:
    """Redact sensitive configuration values for logging.

    Args:
        key: Configuration key
        value: Configuration value

    Returns:
        Original value if not sensitive, otherwise "[REDACTED]"
    """
    key_lower = key.lower()
    for sensitive_key in SENSITIVE_KEYS:
        if sensitive_key in key_lower:
            return "[REDACTED]"
    return value


class ConfigManager:
    """Holds the static configuration of the status service.

    Attributes:
        values: Typed registry values (dotted keys)
        document: The raw configuration document, probe blocks included
    """

    def __init__(self, config_file: Optional[Path] = None, env_file: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file (default: config/default.toml).
                An explicitly given file must exist.
            env_file: Path to .env file (default: .env in working directory)
        """
        self.values: dict[str, Any] = {}
        self.document: dict[str, Any] = {}

        self._config_file_required = config_file is not None
        self.config_file = Path(config_file) if config_file is not None else DEFAULT_CONFIG_FILE
        self.env_file = Path(env_file) if env_file is not None else DEFAULT_ENV_FILE

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ConfigManager":
        """Build a validated manager from an in-memory document.

        Environment variables are not consulted.

        Raises:
            ConfigError: If a typed value fails validation
        """
        manager = cls()
        manager._apply_document(copy.deepcopy(dict(data)))
        manager._validate()
        return manager

    def load(self) -> dict[str, Any]:
        """Load configuration from TOML and environment variables.

        Returns:
            Dictionary of typed configuration key-value pairs

        Raises:
            ConfigError: If the file cannot be read or parsed, or a value
                fails validation
        """
        logger.info("loading_config", config_file=str(self.config_file))

        if self.env_file.exists():
            load_dotenv(self.env_file)
            logger.info("env_file_loaded", env_file=str(self.env_file))

        document: dict[str, Any] = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "rb") as f:
                    document = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Failed to parse {self.config_file}: {e}") from e
            except OSError as e:
                raise ConfigError(f"Failed to read {self.config_file}: {e}") from e
        elif self._config_file_required:
            raise ConfigError(f"Config file not found: {self.config_file}")
        else:
            logger.warning("config_file_not_found",
                          config_file=str(self.config_file),
                          using_defaults=True)

        self._apply_document(document)
        self._apply_env_overrides()
        self._validate()

        logger.info(
            "config_loaded",
            keys_count=len(self.values),
            probe_blocks=sorted(k for k in self.document if k not in REGISTRY),
            port=self.values["port"],
            ttl_ms=self.values["cache.ttl_ms"],
        )
        return self.values

    def get(self, key: str) -> Any:
        """Get a typed configuration value.

        Raises:
            KeyError: If key not registered
        """
        config_key_def = get_config_key(key)
        return self.values.get(key, config_key_def.default)

    def section(self, name: str, default: Any = None) -> Any:
        """Return a probe category block exactly as written in the document.

        Args:
            name: Top-level block name (e.g. "docker", "services")
            default: Returned when the block is absent
        """
        return self.document.get(name, default)

    def _apply_document(self, document: dict[str, Any]) -> None:
        self.document = document
        values = get_default_values()

        flattened = self._flatten_toml(document)
        for alias, target in KEY_ALIASES.items():
            if alias in flattened and target not in flattened:
                flattened[target] = flattened[alias]

        for key in REGISTRY:
            if key in flattened:
                values[key] = flattened[key]

        self.values = values

    def _apply_env_overrides(self) -> None:
        """Apply environment overrides.

        BOTSTATUS_ prefix with underscores, e.g. BOTSTATUS_CACHE_TTL_MS
        overrides cache.ttl_ms. A bare PORT variable is honoured as well,
        below the prefixed form.
        """
        port_env = os.getenv("PORT")
        if port_env:
            self.values["port"] = self._parse_env("port", "PORT", port_env)

        for key in REGISTRY:
            env_key = ENV_PREFIX + key.replace(".", "_").upper()
            env_value = os.getenv(env_key)
            if env_value is not None:
                self.values[key] = self._parse_env(key, env_key, env_value)

    def _parse_env(self, key: str, env_key: str, env_value: str) -> Any:
        config_key_def = get_config_key(key)
        try:
            parsed = self._parse_env_value(env_value, config_key_def.value_type)
        except ValueError as e:
            logger.error("env_parse_error", key=key, env_key=env_key, error=str(e))
            raise ConfigError(f"Failed to parse env var {env_key}: {e}") from e
        logger.info("env_override_applied", key=key, env_key=env_key,
                    value=_redact_sensitive_value(key, parsed))
        return parsed

    def _validate(self) -> None:
        for key, value in self.values.items():
            is_valid, error_msg = validate_config_value(key, value)
            if not is_valid:
                logger.error("config_validation_failed", key=key, error=error_msg)
                raise ConfigError(f"Config validation failed for '{key}': {error_msg}")

    def _flatten_toml(self, data: dict) -> dict[str, Any]:
        """Flatten nested TOML structure to dotted keys.

        Example: {"cache": {"ttl_ms": 5000}} -> {"cache.ttl_ms": 5000}
        Arrays of tables are kept as values, not descended into.
        """
        result = {}

        def _flatten(d: dict, prefix: str = ""):
            for key, value in d.items():
                full_key = f"{prefix}.{key}" if prefix else key
                if isinstance(value, dict):
                    _flatten(value, full_key)
                else:
                    result[full_key] = value

        _flatten(data)
        return result

    def _parse_env_value(self, value: str, target_type: type) -> Any:
        """Parse environment variable string to target type.

        Raises:
            ValueError: If parsing fails
        """
        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")
        elif target_type == int:
            return int(value)
        elif target_type == float:
            return float(value)
        elif target_type == list:
            return [item.strip() for item in value.split(",")]
        elif target_type == str:
            return value
        else:
            raise ValueError(f"Unsupported type for env parsing: {target_type}")


def initialize_config(config_file: Optional[Path] = None,
                      env_file: Optional[Path] = None) -> ConfigManager:
    """Create and load a configuration manager.

    Raises:
        ConfigError: If configuration fails to load
    """
    manager = ConfigManager(config_file, env_file)
    manager.load()
    return manager

"""Configuration Registry - Defines the configuration keys botstatus understands.

This module provides the ConfigKey dataclass and REGISTRY dictionary that
defines every typed configuration option of the status service.

Probe category blocks ([core], [[services]], [[email]], [docker], ...) are
NOT registered here: they are opaque pass-through documents handed to the
probe that owns them. Only the keys the service itself interprets are typed
and validated.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class ConfigKey:
    """Defines a single configuration key with validation.

    Attributes:
        value_type: Expected Python type (str, int, float, bool, list)
        default: Default value if not specified in config files
        min_value: Minimum value for numeric types (optional)
        max_value: Maximum value for numeric types (optional)
        validator: Custom validation function (optional)
    """
    value_type: type
    default: Any
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None
    validator: Optional[Callable[[Any], bool]] = None


# Legacy spellings accepted in config documents, mapped to registry keys.
KEY_ALIASES: dict[str, str] = {
    "cache.ttlMs": "cache.ttl_ms",
    "hostIp": "host_ip",
    "openclawHome": "openclaw_home",
}


# Configuration Registry
# =======================
# All typed configuration keys are registered here. Everything is read once
# at startup; changing a value requires a restart.

REGISTRY: dict[str, ConfigKey] = {
    # ===== IDENTITY =====
    "name": ConfigKey(
        value_type=str,
        default="bot",
        validator=lambda v: len(v.strip()) > 0,
    ),
    "model": ConfigKey(
        value_type=str,
        default="unknown",
    ),

    # ===== HTTP BINDING =====
    "host": ConfigKey(
        value_type=str,
        default="0.0.0.0",
    ),
    "port": ConfigKey(
        value_type=int,
        default=3200,
        min_value=1,
        max_value=65535,
    ),
    "host_ip": ConfigKey(
        value_type=str,
        default="127.0.0.1",
    ),

    # ===== SNAPSHOT CACHE =====
    "cache.ttl_ms": ConfigKey(
        value_type=int,
        default=10_000,
        min_value=1_000,
        max_value=3_600_000,
    ),

    # ===== PROBES =====
    "probes.timeout_seconds": ConfigKey(
        value_type=int,
        default=5,
        min_value=1,
        max_value=120,
    ),

    # ===== BOT RUNTIME LOCATIONS =====
    "workspace": ConfigKey(
        value_type=str,
        default=".",
    ),
    "openclaw_home": ConfigKey(
        value_type=str,
        default="",
    ),

    # ===== LOGGING =====
    "logging.level": ConfigKey(
        value_type=str,
        default="INFO",
        validator=lambda v: v in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
    ),
    "logging.json": ConfigKey(
        value_type=bool,
        default=False,
    ),
}


def get_config_key(key: str) -> ConfigKey:
    """Get configuration key definition from registry.

    Args:
        key: Configuration key path (e.g., "cache.ttl_ms")

    Returns:
        ConfigKey definition

    Raises:
        KeyError: If key not found in registry
    """
    if key not in REGISTRY:
        raise KeyError(f"Configuration key '{key}' not found in registry")
    return REGISTRY[key]


def validate_config_value(key: str, value: Any) -> tuple[bool, Optional[str]]:
    """Validate a configuration value against its registered definition.

    Args:
        key: Configuration key path
        value: Value to validate

    Returns:
        Tuple of (is_valid, error_message)
        error_message is None if valid
    """
    try:
        config_key = get_config_key(key)
    except KeyError as e:
        return False, str(e)

    # bool is an int subclass; "port = true" must not pass as a number
    if isinstance(value, bool) and config_key.value_type is not bool:
        return False, f"Expected type {config_key.value_type.__name__}, got bool"

    if not isinstance(value, config_key.value_type):
        return False, f"Expected type {config_key.value_type.__name__}, got {type(value).__name__}"

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if config_key.min_value is not None and value < config_key.min_value:
            return False, f"Value {value} below minimum {config_key.min_value}"
        if config_key.max_value is not None and value > config_key.max_value:
            return False, f"Value {value} above maximum {config_key.max_value}"

    if config_key.validator is not None:
        try:
            if not config_key.validator(value):
                return False, f"Custom validation failed for value: {value}"
        except Exception as e:
            return False, f"Validator error: {str(e)}"

    return True, None


def get_default_values() -> dict[str, Any]:
    """Get default values for all configuration keys.

    Returns:
        Dictionary of key -> default_value
    """
    return {key: config_key.default for key, config_key in REGISTRY.items()}

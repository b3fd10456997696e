# Configuration - typed registry keys plus opaque probe blocks

from .manager import ConfigError, ConfigManager, initialize_config
from .registry import REGISTRY, ConfigKey, get_config_key, validate_config_value

__all__ = [
    "ConfigError",
    "ConfigManager",
    "initialize_config",
    "REGISTRY",
    "ConfigKey",
    "get_config_key",
    "validate_config_value",
]

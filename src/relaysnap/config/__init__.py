# Configuration - TOML/.env backed two-tier settings

from .manager import ConfigManager, get_config_manager, initialize_config
from .registry import REGISTRY, ConfigKey, get_config_key, validate_config_value

__all__ = [
    "ConfigManager",
    "get_config_manager",
    "initialize_config",
    "REGISTRY",
    "ConfigKey",
    "get_config_key",
    "validate_config_value",
]

"""Configuration Registry - Defines all configuration keys with tier classification.

Two-Tier System:
- Static Config (tier="static"): Requires restart to apply changes
  Examples: refresh interval, SCN update policy
- Dynamic Config (tier="dynamic"): Can be hot-reloaded without restart
  Examples: log level, slow tick threshold
"""

from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional


@dataclass
class ConfigKey:
    """Defines a single configuration key with validation and tier classification.

    Attributes:
        tier: "static" (restart required) or "dynamic" (hot-reloadable)
        value_type: Expected Python type (str, int, float, bool, list)
        default: Default value if not specified in config files
        min_value: Minimum value for numeric types (optional)
        max_value: Maximum value for numeric types (optional)
        restart_required: Auto-derived from tier (True for static, False for dynamic)
        validator: Custom validation function (optional)
    """
    tier: Literal["static", "dynamic"]
    value_type: type
    default: Any
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None
    restart_required: bool = False
    validator: Optional[Callable[[Any], bool]] = None

    def __post_init__(self):
        """Auto-derive restart_required from tier."""
        self.restart_required = (self.tier == "static")


# Configuration Registry
# =======================
# All configuration keys must be registered here with their tier classification.

REGISTRY: dict[str, ConfigKey] = {
    # ===== METRICS SNAPSHOT (Static cadence, Dynamic tuning) =====
    # The interval is fixed for the lifetime of the encoder task.
    "metrics.refresh_interval_seconds": ConfigKey(
        tier="static",
        value_type=int,
        default=1,
        min_value=1,
        max_value=3600,
    ),
    "metrics.slow_tick_threshold_ms": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=100,
        min_value=1,
        max_value=60000,
    ),

    # ===== SCN TRACKING (Static - write-side policy) =====
    "scn.update_policy": ConfigKey(
        tier="static",
        value_type=str,
        default="last_write_wins",
        validator=lambda v: v in ("last_write_wins", "monotonic"),
    ),
    "scn.stripes": ConfigKey(
        tier="static",
        value_type=int,
        default=16,
        min_value=1,
        max_value=1024,
    ),

    # ===== LOGGING (Dynamic verbosity) =====
    "logging.level": ConfigKey(
        tier="dynamic",
        value_type=str,
        default="INFO",
        validator=lambda v: v in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
    ),
    "logging.json": ConfigKey(
        tier="static",
        value_type=bool,
        default=True,
    ),
}


def get_config_key(key: str) -> ConfigKey:
    """Get configuration key definition from registry.

    Args:
        key: Configuration key path (e.g., "metrics.refresh_interval_seconds")

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

    # bool is an int subclass; don't let True pass as an interval
    if config_key.value_type is int and isinstance(value, bool):
        return False, f"Expected type int, got {type(value).__name__}"

    # Type validation
    if not isinstance(value, config_key.value_type):
        return False, f"Expected type {config_key.value_type.__name__}, got {type(value).__name__}"

    # Range validation for numeric types
    if isinstance(value, (int, float)):
        if config_key.min_value is not None and value < config_key.min_value:
            return False, f"Value {value} below minimum {config_key.min_value}"
        if config_key.max_value is not None and value > config_key.max_value:
            return False, f"Value {value} above maximum {config_key.max_value}"

    # Custom validator
    if config_key.validator is not None:
        try:
            if not config_key.validator(value):
                return False, f"Custom validation failed for value: {value}"
        except Exception as e:
            return False, f"Validator error: {str(e)}"

    return True, None


def get_default_values() -> dict[str, Any]:
    """Get default values for all configuration keys."""
    return {key: config_key.default for key, config_key in REGISTRY.items()}


def get_static_keys() -> list[str]:
    """Get list of all static configuration keys (restart required)."""
    return [key for key, config_key in REGISTRY.items() if config_key.tier == "static"]


def get_dynamic_keys() -> list[str]:
    """Get list of all dynamic configuration keys (hot-reloadable)."""
    return [key for key, config_key in REGISTRY.items() if config_key.tier == "dynamic"]

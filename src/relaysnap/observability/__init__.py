"""Observability for relaysnap itself.

Provides structlog configuration; the relay metrics snapshot lives in
relaysnap.metrics.
"""

from .logging import (
    configure_logging,
    configure_logging_from_config,
    on_config_update,
    set_log_level,
)

__all__ = [
    "configure_logging",
    "configure_logging_from_config",
    "on_config_update",
    "set_log_level",
]

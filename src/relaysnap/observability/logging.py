"""structlog configuration for relaysnap."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from ..config.manager import ConfigManager

_CONFIGURED = False


def configure_logging(level: str | int = "INFO", json_output: bool = True) -> None:
    """Configure structlog on top of stdlib logging.

    Safe to call multiple times (no-op after first call). Use
    set_log_level() to change verbosity afterwards.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=pre_chain,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    _CONFIGURED = True


def set_log_level(level: str | int) -> None:
    """Change the root log level at runtime (hooked to logging.level updates)."""
    logging.getLogger().setLevel(level)


def on_config_update(key: str, value: Any) -> None:
    """ConfigManager subscriber applying logging.level hot updates."""
    if key == "logging.level":
        set_log_level(value)


def configure_logging_from_config(config: ConfigManager) -> None:
    """Configure logging from logging.* keys and follow later level updates."""
    configure_logging(config.get("logging.level"), json_output=config.get("logging.json"))
    config.subscribe(on_config_update)

"""Structured logging for the relay."""

from .logging import (
    BoundLogger,
    CollectingRenderer,
    ConsoleRenderer,
    JsonRenderer,
    LogEntry,
    LogRenderer,
    NoOpRenderer,
    configure_from_settings,
    configure_logging,
    get_logger,
    log_scope,
)

__all__ = [
    "BoundLogger",
    "LogEntry",
    "LogRenderer",
    "ConsoleRenderer",
    "JsonRenderer",
    "NoOpRenderer",
    "CollectingRenderer",
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "log_scope",
]

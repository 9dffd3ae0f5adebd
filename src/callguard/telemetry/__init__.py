"""
Telemetry for callguard.

Structured logging used by the decorators for per-attempt and state-change
lines.
"""

from callguard.telemetry.logger import (
    GuardLogger,
    JsonFormatter,
    LogContext,
    TextFormatter,
    bind_log_context,
    configure_logging,
    get_log_context,
    get_logger,
)

__all__ = [
    "GuardLogger",
    "JsonFormatter",
    "LogContext",
    "TextFormatter",
    "bind_log_context",
    "configure_logging",
    "get_log_context",
    "get_logger",
]

"""
Structured logging for the decorators.

Every decorator logs through a child of the ``callguard`` logger, so its
layer is the last part of the logger name. Keyword arguments on a log call
become structured fields. A call-scoped LogContext adds the guarded call's
name and the retry attempt in progress, so a breaker rejection logged deep
inside a stack still says which call and which attempt it belongs to.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any, TextIO

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

ROOT_LOGGER = "callguard"

# Keyword arguments that logging itself understands
_RESERVED = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


@dataclass(frozen=True)
class LogContext:
    """Fields attached to every record logged while a guarded call runs.

    Attributes:
        call_name: Profile name of the guarded call-site
        attempt: Retry attempt in progress, starting at 1
        trace_id: Caller-supplied trace ID
        extra: Any other caller-supplied fields
    """

    call_name: str | None = None
    attempt: int | None = None
    trace_id: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Set fields only, with ``extra`` flattened in."""
        result = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        result.update(self.extra)
        return result

    def merged(self, **changes: Any) -> LogContext:
        """Copy with known fields replaced and unknown ones added to ``extra``."""
        known = {k: v for k, v in changes.items() if k in _CONTEXT_FIELDS}
        extra = {k: v for k, v in changes.items() if k not in _CONTEXT_FIELDS}
        if extra:
            known["extra"] = {**self.extra, **extra}
        return replace(self, **known)


_CONTEXT_FIELDS = frozenset(f.name for f in fields(LogContext)) - {"extra"}

_current: ContextVar[LogContext] = ContextVar("callguard_log_context", default=LogContext())


def get_log_context() -> LogContext:
    """Get the logging context of the running task."""
    return _current.get()


@contextmanager
def bind_log_context(**changes: Any) -> Iterator[LogContext]:
    """Layer fields onto the logging context for the duration of a block.

    Example:
        >>> with bind_log_context(call_name="inventory", region="eu"):
        ...     await guarded(ctx)
    """
    token = _current.set(_current.get().merged(**changes))
    try:
        yield _current.get()
    finally:
        _current.reset(token)


def _layer(record: logging.LogRecord) -> str:
    prefix = ROOT_LOGGER + "."
    return record.name[len(prefix):] if record.name.startswith(prefix) else record.name


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    merged = get_log_context().to_dict()
    merged.update(getattr(record, "fields", {}))
    return merged


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "layer": _layer(record),
            "message": record.getMessage(),
        }
        entry.update(_record_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``time LEVEL [layer] message key=value ...``"""

    def __init__(self) -> None:
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = (
            f"{self.formatTime(record, self.datefmt)} {record.levelname:<7} "
            f"[{_layer(record)}] {record.getMessage()}"
        )
        pairs = " ".join(f"{k}={v}" for k, v in _record_fields(record).items())
        if pairs:
            line = f"{line} {pairs}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class GuardLogger(logging.LoggerAdapter):
    """Logger adapter turning keyword arguments into structured fields.

    Example:
        >>> logger = get_logger("callguard.retry")
        >>> logger.warning("Attempt failed", attempt=1, delay=0.5)
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        record_fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in _RESERVED}
        if record_fields:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "fields": record_fields}
        return msg, kwargs


def _install(handler: logging.Handler, level: int) -> None:
    root = logging.getLogger(ROOT_LOGGER)
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False


def configure_logging(
    level: int | str = logging.INFO,
    format: str = "json",
    stream: TextIO | None = None,
) -> None:
    """Send every callguard log record to one stream.

    Args:
        level: Minimum level, as a number or a name such as ``"DEBUG"``
        format: ``"json"`` or ``"text"``
        stream: Output stream (default: stderr)
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if format == "json" else TextFormatter())
    _install(handler, logging.getLevelName(level.upper()) if isinstance(level, str) else level)


def get_logger(name: str) -> GuardLogger:
    """Get a logger below the ``callguard`` root.

    The root gets a text handler on stderr at INFO the first time any
    callguard logger is requested, unless ``configure_logging`` ran first.
    """
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(TextFormatter())
        _install(handler, logging.INFO)
    return GuardLogger(logging.getLogger(name), {})

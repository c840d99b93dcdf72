"""
Hurupay Observability

Structured logging and correlation ids for relay operations.

    ┌─────────────────────────────────────────────────────────┐
    │                 Engine / AdminRegistry                   │
    │  logger.info("transfer executed", request_id=...)        │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                      RelayLogger                         │
    │  correlation id, layer, operation, error code, context   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │       StructuredHandler (JSON lines) / TextHandler       │
    └─────────────────────────────────────────────────────────┘

Signatures and keys are never passed to the logger.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
import traceback
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RelayLayer(Enum):
    """Relay components, for log categorisation."""
    ENGINE = "engine"
    SIGNING = "signing"
    REPLAY = "replay"
    FEES = "fees"
    ADMIN = "admin"
    LEDGER = "ledger"
    CONFIG = "config"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs one JSON object per line."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextHandler(logging.StreamHandler):
    """Human-readable single-line output for local runs."""

    def __init__(self, stream: Any = None):
        super().__init__(stream or sys.stderr)
        self.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))


class RelayLogger:
    """
    Structured logger for relay components.

    Includes the correlation id and component layer in every event. Output
    goes through the package logger set up by ``configure_logging``.
    """

    def __init__(
        self,
        name: str,
        layer: RelayLayer,
        level: Optional[LogLevel] = None,
    ):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"hurupay.{layer.value}.{name}")
        if level is not None:
            self._logger.setLevel(getattr(logging, level.value.upper()))

    @property
    def stdlib(self) -> logging.Logger:
        return self._logger

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation id, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


@contextmanager
def correlation_scope() -> Iterator[str]:
    """
    Ensure a correlation id for the enclosed operation.

    Reuses the caller's id when one is set, otherwise sets a fresh one and
    clears it again on exit.
    """
    existing = correlation_id_var.get()
    if existing:
        yield existing
        return
    token = correlation_id_var.set(generate_correlation_id())
    try:
        yield correlation_id_var.get()
    finally:
        correlation_id_var.reset(token)


def get_logger(
    name: str,
    layer: RelayLayer,
    level: Optional[LogLevel] = None,
) -> RelayLogger:
    return RelayLogger(name, layer, level)


def configure_logging(level: str = "info", log_format: str = "json", stream: Any = None) -> logging.Logger:
    """
    Install one output handler on the package logger.

    Component loggers propagate to it; calling again replaces the handler.
    """
    root = logging.getLogger("hurupay")
    root.setLevel(getattr(logging, LogLevel(level).value.upper()))
    for handler in list(root.handlers):
        if isinstance(handler, (StructuredHandler, TextHandler)):
            root.removeHandler(handler)
    root.addHandler(TextHandler(stream) if log_format == "text" else StructuredHandler(stream))
    return root


T = TypeVar("T")


def timed_operation(
    logger: RelayLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for timing and logging operations. The call and its timing
    line share one correlation scope.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with correlation_scope():
                start = time.monotonic()
                success = True
                try:
                    return func(*args, **kwargs)
                except Exception:
                    success = False
                    raise
                finally:
                    duration_ms = (time.monotonic() - start) * 1000
                    logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator

"""
Contract Observability

Structured logging for the contract engine and its ledger collaborator.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                     Contract Code                        │
    │     logger.info("msg", operation=op, asset_id=x)         │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                    ContractLogger                        │
    │   layer tag, correlation id (the tx id), context dict    │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │            "assetflow" logger handler                    │
    │        StructuredHandler (json) │ TextFormatter          │
    └─────────────────────────────────────────────────────────┘

Logger names follow ``assetflow.<layer>.<component>``. Log events never carry
private-partition values or the fingerprint of anyone but the caller; callers
pass identifiers and outcomes only.

Log timestamps come from the local clock. They describe when a log line was
written and never flow into ledger state.

Copyright (c) 2024 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import traceback
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

ROOT_LOGGER = "assetflow"

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


class Layer(Enum):
    """Contract layers for categorization."""
    ENGINE = "engine"
    PRIVATE_DATA = "private_data"
    LEDGER = "ledger"


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
        return json.dumps(self.to_dict(), default=str, sort_keys=True)


def _event_from_record(record: logging.LogRecord) -> LogEvent:
    event = LogEvent(
        timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        level=record.levelname.lower(),
        logger=record.name,
        message=record.getMessage(),
        correlation_id=getattr(record, "correlation_id", "") or correlation_id_var.get(),
        layer=getattr(record, "layer", ""),
        operation=getattr(record, "operation", ""),
        duration_ms=getattr(record, "duration_ms", None),
        error_code=getattr(record, "error_code", ""),
        context=getattr(record, "context", {}),
    )
    if record.exc_info:
        event.exception = "".join(traceback.format_exception(*record.exc_info))
    return event


class StructuredHandler(logging.Handler):
    """Logging handler that outputs one JSON object per line.

    With a TextFormatter attached it writes the text rendering instead.
    """

    def __init__(self, stream: Any = None):
        super().__init__()
        self._stream = stream

    @property
    def stream(self) -> Any:
        return self._stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record) if self.formatter else _event_from_record(record).to_json()
            self.stream.write(line + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextFormatter(logging.Formatter):
    """Single-line human readable rendering of a LogEvent."""

    def format(self, record: logging.LogRecord) -> str:
        event = _event_from_record(record)
        parts = [event.timestamp, event.level.upper(), event.logger]
        if event.operation:
            parts.append(f"[{event.operation}]")
        parts.append(event.message)
        if event.error_code:
            parts.append(f"error_code={event.error_code}")
        for k in sorted(event.context):
            parts.append(f"{k}={event.context[k]}")
        line = " ".join(parts)
        if event.exception:
            line = f"{line}\n{event.exception}"
        return line


def _install_default_handler() -> None:
    root = logging.getLogger(ROOT_LOGGER)
    if not any(getattr(h, "_assetflow", False) for h in root.handlers):
        handler = StructuredHandler()
        handler._assetflow = True  # type: ignore[attr-defined]
        root.addHandler(handler)
        if root.level == logging.NOTSET:
            root.setLevel(logging.INFO)


def configure_logging(level: str = "info", log_format: str = "json", stream: Any = None) -> None:
    """Replace the package handler with one matching level and format."""
    root = logging.getLogger(ROOT_LOGGER)
    for h in list(root.handlers):
        if getattr(h, "_assetflow", False):
            root.removeHandler(h)

    handler = StructuredHandler(stream)
    if log_format == "text":
        handler.setFormatter(TextFormatter())
    handler._assetflow = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(getattr(logging, LogLevel(level).value.upper()))


class ContractLogger:
    """
    Structured logger for contract components.

    Includes the correlation id and layer in every event. Extra keyword
    arguments land in the event's ``context`` dict.
    """

    def __init__(self, name: str, layer: Layer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"{ROOT_LOGGER}.{layer.value}.{name}")
        _install_default_handler()

    @property
    def logger_name(self) -> str:
        return self._logger.name

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
            "correlation_id": correlation_id_var.get(),
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
            duration_ms=round(duration_ms, 3),
            **context,
        )


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation id for the current context."""
    return correlation_id_var.set(correlation_id)


def reset_correlation_id(token: contextvars.Token) -> None:
    correlation_id_var.reset(token)


def get_logger(name: str, layer: Layer) -> ContractLogger:
    """Get a logger for a contract component."""
    return ContractLogger(name, layer)

"""
Structured logging for hcmachine.

Provides a pre-configured logger that emits JSON-structured log records
with machine context (provider, machine, operation) so the output of one
driver can be filtered out of an orchestrator's combined log stream.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any


class StructuredFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Attach any extras injected via MachineLogger.log_operation
        for key in ("request_id", "provider", "machine", "operation"):
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


class MachineLogger:
    """Convenience wrapper around :mod:`logging` for driver operations."""

    def __init__(self, name: str = "hcmachine") -> None:
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def log_operation(
        self,
        level: int,
        message: str,
        *,
        provider: str | None = None,
        machine: str | None = None,
        operation: str | None = None,
        request_id: str | None = None,
        exc_info: bool = False,
    ) -> None:
        """Emit a structured log record with machine operation context.

        Args:
            level: Logging level (e.g. logging.INFO).
            message: Human-readable message.
            provider: Driver / provider name.
            machine: Orchestrator-assigned machine name.
            operation: Operation name (e.g. 'create', 'start').
            request_id: Optional correlation ID; auto-generated if omitted.
            exc_info: Whether to include exception info.
        """
        extra = {
            "provider": provider,
            "machine": machine,
            "operation": operation,
            "request_id": request_id or uuid.uuid4().hex[:12],
        }
        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def bind(self, **context: Any) -> BoundMachineLogger:
        """Return a logger that adds *context* to every record.

        A ``request_id`` is generated unless *context* supplies one, so all
        records of the bound logger share a single correlation ID.
        """
        context.setdefault("request_id", uuid.uuid4().hex[:12])
        return BoundMachineLogger(self, context)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.ERROR, message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.DEBUG, message, **kwargs)


class BoundMachineLogger:
    """A :class:`MachineLogger` with fixed provider/machine/request context."""

    def __init__(self, parent: MachineLogger, context: dict[str, Any]) -> None:
        self._parent = parent
        self._context = context

    @property
    def request_id(self) -> str:
        return self._context["request_id"]

    def bind(self, **context: Any) -> BoundMachineLogger:
        """Return a logger with extra context and the same request ID."""
        return BoundMachineLogger(self._parent, {**self._context, **context})

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        self._parent.log_operation(level, message, **{**self._context, **kwargs})

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)


# Module-level singleton
hm_logger = MachineLogger()

# SPDX-License-Identifier: MIT
"""Structured JSON logging for the risk and validation components.

Log calls accept keyword fields which end up as top-level keys of the JSON
payload, so breaches, resets and sizing decisions can be audited without
parsing free text. A correlation identifier ties together every record
emitted while a single strategy session or offline analysis run is active.
"""
from __future__ import annotations

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional, TextIO
from uuid import uuid4


_CORRELATION_ID_VAR: ContextVar[Optional[str]] = ContextVar(
    "riskguard_correlation_id", default=None
)


def generate_correlation_id() -> str:
    """Generate a new correlation identifier."""

    return uuid4().hex


def get_correlation_id() -> Optional[str]:
    """Return the correlation identifier bound to the current context, if any."""

    return _CORRELATION_ID_VAR.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind ``correlation_id`` (or a fresh one) for the duration of the block."""

    resolved = correlation_id or generate_correlation_id()
    token = _CORRELATION_ID_VAR.set(resolved)
    try:
        yield resolved
    finally:
        _CORRELATION_ID_VAR.reset(token)


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id is not None:
            payload["correlation_id"] = correlation_id
        fields = getattr(record, "fields", None)
        if fields:
            payload.update(fields)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class StructuredLogger:
    """Thin wrapper around :mod:`logging` that carries keyword fields."""

    def __init__(self, name: str, correlation_id: Optional[str] = None) -> None:
        self.logger = logging.getLogger(name)
        self._correlation_id = correlation_id

    def _resolve_correlation_id(self, explicit: Optional[str]) -> Optional[str]:
        return explicit or get_correlation_id() or self._correlation_id

    def _log(self, level: int, msg: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        correlation_id = self._resolve_correlation_id(fields.pop("correlation_id", None))
        extra: Dict[str, Any] = {"fields": fields}
        if correlation_id is not None:
            extra["correlation_id"] = correlation_id
        self.logger.log(level, msg, extra=extra, stacklevel=3)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._log(logging.ERROR, msg, **fields)

    def critical(self, msg: str, **fields: Any) -> None:
        self._log(logging.CRITICAL, msg, **fields)

    @contextmanager
    def operation(self, name: str, **context: Any) -> Iterator[Dict[str, Any]]:
        """Log the start, completion and duration of a long-running operation.

        The yielded dictionary can be enriched by the caller; its content is
        attached to the completion record.

        Example:
            >>> logger = get_logger("riskguard.montecarlo")
            >>> with logger.operation("simulate", n_simulations=1000) as op:
            ...     op["batches"] = 4
        """

        started = time.perf_counter()
        op_context: Dict[str, Any] = {"operation": name, **context}
        self.info(f"Starting operation: {name}", **op_context)
        try:
            yield op_context
        except Exception as exc:
            self.error(
                f"Failed operation: {name}",
                **op_context,
                status="failure",
                duration_seconds=time.perf_counter() - started,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            raise
        op_context.setdefault("status", "success")
        self.info(
            f"Completed operation: {name}",
            **op_context,
            duration_seconds=time.perf_counter() - started,
        )


def configure_logging(
    level: str = "INFO",
    use_json: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """Install a single stream handler on the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        use_json: Emit JSON documents instead of the plain text layout.
        stream: Output stream, ``sys.stderr`` by default.
    """

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    root.handlers.clear()
    handler = logging.StreamHandler(stream or sys.stderr)
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root.addHandler(handler)


def get_logger(name: str, correlation_id: Optional[str] = None) -> StructuredLogger:
    """Return a :class:`StructuredLogger` for ``name``."""

    return StructuredLogger(name, correlation_id)


__all__ = [
    "JSONFormatter",
    "StructuredLogger",
    "configure_logging",
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
    "get_logger",
]

# SPDX-License-Identifier: MIT
"""Shared utilities for the risk and validation components."""

from .logging import (
    JSONFormatter,
    StructuredLogger,
    configure_logging,
    correlation_context,
    get_logger,
)

__all__ = [
    "JSONFormatter",
    "StructuredLogger",
    "configure_logging",
    "correlation_context",
    "get_logger",
]

"""Execution-side consumers of risk signals."""

from .flatten import CloseFailed, FlattenHandler, FlattenReport, RetryPolicy

__all__ = ["CloseFailed", "FlattenHandler", "FlattenReport", "RetryPolicy"]

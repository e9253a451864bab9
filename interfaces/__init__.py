"""Interface definitions for RiskGuard collaborators."""

from interfaces.execution import OrderExecutor

__all__ = ["OrderExecutor"]

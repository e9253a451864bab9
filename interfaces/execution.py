"""Capability contract of the order-execution collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod

from domain.order import ExecutionResult, Order


class OrderExecutor(ABC):
    """Platform adapter that submits and closes positions.

    Implementations report broker failures through :class:`ExecutionResult`
    and set ``retryable`` for transient conditions such as timeouts or
    disconnects.
    """

    @abstractmethod
    def submit(self, order: Order) -> ExecutionResult:
        """Submit a market order and return the broker's verdict."""

    @abstractmethod
    def close(self, position_id: str) -> ExecutionResult:
        """Close the position identified by ``position_id``."""

    @abstractmethod
    def open_positions(self) -> list[str]:
        """Return identifiers of the positions currently open."""

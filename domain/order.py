# SPDX-License-Identifier: MIT
"""Order request handed to the external order-execution collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .trade import TradeDirection


class OrderStatus(str, Enum):
    """Outcome reported by an executor for a submit or close request."""

    ACCEPTED = "accepted"
    FILLED = "filled"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Order:
    """Market order sized by :mod:`risk.sizing`."""

    symbol: str
    direction: TradeDirection
    volume: float
    stop_loss: float | None = None
    take_profit: float | None = None
    label: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ValueError("symbol must be provided")
        if self.volume <= 0:
            raise ValueError("volume must be positive")
        object.__setattr__(self, "direction", TradeDirection.parse(self.direction))


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Result of a single executor call."""

    status: OrderStatus
    position_id: str | None = None
    error: str | None = None
    retryable: bool = False

    @property
    def is_successful(self) -> bool:
        return self.status in (OrderStatus.ACCEPTED, OrderStatus.FILLED)

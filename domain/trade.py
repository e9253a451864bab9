# SPDX-License-Identifier: MIT
"""Closed-trade records consumed by the offline analysis tools."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TradeDirection(str, Enum):
    """Direction of a closed trade as written to the trade log."""

    BUY = "Buy"
    SELL = "Sell"

    @classmethod
    def parse(cls, value: "TradeDirection | str") -> "TradeDirection":
        if isinstance(value, cls):
            return value
        token = str(value).strip().lower()
        if token in {"buy", "long"}:
            return cls.BUY
        if token in {"sell", "short"}:
            return cls.SELL
        raise ValueError(f"unknown trade direction: {value!r}")


@dataclass(frozen=True, slots=True)
class TradeRecord:
    """Immutable log entry created when a position is closed.

    ``return_pct`` is the trade's profit as a percentage of the account
    balance at entry; it is the per-trade return resampled by the Monte Carlo
    engine.
    """

    entry_time: datetime
    exit_time: datetime
    direction: TradeDirection
    entry_price: float
    exit_price: float
    volume: float
    net_profit: float
    return_pct: float
    exit_reason: str = ""
    symbol: str = ""
    stop_loss: float | None = None
    take_profit: float | None = None
    gross_profit: float | None = None
    commission: float = 0.0
    swap: float = 0.0
    pips: float = 0.0
    strategy: str = ""
    signal_details: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "direction", TradeDirection.parse(self.direction))
        if self.exit_time < self.entry_time:
            raise ValueError("exit_time cannot precede entry_time")
        if self.volume <= 0:
            raise ValueError("volume must be positive")
        if self.entry_price <= 0 or self.exit_price <= 0:
            raise ValueError("prices must be positive")

    @property
    def is_win(self) -> bool:
        return self.net_profit > 0

    @property
    def is_loss(self) -> bool:
        return self.net_profit < 0

    @property
    def duration_hours(self) -> float:
        return (self.exit_time - self.entry_time).total_seconds() / 3600.0

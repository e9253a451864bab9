# SPDX-License-Identifier: MIT
"""Limit configuration and mutable session state of the risk governor."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True, slots=True)
class RiskLimits:
    """Immutable loss and exposure limits, percentages expressed as 0-100."""

    max_daily_loss_pct: float = 2.0
    max_weekly_loss_pct: float = 5.0
    max_drawdown_pct: float = 20.0
    max_concurrent_positions: int = 5
    drawdown_warning_fraction: float = 0.5

    def __post_init__(self) -> None:
        for name in ("max_daily_loss_pct", "max_weekly_loss_pct", "max_drawdown_pct"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a positive number")
        if self.max_concurrent_positions <= 0:
            raise ValueError("max_concurrent_positions must be positive")
        if not 0.0 < self.drawdown_warning_fraction < 1.0:
            raise ValueError("drawdown_warning_fraction must lie in (0, 1)")

    def follows_convention(self) -> bool:
        """Return whether drawdown >= weekly >= daily limits."""

        return self.max_drawdown_pct >= self.max_weekly_loss_pct >= self.max_daily_loss_pct

    @property
    def drawdown_warning_pct(self) -> float:
        return self.max_drawdown_pct * self.drawdown_warning_fraction


@dataclass(slots=True)
class RiskState:
    """Session state owned and mutated exclusively by :class:`RiskGovernor`."""

    starting_daily_equity: float
    starting_weekly_equity: float
    high_water_mark: float
    last_daily_reset_date: date
    last_weekly_reset_date: date
    next_daily_reset: date
    next_weekly_reset: date
    trading_enabled: bool = True
    flatten_signalled: bool = False
    open_position_count: int = 0
    last_equity: float = 0.0


def loss_pct(baseline: float, equity: float) -> float:
    """Percentage decline of ``equity`` below ``baseline`` (negative for gains)."""

    if baseline <= 0:
        return 0.0
    return (baseline - equity) / baseline * 100.0


@dataclass(frozen=True, slots=True)
class RiskStatistics:
    """Read-only copy of :class:`RiskState` with derived loss figures."""

    current_equity: float
    high_water_mark: float
    starting_daily_equity: float
    starting_weekly_equity: float
    daily_loss: float
    daily_loss_pct: float
    weekly_loss: float
    weekly_loss_pct: float
    drawdown: float
    drawdown_pct: float
    open_positions: int
    trading_enabled: bool
    last_daily_reset_date: date
    last_weekly_reset_date: date

    @classmethod
    def from_state(cls, state: RiskState) -> "RiskStatistics":
        equity = state.last_equity
        return cls(
            current_equity=equity,
            high_water_mark=state.high_water_mark,
            starting_daily_equity=state.starting_daily_equity,
            starting_weekly_equity=state.starting_weekly_equity,
            daily_loss=state.starting_daily_equity - equity,
            daily_loss_pct=loss_pct(state.starting_daily_equity, equity),
            weekly_loss=state.starting_weekly_equity - equity,
            weekly_loss_pct=loss_pct(state.starting_weekly_equity, equity),
            drawdown=state.high_water_mark - equity,
            drawdown_pct=loss_pct(state.high_water_mark, equity),
            open_positions=state.open_position_count,
            trading_enabled=state.trading_enabled,
            last_daily_reset_date=state.last_daily_reset_date,
            last_weekly_reset_date=state.last_weekly_reset_date,
        )

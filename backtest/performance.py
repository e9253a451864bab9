# SPDX-License-Identifier: MIT
"""Aggregate statistics of a completed backtest."""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from core.errors import InsufficientData
from domain.trade import TradeRecord

_PERIODS_PER_YEAR = 365


@dataclass(frozen=True, slots=True)
class BacktestSettings:
    """How the backtest was run; unknown settings default to ``False``."""

    used_tick_data: bool = False
    included_spread: bool = False
    included_commission: bool = False
    used_variable_spread: bool = False
    spread_multiplier: float = 1.0


@dataclass(frozen=True, slots=True)
class BacktestSummary:
    """Summary statistics of one backtest run.

    Percentages are expressed as 0-100 except ``win_rate`` (0-1).
    """

    total_trades: int
    win_rate: float
    profit_factor: float
    sharpe_ratio: float
    max_drawdown_pct: float
    return_pct: float
    avg_win_loss_ratio: float
    max_consecutive_wins: int
    max_consecutive_losses: int
    duration_days: int
    settings: BacktestSettings | None = None
    winning_trades: int | None = None
    losing_trades: int | None = None
    total_profit: float | None = None
    gross_profit: float | None = None
    gross_loss: float | None = None
    average_win: float | None = None
    average_loss: float | None = None

    def __post_init__(self) -> None:
        if self.total_trades < 0:
            raise ValueError("total_trades cannot be negative")
        if not 0.0 <= self.win_rate <= 1.0:
            raise ValueError("win_rate must lie in [0, 1]")
        if self.max_drawdown_pct < 0:
            raise ValueError("max_drawdown_pct cannot be negative")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BacktestSummary":
        """Build a summary from a plain mapping such as a parsed YAML file."""

        known = {item.name for item in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown summary fields: {', '.join(sorted(unknown))}")
        payload = dict(data)
        settings = payload.get("settings")
        if isinstance(settings, Mapping):
            payload["settings"] = BacktestSettings(**settings)
        return cls(**payload)

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary; non-finite values become ``None``."""

        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, float) and not math.isfinite(value):
                payload[key] = None
        return payload


def _max_streak(outcomes: np.ndarray) -> int:
    best = current = 0
    for flag in outcomes:
        current = current + 1 if flag else 0
        best = max(best, current)
    return best


def _max_drawdown_pct(balance: np.ndarray) -> float:
    peaks = np.maximum.accumulate(balance)
    drawdowns = (peaks - balance) / peaks * 100.0
    return float(max(drawdowns.max(initial=0.0), 0.0))


def _daily_sharpe(
    records: list[TradeRecord], starting_balance: float, periods_per_year: int
) -> float:
    profits = pd.Series(
        [record.net_profit for record in records],
        index=pd.to_datetime([record.exit_time for record in records], utc=True),
    )
    daily = profits.resample("D").sum()
    balance = starting_balance + daily.cumsum()
    previous = balance.shift(1).fillna(starting_balance)
    returns = (balance - previous) / previous
    returns = returns[np.isfinite(returns)]
    if returns.size < 2:
        return 0.0
    volatility = float(returns.std(ddof=1))
    if volatility <= 0:
        return 0.0
    return float(returns.mean()) / volatility * math.sqrt(periods_per_year)


def summarize_trades(
    records: Iterable[TradeRecord],
    *,
    starting_balance: float,
    settings: BacktestSettings | None = None,
    periods_per_year: int = _PERIODS_PER_YEAR,
) -> BacktestSummary:
    """Compute a :class:`BacktestSummary` from closed trades.

    The Sharpe ratio annualises the daily returns of the balance curve over
    UTC calendar days (naive exit times are read as UTC); days without exits
    contribute a zero return.
    """

    if starting_balance <= 0:
        raise ValueError("starting_balance must be positive")
    ordered = sorted(records, key=lambda record: record.exit_time)
    if not ordered:
        raise InsufficientData("cannot summarise an empty trade log")

    profits = np.array([record.net_profit for record in ordered], dtype=float)
    wins = profits[profits > 0]
    losses = profits[profits < 0]

    gross_profit = float(wins.sum())
    gross_loss = float(abs(losses.sum()))
    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    else:
        profit_factor = math.inf if gross_profit > 0 else 0.0

    average_win = float(wins.mean()) if wins.size else 0.0
    average_loss = float(losses.mean()) if losses.size else 0.0
    if average_loss != 0:
        avg_win_loss_ratio = abs(average_win / average_loss)
    else:
        avg_win_loss_ratio = math.inf if average_win > 0 else 0.0

    balance = starting_balance + np.concatenate(([0.0], np.cumsum(profits)))
    total_profit = float(profits.sum())
    first_entry = min(record.entry_time for record in ordered)
    duration = ordered[-1].exit_time - first_entry

    return BacktestSummary(
        total_trades=len(ordered),
        win_rate=wins.size / len(ordered),
        profit_factor=profit_factor,
        sharpe_ratio=_daily_sharpe(ordered, starting_balance, periods_per_year),
        max_drawdown_pct=_max_drawdown_pct(balance),
        return_pct=total_profit / starting_balance * 100.0,
        avg_win_loss_ratio=avg_win_loss_ratio,
        max_consecutive_wins=_max_streak(profits > 0),
        max_consecutive_losses=_max_streak(profits < 0),
        duration_days=duration.days,
        settings=settings,
        winning_trades=int(wins.size),
        losing_trades=int(losses.size),
        total_profit=total_profit,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        average_win=average_win,
        average_loss=average_loss,
    )


def export_summary(summary: BacktestSummary, path: str | Path, *, indent: int = 2) -> Path:
    """Write ``summary`` as JSON to ``path`` and return the resolved path."""

    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(
        json.dumps(summary.as_dict(), indent=indent, sort_keys=True), encoding="utf-8"
    )
    return destination


__all__ = [
    "BacktestSettings",
    "BacktestSummary",
    "export_summary",
    "summarize_trades",
]

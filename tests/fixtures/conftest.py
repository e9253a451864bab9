# SPDX-License-Identifier: MIT
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

import pytest

from backtest.performance import BacktestSettings, BacktestSummary
from domain.account import AccountSnapshot
from domain.instrument import InstrumentConstraints
from domain.trade import TradeDirection, TradeRecord

SESSION_START = datetime(2024, 1, 3, 9, 0, tzinfo=timezone.utc)  # Wednesday


@pytest.fixture()
def eurusd() -> InstrumentConstraints:
    """Units-based FX constraints: one pip on one unit is worth 0.0001."""

    return InstrumentConstraints(
        min_size=1000.0,
        max_size=10_000_000.0,
        size_step=1000.0,
        pip_value=0.0001,
        pip_size=0.0001,
    )


@pytest.fixture()
def snapshot() -> Callable[..., AccountSnapshot]:
    def _factory(
        equity: float, *, at: datetime = SESSION_START, balance: float | None = None
    ) -> AccountSnapshot:
        return AccountSnapshot(
            equity=equity, balance=equity if balance is None else balance, timestamp=at
        )

    return _factory


@pytest.fixture()
def make_trade() -> Callable[..., TradeRecord]:
    def _factory(
        net_profit: float,
        *,
        day: int = 0,
        hours: float = 4.0,
        return_pct: float | None = None,
        direction: TradeDirection = TradeDirection.BUY,
        **extra: object,
    ) -> TradeRecord:
        entry = SESSION_START + timedelta(days=day)
        return TradeRecord(
            entry_time=entry,
            exit_time=entry + timedelta(hours=hours),
            direction=direction,
            entry_price=1.1000,
            exit_price=1.1010 if net_profit >= 0 else 1.0990,
            volume=10_000.0,
            net_profit=net_profit,
            return_pct=net_profit / 100.0 if return_pct is None else return_pct,
            **extra,
        )

    return _factory


@pytest.fixture()
def realistic_settings() -> BacktestSettings:
    return BacktestSettings(used_tick_data=True, included_spread=True, included_commission=True)


@pytest.fixture()
def healthy_summary(realistic_settings: BacktestSettings) -> BacktestSummary:
    """Summary whose only finding is the sub-100 trade count."""

    return BacktestSummary(
        total_trades=87,
        win_rate=0.6,
        profit_factor=1.82,
        sharpe_ratio=1.45,
        max_drawdown_pct=18.5,
        return_pct=42.0,
        avg_win_loss_ratio=1.21,
        max_consecutive_wins=7,
        max_consecutive_losses=4,
        duration_days=365,
        settings=realistic_settings,
    )


@pytest.fixture()
def restore_root_logging() -> Iterator[None]:
    """Undo the root handler installed by ``configure_logging``."""

    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        # pytest's own capture handlers subclass StreamHandler.
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
    root.setLevel(level)

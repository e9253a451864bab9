# SPDX-License-Identifier: MIT
from __future__ import annotations

from dataclasses import replace
from datetime import timedelta, timezone
from pathlib import Path
from typing import Callable

import numpy as np
import pandas as pd
import pytest

from backtest.trade_log import (
    CSV_COLUMNS,
    RETURN_COLUMN,
    TradeLog,
    export_monte_carlo_csv,
    returns_from_profits,
)
from domain.trade import TradeDirection, TradeRecord

TradeFactory = Callable[..., TradeRecord]


def test_record_exit_derives_return(make_trade: TradeFactory) -> None:
    template = make_trade(0.0)
    log = TradeLog()

    record = log.record_exit(
        entry_time=template.entry_time,
        exit_time=template.exit_time,
        direction="sell",
        entry_price=1.1000,
        exit_price=1.0985,
        volume=10_000.0,
        net_profit=150.0,
        balance_before=10_000.0,
        exit_reason="TP",
        symbol="EURUSD",
    )

    assert len(log) == 1
    assert record.direction is TradeDirection.SELL
    assert record.return_pct == pytest.approx(1.5)
    assert log.records == (record,)


def test_record_exit_requires_positive_balance(make_trade: TradeFactory) -> None:
    template = make_trade(0.0)
    with pytest.raises(ValueError):
        TradeLog().record_exit(
            entry_time=template.entry_time,
            exit_time=template.exit_time,
            direction=TradeDirection.BUY,
            entry_price=1.1,
            exit_price=1.2,
            volume=1_000.0,
            net_profit=10.0,
            balance_before=0.0,
        )


def test_append_rejects_foreign_objects() -> None:
    with pytest.raises(TypeError):
        TradeLog().append({"net_profit": 1.0})  # type: ignore[arg-type]


def test_trade_record_validation(make_trade: TradeFactory) -> None:
    trade = make_trade(10.0)
    with pytest.raises(ValueError):
        TradeRecord(
            entry_time=trade.exit_time,
            exit_time=trade.entry_time,
            direction=TradeDirection.BUY,
            entry_price=1.1,
            exit_price=1.2,
            volume=1_000.0,
            net_profit=10.0,
            return_pct=0.1,
        )
    assert trade.duration_hours == pytest.approx(4.0)
    assert trade.is_win and not trade.is_loss


def test_returns_and_summary(make_trade: TradeFactory) -> None:
    log = TradeLog([make_trade(100.0, day=0), make_trade(-50.0, day=1)])

    np.testing.assert_allclose(log.returns_pct(), [1.0, -0.5])
    summary = log.summarize(10_000.0)
    assert summary.total_trades == 2
    assert summary.return_pct == pytest.approx(0.5)


def test_csv_round_trip(make_trade: TradeFactory, tmp_path: Path) -> None:
    original = TradeLog(
        [
            make_trade(100.0, day=0, symbol="EURUSD", stop_loss=1.095, exit_reason="TP"),
            make_trade(-50.0, day=1, symbol="EURUSD", direction=TradeDirection.SELL),
        ]
    )

    path = original.to_csv(tmp_path / "logs" / "trades.csv")
    header = path.read_text(encoding="utf-8").splitlines()[0]
    restored = TradeLog.from_csv(path)

    assert header.split(",") == [*CSV_COLUMNS, RETURN_COLUMN]
    assert len(restored) == 2
    first, second = restored.records
    assert first.symbol == "EURUSD"
    assert first.stop_loss == pytest.approx(1.095)
    assert first.exit_reason == "TP"
    assert first.strategy == ""
    assert second.stop_loss is None
    assert second.direction is TradeDirection.SELL
    np.testing.assert_allclose(restored.returns_pct(), original.returns_pct())
    assert first.entry_time == original.records[0].entry_time
    assert first.entry_time.utcoffset() == timedelta(0)
    assert "2024-01-03 09:00:00+00:00" in path.read_text(encoding="utf-8")


def test_csv_keeps_utc_offset_of_aware_times(make_trade: TradeFactory, tmp_path: Path) -> None:
    new_york = timezone(timedelta(hours=-5))
    trade = make_trade(25.0)
    local = replace(
        trade,
        entry_time=trade.entry_time.astimezone(new_york),
        exit_time=trade.exit_time.astimezone(new_york),
    )

    path = TradeLog([local]).to_csv(tmp_path / "trades.csv")
    (restored,) = TradeLog.from_csv(path).records

    assert "2024-01-03 04:00:00-05:00" in path.read_text(encoding="utf-8")
    assert restored.entry_time == trade.entry_time
    assert restored.exit_time.utcoffset() == timedelta(hours=-5)


def test_csv_keeps_naive_times_naive(make_trade: TradeFactory, tmp_path: Path) -> None:
    trade = make_trade(25.0)
    naive = replace(
        trade,
        entry_time=trade.entry_time.replace(tzinfo=None),
        exit_time=trade.exit_time.replace(tzinfo=None),
    )

    path = TradeLog([naive]).to_csv(tmp_path / "trades.csv")
    (restored,) = TradeLog.from_csv(path).records

    assert "2024-01-03 09:00:00," in path.read_text(encoding="utf-8")
    assert restored.entry_time.tzinfo is None
    assert restored.exit_time == naive.exit_time


def test_from_frame_recomputes_returns_from_balance(make_trade: TradeFactory) -> None:
    frame = TradeLog([make_trade(100.0, day=0), make_trade(-50.0, day=1)]).to_frame()
    frame = frame.drop(columns=[RETURN_COLUMN])

    log = TradeLog.from_frame(frame, starting_balance=1_000.0)

    np.testing.assert_allclose(log.returns_pct(), [10.0, -50.0 / 1_100.0 * 100.0])


def test_from_frame_without_returns_needs_balance(make_trade: TradeFactory) -> None:
    frame = TradeLog([make_trade(100.0)]).to_frame().drop(columns=[RETURN_COLUMN])

    with pytest.raises(ValueError, match="starting balance"):
        TradeLog.from_frame(frame)


def test_from_frame_reports_missing_columns() -> None:
    frame = pd.DataFrame({"EntryTime": ["2024-01-03 09:00:00"], "NetProfit": [1.0]})

    with pytest.raises(ValueError, match="ExitTime"):
        TradeLog.from_frame(frame, starting_balance=1_000.0)


def test_returns_from_profits_compounds_balance() -> None:
    np.testing.assert_allclose(
        returns_from_profits([100.0, 110.0], 1_000.0), [10.0, 10.0]
    )
    with pytest.raises(ValueError):
        returns_from_profits([-1_000.0, 10.0], 1_000.0)
    with pytest.raises(ValueError):
        returns_from_profits([10.0], 0.0)


def test_monte_carlo_export_format(make_trade: TradeFactory) -> None:
    trades = [make_trade(100.0), make_trade(-50.0, hours=6)]

    text = export_monte_carlo_csv(trades)

    assert text == (
        "TradeNumber,ProfitLoss,Return%,Win\n"
        "1,100.00,1.0000,1\n"
        "2,-50.00,-0.5000,0\n"
    )


def test_exit_before_entry_in_csv_is_rejected(make_trade: TradeFactory) -> None:
    frame = TradeLog([make_trade(10.0)]).to_frame()
    frame.loc[0, "ExitTime"] = frame.loc[0, "EntryTime"] - timedelta(hours=1)

    with pytest.raises(ValueError):
        TradeLog.from_frame(frame)

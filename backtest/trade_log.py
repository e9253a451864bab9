# SPDX-License-Identifier: MIT
"""Append-only closed-trade log with CSV import and export."""

from __future__ import annotations

import math
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

import numpy as np
import pandas as pd

from backtest.performance import BacktestSettings, BacktestSummary, summarize_trades
from core.utils.logging import get_logger
from domain.trade import TradeDirection, TradeRecord

_logger = get_logger(__name__)

CSV_COLUMNS: tuple[str, ...] = (
    "EntryTime",
    "ExitTime",
    "Symbol",
    "Direction",
    "Volume",
    "EntryPrice",
    "ExitPrice",
    "StopLoss",
    "TakeProfit",
    "NetProfit",
    "GrossProfit",
    "Commission",
    "Swap",
    "Pips",
    "DurationHours",
    "Strategy",
    "SignalDetails",
    "ExitReason",
)
RETURN_COLUMN = "ReturnPct"
MONTE_CARLO_HEADER = "TradeNumber,ProfitLoss,Return%,Win"

_REQUIRED_COLUMNS = (
    "EntryTime",
    "ExitTime",
    "Direction",
    "Volume",
    "EntryPrice",
    "ExitPrice",
    "NetProfit",
)


def returns_from_profits(profits: Sequence[float], starting_balance: float) -> np.ndarray:
    """Per-trade percentage returns relative to the balance before each trade."""

    if starting_balance <= 0:
        raise ValueError("starting_balance must be positive")
    values = np.asarray(profits, dtype=float)
    balance_before = starting_balance + np.concatenate(([0.0], np.cumsum(values)[:-1]))
    if np.any(balance_before <= 0):
        raise ValueError("balance is exhausted before the last trade")
    return values / balance_before * 100.0


def _optional_float(value: Any) -> float | None:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    return float(value)


def _text(value: Any) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return str(value)


def _format_timestamp(moment: datetime) -> str:
    return moment.isoformat(sep=" ", timespec="seconds")


def _timestamp(value: Any) -> datetime:
    return pd.Timestamp(value).to_pydatetime()


class TradeLog:
    """Ordered, append-only collection of :class:`TradeRecord` objects."""

    def __init__(self, records: Iterable[TradeRecord] = ()) -> None:
        self._records: list[TradeRecord] = []
        for record in records:
            self.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TradeRecord]:
        return iter(self._records)

    @property
    def records(self) -> tuple[TradeRecord, ...]:
        return tuple(self._records)

    def append(self, record: TradeRecord) -> None:
        if not isinstance(record, TradeRecord):
            raise TypeError("TradeLog only accepts TradeRecord instances")
        self._records.append(record)
        _logger.debug(
            "Trade recorded",
            symbol=record.symbol,
            direction=record.direction.value,
            net_profit=record.net_profit,
            exit_reason=record.exit_reason,
        )

    def record_exit(
        self,
        *,
        entry_time: datetime,
        exit_time: datetime,
        direction: TradeDirection | str,
        entry_price: float,
        exit_price: float,
        volume: float,
        net_profit: float,
        balance_before: float,
        exit_reason: str = "",
        **details: Any,
    ) -> TradeRecord:
        """Create and append a record for a closed position.

        ``return_pct`` is derived from ``net_profit`` and the account balance
        before the trade.
        """

        if balance_before <= 0:
            raise ValueError("balance_before must be positive")
        record = TradeRecord(
            entry_time=entry_time,
            exit_time=exit_time,
            direction=TradeDirection.parse(direction),
            entry_price=entry_price,
            exit_price=exit_price,
            volume=volume,
            net_profit=net_profit,
            return_pct=net_profit / balance_before * 100.0,
            exit_reason=exit_reason,
            **details,
        )
        self.append(record)
        return record

    def returns_pct(self) -> np.ndarray:
        return np.array([record.return_pct for record in self._records], dtype=float)

    def summarize(
        self, starting_balance: float, settings: BacktestSettings | None = None
    ) -> BacktestSummary:
        return summarize_trades(self._records, starting_balance=starting_balance, settings=settings)

    # ------------------------------------------------------------------ CSV
    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "EntryTime": record.entry_time,
                "ExitTime": record.exit_time,
                "Symbol": record.symbol,
                "Direction": record.direction.value,
                "Volume": record.volume,
                "EntryPrice": record.entry_price,
                "ExitPrice": record.exit_price,
                "StopLoss": record.stop_loss,
                "TakeProfit": record.take_profit,
                "NetProfit": record.net_profit,
                "GrossProfit": record.gross_profit,
                "Commission": record.commission,
                "Swap": record.swap,
                "Pips": record.pips,
                "DurationHours": round(record.duration_hours, 2),
                "Strategy": record.strategy,
                "SignalDetails": record.signal_details,
                "ExitReason": record.exit_reason,
                RETURN_COLUMN: record.return_pct,
            }
            for record in self._records
        ]
        return pd.DataFrame(rows, columns=[*CSV_COLUMNS, RETURN_COLUMN])

    def to_csv(self, path: str | Path) -> Path:
        """Write one row per closed trade.

        Timestamps are ISO 8601 to the second (``YYYY-MM-DD HH:MM:SS``) and keep
        the UTC offset of timezone-aware times, so :meth:`from_csv` restores
        aware times with their offset and naive times as naive.
        """

        destination = Path(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        frame = self.to_frame()
        for column in ("EntryTime", "ExitTime"):
            frame[column] = [_format_timestamp(moment) for moment in frame[column]]
        frame.to_csv(destination, index=False)
        _logger.info("Trade log exported", path=str(destination), trades=len(frame))
        return destination

    @classmethod
    def from_frame(
        cls, frame: pd.DataFrame, *, starting_balance: float | None = None
    ) -> "TradeLog":
        """Rebuild a log from a frame with the CSV column layout.

        Without a ``ReturnPct`` column the per-trade returns are recomputed
        from ``NetProfit`` and ``starting_balance``.
        """

        missing = [column for column in _REQUIRED_COLUMNS if column not in frame.columns]
        if missing:
            raise ValueError(f"trade log is missing columns: {', '.join(missing)}")

        if RETURN_COLUMN in frame.columns and not frame[RETURN_COLUMN].isna().any():
            returns = frame[RETURN_COLUMN].astype(float).to_numpy()
        elif starting_balance is not None:
            profits = frame["NetProfit"].astype(float).to_numpy()
            returns = returns_from_profits(profits, starting_balance)
        else:
            raise ValueError(
                f"trade log has no {RETURN_COLUMN} column; a starting balance is required"
            )

        log = cls()
        for row, return_pct in zip(frame.to_dict(orient="records"), returns):
            log.append(
                TradeRecord(
                    entry_time=_timestamp(row["EntryTime"]),
                    exit_time=_timestamp(row["ExitTime"]),
                    direction=TradeDirection.parse(row["Direction"]),
                    entry_price=float(row["EntryPrice"]),
                    exit_price=float(row["ExitPrice"]),
                    volume=float(row["Volume"]),
                    net_profit=float(row["NetProfit"]),
                    return_pct=float(return_pct),
                    exit_reason=_text(row.get("ExitReason")),
                    symbol=_text(row.get("Symbol")),
                    stop_loss=_optional_float(row.get("StopLoss")),
                    take_profit=_optional_float(row.get("TakeProfit")),
                    gross_profit=_optional_float(row.get("GrossProfit")),
                    commission=_optional_float(row.get("Commission")) or 0.0,
                    swap=_optional_float(row.get("Swap")) or 0.0,
                    pips=_optional_float(row.get("Pips")) or 0.0,
                    strategy=_text(row.get("Strategy")),
                    signal_details=_text(row.get("SignalDetails")),
                )
            )
        return log

    @classmethod
    def from_csv(cls, path: str | Path, *, starting_balance: float | None = None) -> "TradeLog":
        source = Path(path)
        frame = pd.read_csv(
            source,
            dtype={"Symbol": str, "Strategy": str, "SignalDetails": str, "ExitReason": str},
        )
        log = cls.from_frame(frame, starting_balance=starting_balance)
        _logger.info("Trade log loaded", path=str(source), trades=len(log))
        return log


def export_monte_carlo_csv(records: Iterable[TradeRecord]) -> str:
    """Render ``TradeNumber,ProfitLoss,Return%,Win`` rows for external simulators."""

    lines = [MONTE_CARLO_HEADER]
    for number, record in enumerate(records, start=1):
        lines.append(
            f"{number},{record.net_profit:.2f},{record.return_pct:.4f},{1 if record.is_win else 0}"
        )
    return "\n".join(lines) + "\n"


__all__ = [
    "CSV_COLUMNS",
    "MONTE_CARLO_HEADER",
    "RETURN_COLUMN",
    "TradeLog",
    "export_monte_carlo_csv",
    "returns_from_profits",
]

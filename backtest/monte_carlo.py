# SPDX-License-Identifier: MIT
"""Bootstrap Monte Carlo over observed trade returns and risk-of-ruin estimates."""

from __future__ import annotations

import math
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from core.config.risk_settings import MonteCarloConfig
from core.errors import (
    InsufficientData,
    InvalidRiskPercent,
    InvalidWinLossRatio,
    InvalidWinRate,
    SimulationCancelled,
)
from core.utils.logging import get_logger
from domain.trade import TradeRecord

_logger = get_logger(__name__)

_Batch = tuple[NDArray[np.float64], NDArray[np.float64]]

DEFAULT_CAPITAL_MULTIPLES: tuple[int, ...] = tuple(range(10, 101, 10))


def percentile(samples: Sequence[float] | NDArray[np.float64], p: float) -> float:
    """Linear-interpolation percentile of ``samples`` with ``p`` in [0, 100]."""

    values = np.asarray(samples, dtype=float)
    if values.size == 0:
        raise InsufficientData("cannot take a percentile of an empty sample")
    if not 0.0 <= p <= 100.0:
        raise ValueError("p must lie in [0, 100]")
    return float(np.percentile(values, p, method="linear"))


@dataclass(frozen=True, slots=True)
class MonteCarloSummary:
    """Distribution statistics of a :class:`SimulationResult`."""

    simulations: int
    trades_per_simulation: int
    mean_return_pct: float
    median_return_pct: float
    std_return_pct: float
    return_p5: float
    return_p95: float
    mean_drawdown_pct: float
    median_drawdown_pct: float
    drawdown_p95: float
    prob_drawdown_above_30: float
    prob_drawdown_above_50: float
    low_sample: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}

    def to_text(self) -> str:
        lines = [
            "=== MONTE CARLO RESULTS ===",
            "",
            f"Simulations: {self.simulations}",
            f"Trades per simulation: {self.trades_per_simulation}",
            "",
            "Return Distribution:",
            f"  Mean: {self.mean_return_pct:.2f}%",
            f"  Median: {self.median_return_pct:.2f}%",
            f"  Std Dev: {self.std_return_pct:.2f}%",
            f"  5th Percentile: {self.return_p5:.2f}%",
            f"  95th Percentile: {self.return_p95:.2f}%",
            "",
            "Drawdown Distribution:",
            f"  Mean Max DD: {self.mean_drawdown_pct:.2f}%",
            f"  Median Max DD: {self.median_drawdown_pct:.2f}%",
            f"  95th Percentile DD: {self.drawdown_p95:.2f}%",
            "",
            "Risk of Ruin:",
            f"  Probability of 50%+ DD: {self.prob_drawdown_above_50:.2f}%",
            f"  Probability of 30%+ DD: {self.prob_drawdown_above_30:.2f}%",
        ]
        if self.low_sample:
            lines.extend(["", "WARNING: small observed sample; treat results as indicative"])
        lines.append("===========================")
        return "\n".join(lines) + "\n"


@dataclass(frozen=True, eq=False)
class SimulationResult:
    """Per-path final return and maximum drawdown, both in percent.

    ``seed`` is the entropy of the root :class:`numpy.random.SeedSequence`,
    so an unseeded run can be reproduced.
    """

    return_samples: NDArray[np.float64]
    drawdown_samples: NDArray[np.float64]
    trades_per_simulation: int
    seed: int
    sample_size: int
    low_sample: bool = False

    @property
    def n_simulations(self) -> int:
        return int(self.return_samples.size)

    def summary(self) -> MonteCarloSummary:
        returns = self.return_samples
        drawdowns = self.drawdown_samples
        return MonteCarloSummary(
            simulations=self.n_simulations,
            trades_per_simulation=self.trades_per_simulation,
            mean_return_pct=float(np.mean(returns)),
            median_return_pct=float(np.median(returns)),
            std_return_pct=float(np.std(returns)),
            return_p5=percentile(returns, 5),
            return_p95=percentile(returns, 95),
            mean_drawdown_pct=float(np.mean(drawdowns)),
            median_drawdown_pct=float(np.median(drawdowns)),
            drawdown_p95=percentile(drawdowns, 95),
            prob_drawdown_above_30=float(np.mean(drawdowns > 30.0) * 100.0),
            prob_drawdown_above_50=float(np.mean(drawdowns > 50.0) * 100.0),
            low_sample=self.low_sample,
        )


def _simulate_batch(
    returns: NDArray[np.float64],
    n_paths: int,
    n_trades: int,
    seed: np.random.SeedSequence,
    starting_equity: float,
) -> _Batch:
    rng = np.random.default_rng(seed)
    draws = rng.choice(returns, size=(n_paths, n_trades), replace=True)
    equity = starting_equity * np.cumprod(1.0 + draws / 100.0, axis=1)
    path = np.concatenate((np.full((n_paths, 1), starting_equity), equity), axis=1)
    peaks = np.maximum.accumulate(path, axis=1)
    drawdowns = ((peaks - path) / peaks * 100.0).max(axis=1)
    final_returns = (equity[:, -1] - starting_equity) / starting_equity * 100.0
    return final_returns, drawdowns


def _check_cancelled(cancel_event: threading.Event | None, deadline: float | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SimulationCancelled("Monte Carlo simulation cancelled")
    if deadline is not None and time.monotonic() >= deadline:
        raise SimulationCancelled("Monte Carlo simulation timed out")


def _batch_sizes(total: int, batch_size: int) -> list[int]:
    full, rest = divmod(total, batch_size)
    return [batch_size] * full + ([rest] if rest else [])


def simulate(
    returns: Sequence[float] | NDArray[np.float64],
    n_simulations: int = 1000,
    trades_per_simulation: int | None = None,
    *,
    seed: int | None = None,
    starting_equity: float = 100.0,
    batch_size: int = 250,
    max_workers: int = 1,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
    recommended_samples: int = 20,
) -> SimulationResult:
    """Bootstrap ``n_simulations`` compounding equity paths from ``returns``.

    Each path draws ``trades_per_simulation`` per-trade percentage returns
    with replacement, compounds them from ``starting_equity`` and records the
    final return and the maximum drawdown from the running peak. Batches
    draw from child seeds spawned from one root seed, so a fixed ``seed``
    gives identical samples for any ``max_workers``.

    Raises:
        InsufficientData: fewer than two returns were supplied.
        SimulationCancelled: ``cancel_event`` was set or ``timeout`` seconds
            elapsed; partial results are discarded.
    """

    values = np.asarray(returns, dtype=float).ravel()
    if values.size < 2:
        raise InsufficientData(
            f"bootstrap needs at least 2 trade returns, got {values.size}"
        )
    if not np.all(np.isfinite(values)):
        raise ValueError("returns must be finite")
    if np.any(values < -100.0):
        raise ValueError("a per-trade return cannot lose more than 100%")
    if n_simulations <= 0:
        raise ValueError("n_simulations must be positive")
    n_trades = values.size if trades_per_simulation is None else int(trades_per_simulation)
    if n_trades <= 0:
        raise ValueError("trades_per_simulation must be positive")
    if batch_size <= 0 or max_workers <= 0:
        raise ValueError("batch_size and max_workers must be positive")
    if starting_equity <= 0:
        raise ValueError("starting_equity must be positive")

    low_sample = values.size < recommended_samples
    if low_sample:
        _logger.warning(
            "Bootstrap sample is small; results are indicative only",
            sample_size=int(values.size),
            recommended_samples=recommended_samples,
        )

    root = np.random.SeedSequence(seed)
    sizes = _batch_sizes(n_simulations, batch_size)
    children = root.spawn(len(sizes))
    deadline = None if timeout is None else time.monotonic() + timeout

    def run_batch(index: int) -> _Batch:
        _check_cancelled(cancel_event, deadline)
        return _simulate_batch(values, sizes[index], n_trades, children[index], starting_equity)

    with _logger.operation(
        "monte_carlo_simulate",
        n_simulations=n_simulations,
        trades_per_simulation=n_trades,
        batches=len(sizes),
        max_workers=max_workers,
    ) as op:
        if max_workers == 1 or len(sizes) == 1:
            batches = [run_batch(index) for index in range(len(sizes))]
        else:
            batches = _run_parallel(run_batch, len(sizes), max_workers, deadline)
        op["seed_entropy"] = int(root.entropy)

    return SimulationResult(
        return_samples=np.concatenate([batch[0] for batch in batches]),
        drawdown_samples=np.concatenate([batch[1] for batch in batches]),
        trades_per_simulation=n_trades,
        seed=int(root.entropy),
        sample_size=int(values.size),
        low_sample=low_sample,
    )


def _run_parallel(
    run_batch: Callable[[int], _Batch], count: int, max_workers: int, deadline: float | None
) -> list[_Batch]:
    pool = ThreadPoolExecutor(max_workers=max_workers)
    futures: list[Future[_Batch]] = [pool.submit(run_batch, index) for index in range(count)]
    try:
        results: list[_Batch] = []
        for future in futures:
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
            try:
                results.append(future.result(timeout=remaining))
            except TimeoutError as exc:
                raise SimulationCancelled("Monte Carlo simulation timed out") from exc
        return results
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


@dataclass(frozen=True, slots=True)
class RiskOfRuinAnalysis:
    """Gambler's-ruin approximation of the chance of losing a capital stake.

    The estimate assumes a fixed bet size and independent, identically
    distributed outcomes; with compounding or variable sizing it is only a
    conservative signal, not an exact probability.
    """

    win_rate: float
    avg_win: float
    avg_loss: float
    risk_per_trade_pct: float
    win_loss_ratio: float
    adjusted_win_probability: float
    by_capital_multiple: Mapping[int, float] = field(default_factory=dict)

    @staticmethod
    def assessment(value: float) -> str:
        if value < 1:
            return "EXCELLENT"
        if value < 5:
            return "GOOD"
        if value < 10:
            return "ACCEPTABLE"
        if value < 20:
            return "HIGH RISK"
        return "VERY HIGH RISK"

    @staticmethod
    def _format(value: float) -> str:
        if value < 0.01:
            return "<0.01%"
        if value < 1:
            return f"{value:.2f}%"
        if value < 10:
            return f"{value:.1f}%"
        return f"{value:.0f}%"

    def recommendation(self) -> str | None:
        ror = self.by_capital_multiple.get(50)
        if ror is None:
            return None
        if ror < 1:
            return f"Excellent - Very low risk of ruin ({ror:.2f}% at 50x capital)"
        if ror < 5:
            return f"Good - Acceptable risk of ruin ({ror:.1f}% at 50x capital)"
        if ror < 10:
            return f"Moderate - Consider reducing risk per trade ({ror:.1f}% at 50x capital)"
        return f"High Risk - Reduce risk per trade significantly ({ror:.0f}% at 50x capital)"

    def to_text(self) -> str:
        lines = [
            "=== RISK OF RUIN ANALYSIS ===",
            "",
            "Strategy Parameters:",
            f"  Win Rate: {self.win_rate * 100:.1f}%",
            f"  Avg Win: {self.avg_win:.2f}",
            f"  Avg Loss: {self.avg_loss:.2f}",
            f"  Win/Loss Ratio: {self.win_loss_ratio:.2f}",
            f"  Risk Per Trade: {self.risk_per_trade_pct:.1f}%",
            "",
            "Risk of Ruin by Capital (as % of risk per trade):",
        ]
        for multiple in sorted(self.by_capital_multiple):
            value = self.by_capital_multiple[multiple]
            lines.append(
                f"  {multiple}x Capital: {self._format(value)} [{self.assessment(value)}]"
            )
        recommendation = self.recommendation()
        if recommendation is not None:
            lines.extend(["", "Recommendation:", f"  {recommendation}"])
        lines.extend(["", "Approximation: assumes fixed bet size and i.i.d. trade outcomes."])
        lines.append("============================")
        return "\n".join(lines) + "\n"


def risk_of_ruin(
    win_rate: float,
    avg_win: float,
    avg_loss: float,
    risk_per_trade_pct: float,
    capital_multiples: Iterable[int] = DEFAULT_CAPITAL_MULTIPLES,
) -> RiskOfRuinAnalysis:
    """Estimate ruin probability for each capital multiple, in percent.

    ``p' = w*R / (w*R + (1 - w))`` with ``R = avg_win / |avg_loss|``; for a
    capital multiple ``c`` the ruin probability is ``((1 - p') / p') **
    (c / risk_per_trade_pct)``, capped at 100 %.
    """

    if not 0.0 < win_rate < 1.0:
        raise InvalidWinRate(f"win_rate must lie in (0, 1), got {win_rate}")
    if avg_win <= 0 or avg_loss == 0 or not math.isfinite(avg_win + avg_loss):
        raise InvalidWinLossRatio("avg_win must be positive and avg_loss non-zero")
    if not risk_per_trade_pct > 0:
        raise InvalidRiskPercent("risk_per_trade_pct must be positive")

    ratio = avg_win / abs(avg_loss)
    weighted = win_rate * ratio
    adjusted = weighted / (weighted + (1.0 - win_rate))
    odds = (1.0 - adjusted) / adjusted

    by_multiple: dict[int, float] = {}
    for multiple in capital_multiples:
        if multiple <= 0:
            raise ValueError("capital multiples must be positive")
        if odds >= 1.0:
            by_multiple[int(multiple)] = 100.0
            continue
        units = multiple / risk_per_trade_pct
        by_multiple[int(multiple)] = min(odds**units * 100.0, 100.0)

    return RiskOfRuinAnalysis(
        win_rate=win_rate,
        avg_win=avg_win,
        avg_loss=avg_loss,
        risk_per_trade_pct=risk_per_trade_pct,
        win_loss_ratio=ratio,
        adjusted_win_probability=adjusted,
        by_capital_multiple=by_multiple,
    )


class MonteCarloEngine:
    """Bind a :class:`MonteCarloConfig` to :func:`simulate` and :func:`risk_of_ruin`."""

    def __init__(self, config: MonteCarloConfig | None = None) -> None:
        self.config = MonteCarloConfig() if config is None else config

    def run(
        self,
        returns: Sequence[float] | NDArray[np.float64],
        *,
        seed: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SimulationResult:
        cfg = self.config
        return simulate(
            returns,
            cfg.n_simulations,
            cfg.trades_per_simulation,
            seed=cfg.random_seed if seed is None else seed,
            starting_equity=cfg.starting_equity,
            batch_size=cfg.batch_size,
            max_workers=cfg.max_workers,
            timeout=cfg.timeout_seconds,
            cancel_event=cancel_event,
            recommended_samples=cfg.recommended_samples,
        )

    def run_trades(
        self,
        trades: Iterable[TradeRecord],
        *,
        seed: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SimulationResult:
        returns = [trade.return_pct for trade in trades]
        return self.run(returns, seed=seed, cancel_event=cancel_event)

    def risk_of_ruin(
        self,
        win_rate: float,
        avg_win: float,
        avg_loss: float,
        risk_per_trade_pct: float,
        capital_multiples: Iterable[int] = DEFAULT_CAPITAL_MULTIPLES,
    ) -> RiskOfRuinAnalysis:
        return risk_of_ruin(win_rate, avg_win, avg_loss, risk_per_trade_pct, capital_multiples)

    def risk_of_ruin_from_trades(
        self, trades: Iterable[TradeRecord], risk_per_trade_pct: float
    ) -> RiskOfRuinAnalysis:
        """Derive win rate and average win/loss from closed trades."""

        profits = np.array([trade.net_profit for trade in trades], dtype=float)
        if profits.size < self.config.min_samples:
            raise InsufficientData("not enough trades to estimate risk of ruin")
        wins = profits[profits > 0]
        losses = profits[profits < 0]
        if wins.size == 0 or losses.size == 0:
            raise InsufficientData("risk of ruin needs at least one winning and one losing trade")
        return risk_of_ruin(
            win_rate=wins.size / profits.size,
            avg_win=float(wins.mean()),
            avg_loss=float(losses.mean()),
            risk_per_trade_pct=risk_per_trade_pct,
        )


__all__ = [
    "DEFAULT_CAPITAL_MULTIPLES",
    "MonteCarloConfig",
    "MonteCarloEngine",
    "MonteCarloSummary",
    "RiskOfRuinAnalysis",
    "SimulationResult",
    "percentile",
    "risk_of_ruin",
    "simulate",
]

# SPDX-License-Identifier: MIT
from __future__ import annotations

from datetime import datetime, timezone

import numpy as np
import pytest

try:
    from hypothesis import given, settings, strategies as st
except ImportError:  # pragma: no cover
    pytest.skip("hypothesis not installed", allow_module_level=True)

from backtest.monte_carlo import simulate
from backtest.performance import BacktestSettings, BacktestSummary
from backtest.validation import BacktestValidator
from core.errors import PositionTooSmall
from domain.account import AccountSnapshot
from domain.instrument import InstrumentConstraints
from risk.governor import RiskGovernor
from risk.sizing import KELLY_MAX_PCT, KELLY_MIN_PCT, kelly_risk_pct, size_by_fixed_risk

START = datetime(2024, 1, 3, 9, 0, tzinfo=timezone.utc)

equities = st.floats(min_value=1.0, max_value=1e7, allow_nan=False, allow_infinity=False)


@pytest.mark.property
@settings(max_examples=150, deadline=None)
@given(path=st.lists(equities, min_size=1, max_size=60))
def test_high_water_mark_never_decreases(path: list[float]) -> None:
    governor = RiskGovernor(initial=AccountSnapshot(path[0], path[0], START))
    previous = governor.statistics().high_water_mark

    for equity in path:
        governor.evaluate(AccountSnapshot(equity, equity, START))
        current = governor.statistics().high_water_mark
        assert current >= previous
        assert current >= equity
        previous = current


@pytest.mark.property
@settings(max_examples=150, deadline=None)
@given(
    loss_pct=st.floats(min_value=2.5, max_value=99.0),
    repeats=st.integers(min_value=1, max_value=10),
)
def test_breach_is_idempotent_until_re_enabled(loss_pct: float, repeats: int) -> None:
    governor = RiskGovernor(initial=AccountSnapshot(10_000.0, 10_000.0, START))
    equity = 10_000.0 * (1 - loss_pct / 100.0)
    governor.evaluate(AccountSnapshot(equity, equity, START))

    for _ in range(repeats):
        decision = governor.evaluate(AccountSnapshot(equity, equity, START))
        assert decision.allow is False
        assert governor.trading_enabled is False

    governor.re_enable("review", rebase=True)
    assert governor.evaluate(AccountSnapshot(equity, equity, START)).allow is True


@pytest.mark.property
@settings(max_examples=300, deadline=None)
@given(
    balance=st.floats(min_value=100.0, max_value=1e7),
    risk_pct=st.floats(min_value=0.01, max_value=10.0),
    stop_pips=st.floats(min_value=0.5, max_value=500.0),
    pip_value=st.sampled_from([0.0001, 0.01, 1.0, 10.0]),
    size_step=st.sampled_from([0.01, 1.0, 1000.0]),
)
def test_fixed_risk_never_exceeds_budget_by_more_than_one_step(
    balance: float, risk_pct: float, stop_pips: float, pip_value: float, size_step: float
) -> None:
    constraints = InstrumentConstraints(
        min_size=0.0, max_size=1e12, size_step=size_step, pip_value=pip_value
    )
    try:
        size = size_by_fixed_risk(balance, risk_pct, stop_pips, constraints)
    except PositionTooSmall as exc:
        assert exc.floored_size <= 0
        return

    budget = balance * risk_pct / 100.0
    assert size > 0
    assert size * stop_pips * pip_value <= budget + size_step * stop_pips * pip_value + 1e-6


@pytest.mark.property
@settings(max_examples=300, deadline=None)
@given(
    win_rate=st.floats(min_value=0.001, max_value=0.999),
    ratio=st.floats(min_value=0.01, max_value=100.0),
    fraction=st.floats(min_value=0.01, max_value=1.0),
)
def test_kelly_risk_is_clamped(win_rate: float, ratio: float, fraction: float) -> None:
    pct = kelly_risk_pct(win_rate, ratio, fraction)

    assert KELLY_MIN_PCT <= pct <= KELLY_MAX_PCT


@pytest.mark.property
@settings(max_examples=50, deadline=None)
@given(
    returns=st.lists(
        st.floats(min_value=-50.0, max_value=50.0, allow_nan=False), min_size=2, max_size=40
    ),
    n_simulations=st.integers(min_value=1, max_value=300),
    seed=st.integers(min_value=0, max_value=2**32 - 1),
)
def test_bootstrap_is_reproducible(returns: list[float], n_simulations: int, seed: int) -> None:
    first = simulate(returns, n_simulations, 10, seed=seed, batch_size=64)
    second = simulate(returns, n_simulations, 10, seed=seed, batch_size=64, max_workers=3)

    assert np.array_equal(first.return_samples, second.return_samples)
    assert np.array_equal(first.drawdown_samples, second.drawdown_samples)
    assert np.all((first.drawdown_samples >= 0) & (first.drawdown_samples <= 100))


@pytest.mark.property
@settings(max_examples=200, deadline=None)
@given(
    total_trades=st.integers(min_value=0, max_value=10_000),
    profit_factor=st.floats(min_value=0.0, max_value=10.0),
    sharpe=st.floats(min_value=-5.0, max_value=5.0),
    drawdown=st.floats(min_value=0.0, max_value=100.0),
    ret=st.floats(min_value=-100.0, max_value=500.0),
    ratio=st.floats(min_value=0.0, max_value=10.0),
    wins=st.integers(min_value=0, max_value=50),
    losses=st.integers(min_value=0, max_value=50),
    days=st.integers(min_value=0, max_value=5_000),
    realistic=st.booleans(),
)
def test_excessive_win_rate_is_always_an_error(
    total_trades: int,
    profit_factor: float,
    sharpe: float,
    drawdown: float,
    ret: float,
    ratio: float,
    wins: int,
    losses: int,
    days: int,
    realistic: bool,
) -> None:
    summary = BacktestSummary(
        total_trades=total_trades,
        win_rate=0.95,
        profit_factor=profit_factor,
        sharpe_ratio=sharpe,
        max_drawdown_pct=drawdown,
        return_pct=ret,
        avg_win_loss_ratio=ratio,
        max_consecutive_wins=wins,
        max_consecutive_losses=losses,
        duration_days=days,
        settings=BacktestSettings(
            used_tick_data=realistic, included_spread=realistic, included_commission=realistic
        ),
    )

    report = BacktestValidator().validate(summary)

    assert report.is_valid is False
    assert any("Win rate too high" in error for error in report.errors)

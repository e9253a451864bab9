# SPDX-License-Identifier: MIT
from __future__ import annotations

import logging

import pytest

from core.config.risk_settings import SizingConfig
from core.errors import (
    InvalidRiskPercent,
    InvalidStopLoss,
    InvalidVolatility,
    InvalidWinLossRatio,
    InvalidWinRate,
    PositionTooSmall,
    PreconditionError,
)
from domain.instrument import InstrumentConstraints
from domain.trade import TradeDirection
from risk.sizing import (
    PositionSizer,
    SizingRequest,
    describe_size,
    floor_to_step,
    kelly_risk_pct,
    max_position_size,
    size_by_fixed_risk,
    size_by_fractional_kelly,
    size_by_volatility,
    stop_loss_pips,
    take_profit_price,
    validate,
)


def test_fixed_risk_size_matches_budget(eurusd: InstrumentConstraints) -> None:
    # 1 % of 10k over a 50 pip stop at 0.0001 per pip and unit.
    assert size_by_fixed_risk(10_000.0, 1.0, 50.0, eurusd) == pytest.approx(20_000.0)


def test_fixed_risk_floors_to_step(eurusd: InstrumentConstraints) -> None:
    size = size_by_fixed_risk(10_000.0, 1.0, 30.0, eurusd)

    assert size == pytest.approx(33_000.0)
    assert size * 30.0 * eurusd.pip_value <= 100.0


def test_budget_below_minimum_raises_position_too_small() -> None:
    constraints = InstrumentConstraints(
        min_size=1000.0, max_size=10_000_000.0, size_step=1000.0, pip_value=10.0
    )

    with pytest.raises(PositionTooSmall) as excinfo:
        size_by_fixed_risk(10_000.0, 1.0, 50.0, constraints)

    assert excinfo.value.raw_size == pytest.approx(0.2)
    assert excinfo.value.floored_size == 0
    assert isinstance(excinfo.value, PreconditionError)


def test_size_between_zero_and_minimum_is_rejected() -> None:
    constraints = InstrumentConstraints(
        min_size=5000.0, max_size=1_000_000.0, size_step=1000.0, pip_value=0.0001
    )

    with pytest.raises(PositionTooSmall) as excinfo:
        size_by_fixed_risk(1_000.0, 1.0, 50.0, constraints)

    assert excinfo.value.floored_size == pytest.approx(2000.0)


def test_size_above_maximum_is_capped(caplog: pytest.LogCaptureFixture) -> None:
    constraints = InstrumentConstraints(
        min_size=1000.0, max_size=50_000.0, size_step=1000.0, pip_value=0.0001
    )

    with caplog.at_level(logging.WARNING):
        size = size_by_fixed_risk(1_000_000.0, 1.0, 50.0, constraints)

    assert size == pytest.approx(50_000.0)
    assert any("capped" in record.getMessage() for record in caplog.records)


@pytest.mark.parametrize("pips", [0.0, -10.0, float("nan")])
def test_invalid_stop_loss_is_rejected(eurusd: InstrumentConstraints, pips: float) -> None:
    with pytest.raises(InvalidStopLoss):
        size_by_fixed_risk(10_000.0, 1.0, pips, eurusd)


@pytest.mark.parametrize("balance, risk_pct", [(0.0, 1.0), (10_000.0, 0.0), (10_000.0, -1.0)])
def test_invalid_budget_is_rejected(
    eurusd: InstrumentConstraints, balance: float, risk_pct: float
) -> None:
    with pytest.raises(InvalidRiskPercent):
        size_by_fixed_risk(balance, risk_pct, 50.0, eurusd)


def test_volatility_size_places_stop_at_atr_multiple(eurusd: InstrumentConstraints) -> None:
    size = size_by_volatility(10_000.0, 1.0, 0.0015, 2.0, eurusd)

    assert size == pytest.approx(33_000.0)


@pytest.mark.parametrize("atr, multiplier", [(0.0, 2.0), (-0.001, 2.0), (0.001, 0.0)])
def test_invalid_volatility_is_rejected(
    eurusd: InstrumentConstraints, atr: float, multiplier: float
) -> None:
    with pytest.raises(InvalidVolatility):
        size_by_volatility(10_000.0, 1.0, atr, multiplier, eurusd)


def test_quarter_kelly_risk_pct() -> None:
    # f* = (0.55 * 2.5 - 1) / 1.5 = 0.25
    assert kelly_risk_pct(0.55, 1.5, 0.25) == pytest.approx(6.25)


def test_negative_edge_clamps_to_floor(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        pct = kelly_risk_pct(0.3, 1.0, 0.25)

    assert pct == pytest.approx(0.5)
    assert any(record.getMessage() == "Kelly risk clamped" for record in caplog.records)


def test_large_edge_clamps_to_ceiling() -> None:
    assert kelly_risk_pct(0.9, 3.0, 1.0) == pytest.approx(10.0)


@pytest.mark.parametrize("win_rate", [0.0, 1.0, -0.1, 1.2])
def test_kelly_rejects_degenerate_win_rate(win_rate: float) -> None:
    with pytest.raises(InvalidWinRate):
        kelly_risk_pct(win_rate, 1.5, 0.25)


@pytest.mark.parametrize("ratio", [0.0, -1.0, float("inf")])
def test_kelly_rejects_invalid_ratio(ratio: float) -> None:
    with pytest.raises(InvalidWinLossRatio):
        kelly_risk_pct(0.55, ratio, 0.25)


def test_kelly_rejects_fraction_outside_unit_interval() -> None:
    with pytest.raises(InvalidRiskPercent):
        kelly_risk_pct(0.55, 1.5, 1.5)


def test_fractional_kelly_size(eurusd: InstrumentConstraints) -> None:
    size = size_by_fractional_kelly(10_000.0, 0.55, 1.5, 0.25, 50.0, eurusd)

    assert size == pytest.approx(125_000.0)


@pytest.mark.parametrize(
    "size, step, expected",
    [(33_333.3, 1000.0, 33_000.0), (0.3, 0.01, 0.3), (0.129, 0.01, 0.12), (999.0, 1000.0, 0.0)],
)
def test_floor_to_step(size: float, step: float, expected: float) -> None:
    assert floor_to_step(size, step) == pytest.approx(expected)


def test_floor_to_step_rejects_non_positive_step() -> None:
    with pytest.raises(ValueError):
        floor_to_step(10.0, 0.0)


def test_validate_accepts_tradable_size(eurusd: InstrumentConstraints) -> None:
    result = validate(20_000.0, eurusd)

    assert result
    assert result.errors == []


@pytest.mark.parametrize(
    "size, fragment",
    [
        (0.0, "must be positive"),
        (500.0, "below minimum"),
        (20_000_000.0, "exceeds maximum"),
        (20_500.0, "not a multiple"),
    ],
)
def test_validate_reports_errors(
    eurusd: InstrumentConstraints, size: float, fragment: str
) -> None:
    result = validate(size, eurusd)

    assert not result
    assert any(fragment in error for error in result.errors)


def test_validate_warns_on_large_equity_exposure(eurusd: InstrumentConstraints) -> None:
    result = validate(10_000.0, eurusd, price=1.1, equity=10_000.0)

    assert result.ok is True
    assert result.warnings == ["Position represents 110.00% of equity (max: 5.0%)"]


def test_stop_loss_pips_and_take_profit() -> None:
    assert stop_loss_pips(1.1000, 1.0950, 0.0001) == pytest.approx(50.0)
    assert take_profit_price(1.1000, 1.0950, 2.0, TradeDirection.BUY) == pytest.approx(1.1100)
    assert take_profit_price(1.1000, 1.1050, 2.0, "sell") == pytest.approx(1.0900)


def test_max_position_size_limits_notional(eurusd: InstrumentConstraints) -> None:
    assert max_position_size(10_000.0, 1.1, eurusd) == pytest.approx(0.0)
    assert max_position_size(1_000_000.0, 1.1, eurusd) == pytest.approx(45_000.0)
    with pytest.raises(ValueError):
        max_position_size(0.0, 1.1, eurusd)


def test_describe_size() -> None:
    text = describe_size(20_000.0, 1.1, 10_000.0)

    assert text == "Size: 20000 units (0.20 lots), Value: 22000.00, Equity%: 220.00%"


def test_sizing_request_converts_distance_to_pips(eurusd: InstrumentConstraints) -> None:
    request = SizingRequest(
        account_balance=10_000.0, risk_pct=1.0, stop_loss_distance=0.005, constraints=eurusd
    )

    assert request.stop_loss_pips == pytest.approx(50.0)
    assert PositionSizer(eurusd).size(request) == pytest.approx(20_000.0)


def test_sizing_request_rejects_non_positive_distance(eurusd: InstrumentConstraints) -> None:
    with pytest.raises(InvalidStopLoss):
        SizingRequest(
            account_balance=10_000.0, risk_pct=1.0, stop_loss_distance=0.0, constraints=eurusd
        )


def test_position_sizer_applies_configured_defaults(eurusd: InstrumentConstraints) -> None:
    sizer = PositionSizer(eurusd, SizingConfig(risk_pct=2.0, atr_multiplier=1.0))

    assert sizer.by_fixed_risk(10_000.0, 50.0) == pytest.approx(40_000.0)
    assert sizer.by_fixed_risk(10_000.0, 50.0, risk_pct=1.0) == pytest.approx(20_000.0)
    assert sizer.by_volatility(10_000.0, 0.005) == pytest.approx(40_000.0)
    assert sizer.by_kelly(10_000.0, 0.55, 1.5, 50.0) == pytest.approx(125_000.0)


def test_position_sizer_validation_uses_equity_cap(eurusd: InstrumentConstraints) -> None:
    sizer = PositionSizer(eurusd, SizingConfig(max_equity_fraction_pct=50.0))

    assert sizer.validate(4_000.0, price=1.1, equity=10_000.0).warnings == []
    assert sizer.max_position_size(10_000.0, 1.0) == pytest.approx(5_000.0)

# SPDX-License-Identifier: MIT
"""Translate a risk budget and a stop distance into a broker-valid size.

Every sizing path floors the raw size to the instrument's volume step:
rounding up would silently risk more than the requested budget. A budget
that floors to nothing raises :class:`~core.errors.PositionTooSmall` rather
than returning a zero size.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal

from core.config.risk_settings import SizingConfig
from core.errors import (
    InvalidRiskPercent,
    InvalidStopLoss,
    InvalidVolatility,
    InvalidWinLossRatio,
    InvalidWinRate,
    PositionTooSmall,
)
from core.utils.logging import get_logger
from domain.instrument import InstrumentConstraints
from domain.trade import TradeDirection

KELLY_MIN_PCT = 0.5
KELLY_MAX_PCT = 10.0
# Tolerates float noise such as 0.3 / 0.01 == 29.999999999999996.
_STEP_EPSILON = 1e-9

_logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SizingRequest:
    """Risk budget for one prospective position.

    ``stop_loss_distance`` is a price distance; it is converted to pips with
    the instrument's ``pip_size``.
    """

    account_balance: float
    risk_pct: float
    stop_loss_distance: float
    constraints: InstrumentConstraints

    def __post_init__(self) -> None:
        if self.stop_loss_distance <= 0:
            raise InvalidStopLoss(
                f"stop-loss distance must be positive, got {self.stop_loss_distance}"
            )

    @property
    def stop_loss_pips(self) -> float:
        return self.stop_loss_distance / self.constraints.pip_size


@dataclass(slots=True)
class SizeValidation:
    """Outcome of :func:`validate`; truthy when the size may be submitted."""

    ok: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.ok


def _step_decimals(step: float) -> int:
    exponent = Decimal(str(step)).normalize().as_tuple().exponent
    return max(0, -int(exponent))


def floor_to_step(size: float, step: float) -> float:
    """Round ``size`` toward zero to a multiple of ``step``."""

    if step <= 0:
        raise ValueError("step must be positive")
    steps = math.floor(size / step + _STEP_EPSILON)
    return round(steps * step, _step_decimals(step))


def _check_budget(balance: float, risk_pct: float) -> None:
    if not math.isfinite(balance) or balance <= 0:
        raise InvalidRiskPercent(f"account balance must be positive, got {balance}")
    if not math.isfinite(risk_pct) or risk_pct <= 0:
        raise InvalidRiskPercent(f"risk percentage must be positive, got {risk_pct}")


def _normalise(raw_size: float, constraints: InstrumentConstraints, method: str) -> float:
    floored = floor_to_step(raw_size, constraints.size_step)
    if floored <= 0 or floored < constraints.min_size:
        raise PositionTooSmall(
            f"{method}: risk budget buys {raw_size:.6g} units, below the tradable minimum "
            f"{constraints.min_size} (step {constraints.size_step})",
            raw_size=raw_size,
            floored_size=floored,
        )
    if floored > constraints.max_size:
        capped = floor_to_step(constraints.max_size, constraints.size_step)
        _logger.warning(
            "Position size capped at instrument maximum",
            method=method,
            requested=floored,
            max_size=constraints.max_size,
        )
        return capped
    return floored


def size_by_fixed_risk(
    balance: float,
    risk_pct: float,
    stop_loss_pips: float,
    constraints: InstrumentConstraints,
) -> float:
    """Size so that a stop-out loses ``risk_pct`` percent of ``balance``.

    ``size = balance * risk_pct / 100 / (stop_loss_pips * pip_value)``,
    floored to ``size_step`` and capped at ``max_size``.

    Raises:
        InvalidStopLoss: ``stop_loss_pips`` is zero or negative.
        InvalidRiskPercent: ``balance`` or ``risk_pct`` is not positive.
        PositionTooSmall: the budget floors below ``min_size``.
    """

    if not math.isfinite(stop_loss_pips) or stop_loss_pips <= 0:
        raise InvalidStopLoss(f"stop-loss distance must be positive, got {stop_loss_pips} pips")
    _check_budget(balance, risk_pct)
    risk_amount = balance * risk_pct / 100.0
    raw_size = risk_amount / (stop_loss_pips * constraints.pip_value)
    size = _normalise(raw_size, constraints, "fixed_risk")
    _logger.info(
        "Position sized",
        method="fixed_risk",
        risk_pct=risk_pct,
        risk_amount=risk_amount,
        stop_loss_pips=stop_loss_pips,
        raw_size=raw_size,
        size=size,
    )
    return size


def size_by_volatility(
    balance: float,
    risk_pct: float,
    atr: float,
    atr_multiplier: float,
    constraints: InstrumentConstraints,
) -> float:
    """Fixed-risk sizing with the stop placed ``atr * atr_multiplier`` away."""

    if not math.isfinite(atr) or atr <= 0:
        raise InvalidVolatility(f"ATR must be positive, got {atr}")
    if atr_multiplier <= 0:
        raise InvalidVolatility(f"ATR multiplier must be positive, got {atr_multiplier}")
    stop_pips = atr * atr_multiplier / constraints.pip_size
    return size_by_fixed_risk(balance, risk_pct, stop_pips, constraints)


def kelly_risk_pct(
    win_rate: float,
    avg_win_loss_ratio: float,
    kelly_fraction: float,
    *,
    min_pct: float = KELLY_MIN_PCT,
    max_pct: float = KELLY_MAX_PCT,
) -> float:
    """Fractional-Kelly risk percentage clamped to ``[min_pct, max_pct]``.

    ``f* = (p * (R + 1) - 1) / R``. The clamp is a hard safety cap: on noisy
    statistics unclamped Kelly can suggest huge or negative exposure.
    """

    if not 0.0 < win_rate < 1.0:
        raise InvalidWinRate(f"win rate must lie in (0, 1), got {win_rate}")
    if not math.isfinite(avg_win_loss_ratio) or avg_win_loss_ratio <= 0:
        raise InvalidWinLossRatio(
            f"average win/loss ratio must be positive, got {avg_win_loss_ratio}"
        )
    if not 0.0 < kelly_fraction <= 1.0:
        raise InvalidRiskPercent(f"Kelly fraction must lie in (0, 1], got {kelly_fraction}")

    full_kelly = (win_rate * (avg_win_loss_ratio + 1.0) - 1.0) / avg_win_loss_ratio
    suggested = full_kelly * kelly_fraction * 100.0
    clamped = min(max(suggested, min_pct), max_pct)
    if clamped != suggested:
        _logger.warning(
            "Kelly risk clamped",
            suggested_pct=suggested,
            clamped_pct=clamped,
            full_kelly_pct=full_kelly * 100.0,
        )
    return clamped


def size_by_fractional_kelly(
    balance: float,
    win_rate: float,
    avg_win_loss_ratio: float,
    kelly_fraction: float,
    stop_loss_pips: float,
    constraints: InstrumentConstraints,
    *,
    min_pct: float = KELLY_MIN_PCT,
    max_pct: float = KELLY_MAX_PCT,
) -> float:
    """Fixed-risk sizing at the clamped fractional-Kelly percentage."""

    risk_pct = kelly_risk_pct(
        win_rate, avg_win_loss_ratio, kelly_fraction, min_pct=min_pct, max_pct=max_pct
    )
    return size_by_fixed_risk(balance, risk_pct, stop_loss_pips, constraints)


def validate(
    size: float,
    constraints: InstrumentConstraints,
    *,
    price: float | None = None,
    equity: float | None = None,
    max_equity_fraction_pct: float = 5.0,
) -> SizeValidation:
    """Check ``size`` against the instrument and, optionally, account equity.

    Zero, negative or out-of-range sizes fail. A notional above
    ``max_equity_fraction_pct`` of equity is reported as a warning only.
    """

    result = SizeValidation()
    if size <= 0:
        result.errors.append(f"Position size must be positive, got {size}")
    else:
        if size < constraints.min_size:
            result.errors.append(f"Position size {size} below minimum {constraints.min_size}")
        if size > constraints.max_size:
            result.errors.append(f"Position size {size} exceeds maximum {constraints.max_size}")
        step = constraints.size_step
        if floor_to_step(size, step) < size - _STEP_EPSILON * step:
            result.errors.append(f"Position size {size} is not a multiple of {step}")
    if price is not None and equity is not None and size > 0 and equity > 0:
        equity_pct = size * price / equity * 100.0
        if equity_pct > max_equity_fraction_pct:
            result.warnings.append(
                f"Position represents {equity_pct:.2f}% of equity (max: {max_equity_fraction_pct}%)"
            )
    result.ok = not result.errors
    return result


def stop_loss_pips(entry_price: float, stop_price: float, pip_size: float) -> float:
    """Distance between entry and stop expressed in pips."""

    return abs(entry_price - stop_price) / pip_size


def take_profit_price(
    entry_price: float,
    stop_price: float,
    reward_ratio: float,
    direction: TradeDirection | str,
) -> float:
    """Take-profit level ``reward_ratio`` times the stop distance from entry."""

    distance = abs(entry_price - stop_price) * reward_ratio
    if TradeDirection.parse(direction) is TradeDirection.BUY:
        return entry_price + distance
    return entry_price - distance


def max_position_size(
    equity: float,
    price: float,
    constraints: InstrumentConstraints,
    max_equity_fraction_pct: float = 5.0,
) -> float:
    """Largest size whose notional stays within ``max_equity_fraction_pct`` of equity."""

    if equity <= 0 or price <= 0:
        raise ValueError("equity and price must be positive")
    units = equity * max_equity_fraction_pct / 100.0 / price
    return min(floor_to_step(units, constraints.size_step), constraints.max_size)


def describe_size(size: float, price: float, equity: float, lot_size: float = 100_000.0) -> str:
    lots = size / lot_size
    value = size * price
    return (
        f"Size: {size:g} units ({lots:.2f} lots), Value: {value:.2f}, "
        f"Equity%: {value / equity * 100:.2f}%"
    )


class PositionSizer:
    """Sizing facade bound to one instrument and a :class:`SizingConfig`.

    A strategy receives a single instance by injection instead of
    re-implementing the formulas.
    """

    def __init__(
        self, constraints: InstrumentConstraints, config: SizingConfig | None = None
    ) -> None:
        self.constraints = constraints
        self.config = SizingConfig() if config is None else config

    def by_fixed_risk(
        self, balance: float, stop_loss_pips: float, risk_pct: float | None = None
    ) -> float:
        return size_by_fixed_risk(
            balance,
            self.config.risk_pct if risk_pct is None else risk_pct,
            stop_loss_pips,
            self.constraints,
        )

    def by_volatility(
        self,
        balance: float,
        atr: float,
        atr_multiplier: float | None = None,
        risk_pct: float | None = None,
    ) -> float:
        return size_by_volatility(
            balance,
            self.config.risk_pct if risk_pct is None else risk_pct,
            atr,
            self.config.atr_multiplier if atr_multiplier is None else atr_multiplier,
            self.constraints,
        )

    def by_kelly(
        self,
        balance: float,
        win_rate: float,
        avg_win_loss_ratio: float,
        stop_loss_pips: float,
        kelly_fraction: float | None = None,
    ) -> float:
        return size_by_fractional_kelly(
            balance,
            win_rate,
            avg_win_loss_ratio,
            self.config.kelly_fraction if kelly_fraction is None else kelly_fraction,
            stop_loss_pips,
            self.constraints,
            min_pct=self.config.kelly_min_pct,
            max_pct=self.config.kelly_max_pct,
        )

    def size(self, request: SizingRequest) -> float:
        """Fixed-risk size for a :class:`SizingRequest`."""

        return size_by_fixed_risk(
            request.account_balance,
            request.risk_pct,
            request.stop_loss_pips,
            request.constraints,
        )

    def validate(
        self, size: float, *, price: float | None = None, equity: float | None = None
    ) -> SizeValidation:
        return validate(
            size,
            self.constraints,
            price=price,
            equity=equity,
            max_equity_fraction_pct=self.config.max_equity_fraction_pct,
        )

    def max_position_size(self, equity: float, price: float) -> float:
        return max_position_size(
            equity, price, self.constraints, self.config.max_equity_fraction_pct
        )


__all__ = [
    "KELLY_MAX_PCT",
    "KELLY_MIN_PCT",
    "PositionSizer",
    "SizeValidation",
    "SizingRequest",
    "describe_size",
    "floor_to_step",
    "kelly_risk_pct",
    "max_position_size",
    "size_by_fixed_risk",
    "size_by_fractional_kelly",
    "size_by_volatility",
    "stop_loss_pips",
    "take_profit_price",
    "validate",
]

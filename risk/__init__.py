"""Real-time risk governance and position sizing."""

from risk.calendar import next_reset_boundary, trading_date, week_start
from risk.governor import BreachKind, Decision, FlattenSignal, RiskGovernor
from risk.limits import RiskLimits, RiskState, RiskStatistics
from risk.sizing import (
    PositionSizer,
    SizeValidation,
    SizingRequest,
    kelly_risk_pct,
    size_by_fixed_risk,
    size_by_fractional_kelly,
    size_by_volatility,
    validate,
)

__all__ = [
    "BreachKind",
    "Decision",
    "FlattenSignal",
    "PositionSizer",
    "RiskGovernor",
    "RiskLimits",
    "RiskState",
    "RiskStatistics",
    "SizeValidation",
    "SizingRequest",
    "kelly_risk_pct",
    "next_reset_boundary",
    "size_by_fixed_risk",
    "size_by_fractional_kelly",
    "size_by_volatility",
    "trading_date",
    "validate",
    "week_start",
]

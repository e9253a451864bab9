# SPDX-License-Identifier: MIT
"""Typed failures shared by the sizing, risk and simulation layers.

Precondition violations fail fast with one of the :class:`PreconditionError`
subclasses below. Risk-limit breaches and backtest red flags are *not*
exceptions; they are reported through :class:`risk.governor.Decision` and
:class:`backtest.validation.ValidationReport` respectively.
"""

from __future__ import annotations


class PreconditionError(ValueError):
    """Base class for inputs that make a computation meaningless."""


class InvalidStopLoss(PreconditionError):
    """Raised when a stop-loss distance is zero or negative."""


class InvalidVolatility(PreconditionError):
    """Raised when an ATR reading is zero or negative."""


class InvalidWinRate(PreconditionError):
    """Raised when a win rate lies outside the open interval (0, 1)."""


class InvalidWinLossRatio(PreconditionError):
    """Raised when an average win/loss ratio is not strictly positive."""


class InvalidRiskPercent(PreconditionError):
    """Raised when a balance or risk percentage cannot fund a position."""


class PositionTooSmall(PreconditionError):
    """Raised when a risk budget floors to a size the instrument cannot trade.

    Distinguishes "the budget cannot buy the minimum tradable size" from a
    deliberately zero-sized position.
    """

    def __init__(self, message: str, *, raw_size: float, floored_size: float) -> None:
        super().__init__(message)
        self.raw_size = raw_size
        self.floored_size = floored_size


class InsufficientData(PreconditionError):
    """Raised when a sample is too small for the requested statistic."""


class SimulationCancelled(RuntimeError):
    """Raised when a Monte Carlo run is cancelled or exceeds its timeout."""


__all__ = [
    "InsufficientData",
    "InvalidRiskPercent",
    "InvalidStopLoss",
    "InvalidVolatility",
    "InvalidWinLossRatio",
    "InvalidWinRate",
    "PositionTooSmall",
    "PreconditionError",
    "SimulationCancelled",
]

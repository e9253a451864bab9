# SPDX-License-Identifier: MIT
"""Broker-side constraints that bound a tradable position size."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class InstrumentConstraints:
    """Volume limits and pip economics of a single instrument.

    Attributes:
        min_size: Smallest volume the broker accepts, in units.
        max_size: Largest volume the broker accepts, in units.
        size_step: Volume increment; every size must be a multiple of it.
        pip_value: Account-currency value of one pip for one unit of volume.
        pip_size: Price distance of one pip (``0.0001`` for most FX pairs).
        lot_size: Units per standard lot, used only for human-readable output.
    """

    min_size: float
    max_size: float
    size_step: float
    pip_value: float
    pip_size: float = 0.0001
    lot_size: float = 100_000.0

    def __post_init__(self) -> None:
        if self.size_step <= 0:
            raise ValueError("size_step must be positive")
        if self.pip_value <= 0:
            raise ValueError("pip_value must be positive")
        if self.pip_size <= 0:
            raise ValueError("pip_size must be positive")
        if self.min_size < 0:
            raise ValueError("min_size cannot be negative")
        if self.max_size < self.min_size:
            raise ValueError("max_size must be greater than or equal to min_size")
        if self.lot_size <= 0:
            raise ValueError("lot_size must be positive")

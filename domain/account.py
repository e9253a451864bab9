# SPDX-License-Identifier: MIT
"""Account snapshot supplied by the strategy driver on every risk check."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Point-in-time equity and balance reading.

    Snapshots are ephemeral: the governor reads them on every evaluation and
    keeps only the derived baselines in its own state. Zero or negative
    equity is a valid reading of a wiped-out margin account and must reach
    the governor as a drawdown breach.
    """

    equity: float
    balance: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        for name in ("equity", "balance"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be finite")

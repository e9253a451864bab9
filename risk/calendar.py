# SPDX-License-Identifier: MIT
"""Pure calendar helpers deciding when daily and weekly baselines reset.

The governor never reads the wall clock to decide on resets; it compares the
trading date of each evaluation against the boundary these functions return.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Literal

ResetPeriod = Literal["daily", "weekly"]


def trading_date(moment: datetime, tz: tzinfo = timezone.utc) -> date:
    """Local trading-day date of ``moment`` in ``tz``; naive values are taken as ``tz``."""

    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""

    return day - timedelta(days=day.weekday())


def next_reset_boundary(day: date, period: ResetPeriod = "daily") -> date:
    """First date strictly after ``day`` on which a ``period`` baseline resets.

    Daily baselines reset on every date change; weekly baselines reset at
    Monday 00:00 of the following ISO week.
    """

    if period == "daily":
        return day + timedelta(days=1)
    if period == "weekly":
        return week_start(day) + timedelta(days=7)
    raise ValueError(f"unsupported reset period: {period!r}")


__all__ = ["ResetPeriod", "next_reset_boundary", "trading_date", "week_start"]

# SPDX-License-Identifier: MIT
"""Session risk governor gating every new position request.

The governor owns the canonical "is trading allowed" flag for one strategy
instance. Loss and drawdown breaches halt trading for the rest of the session
and emit a single advisory :class:`FlattenSignal`; only an operator calling
:meth:`RiskGovernor.re_enable` can resume trading. The governor performs no
I/O beyond logging and never sleeps, so it is safe to call from a per-tick
callback. It is not thread-safe: use one instance per strategy driver.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Callable, Iterable
from zoneinfo import ZoneInfo

from core.config.risk_settings import RiskLimitsConfig
from core.utils.logging import get_logger
from domain.account import AccountSnapshot
from risk.calendar import next_reset_boundary, trading_date, week_start
from risk.limits import RiskLimits, RiskState, RiskStatistics, loss_pct


class BreachKind(str, Enum):
    """Reasons for refusing a new position, most severe first."""

    DRAWDOWN = "max_drawdown"
    WEEKLY_LOSS = "weekly_loss"
    DAILY_LOSS = "daily_loss"
    TRADING_DISABLED = "trading_disabled"
    POSITION_LIMIT = "position_limit"

    @property
    def halts_trading(self) -> bool:
        return self in (BreachKind.DRAWDOWN, BreachKind.WEEKLY_LOSS, BreachKind.DAILY_LOSS)


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of :meth:`RiskGovernor.evaluate`.

    ``reason`` is the most severe condition observed; ``breaches`` lists every
    condition that was true, ordered by severity.
    """

    allow: bool
    reason: BreachKind | None = None
    message: str = ""
    warnings: tuple[str, ...] = ()
    breaches: tuple[BreachKind, ...] = ()


@dataclass(frozen=True, slots=True)
class FlattenSignal:
    """Advisory request to close every open position."""

    reason: str
    kind: BreachKind
    equity: float
    timestamp: datetime


FlattenListener = Callable[[FlattenSignal], object]


class RiskGovernor:
    """Enforce daily/weekly loss, drawdown and concurrent-position limits.

    Args:
        limits: Session limits; defaults to 2 % daily, 5 % weekly, 20 %
            drawdown and five concurrent positions.
        initial: Optional snapshot opening the session. Without it the first
            snapshot passed to :meth:`evaluate` sets the baselines.
        tz: Timezone whose calendar defines the trading day.
        flatten_listeners: Callables receiving :class:`FlattenSignal` when a
            limit breach halts trading. They run inside :meth:`evaluate` and
            must hand broker work off instead of blocking, as
            :class:`execution.flatten.FlattenHandler` does.

    Example:
        >>> gov = RiskGovernor(RiskLimits(max_daily_loss_pct=2.0),
        ...                    initial=AccountSnapshot(10_000, 10_000))
        >>> gov.evaluate(AccountSnapshot(9_750, 9_750)).allow
        False
    """

    def __init__(
        self,
        limits: RiskLimits | None = None,
        *,
        initial: AccountSnapshot | None = None,
        tz: tzinfo = timezone.utc,
        flatten_listeners: Iterable[FlattenListener] = (),
    ) -> None:
        self.limits = RiskLimits() if limits is None else limits
        self._tz = tz
        self._listeners: list[FlattenListener] = list(flatten_listeners)
        self._state: RiskState | None = None
        self._logger = get_logger(__name__)
        if not self.limits.follows_convention():
            self._logger.warning(
                "Risk limits do not follow drawdown >= weekly >= daily convention",
                max_daily_loss_pct=self.limits.max_daily_loss_pct,
                max_weekly_loss_pct=self.limits.max_weekly_loss_pct,
                max_drawdown_pct=self.limits.max_drawdown_pct,
            )
        if initial is not None:
            self._start_session(initial.equity, trading_date(initial.timestamp, tz))

    @classmethod
    def from_config(
        cls,
        config: RiskLimitsConfig,
        *,
        initial: AccountSnapshot | None = None,
        flatten_listeners: Iterable[FlattenListener] = (),
    ) -> "RiskGovernor":
        """Build a governor whose limits and trading-day timezone come from ``config``."""

        return cls(
            config.to_limits(),
            initial=initial,
            tz=ZoneInfo(config.timezone),
            flatten_listeners=flatten_listeners,
        )

    # ------------------------------------------------------------------ state
    def _start_session(self, equity: float, today: date) -> RiskState:
        self._state = RiskState(
            starting_daily_equity=equity,
            starting_weekly_equity=equity,
            high_water_mark=equity,
            last_daily_reset_date=today,
            last_weekly_reset_date=week_start(today),
            next_daily_reset=next_reset_boundary(today, "daily"),
            next_weekly_reset=next_reset_boundary(today, "weekly"),
            last_equity=equity,
        )
        self._logger.info("Risk session started", equity=equity, trading_date=today.isoformat())
        return self._state

    def _require_state(self) -> RiskState:
        if self._state is None:
            raise RuntimeError(
                "risk session has not started; call evaluate() with a snapshot first"
            )
        return self._state

    def _apply_resets(self, state: RiskState, today: date, equity: float) -> None:
        if today >= state.next_daily_reset:
            state.starting_daily_equity = equity
            state.last_daily_reset_date = today
            state.next_daily_reset = next_reset_boundary(today, "daily")
            self._logger.info("Daily reset", starting_equity=equity, trading_date=today.isoformat())
        if today >= state.next_weekly_reset:
            state.starting_weekly_equity = equity
            state.last_weekly_reset_date = week_start(today)
            state.next_weekly_reset = next_reset_boundary(today, "weekly")
            self._logger.info(
                "Weekly reset",
                starting_equity=equity,
                week_start=state.last_weekly_reset_date.isoformat(),
            )

    # ------------------------------------------------------------- evaluation
    def evaluate(self, snapshot: AccountSnapshot, now: datetime | None = None) -> Decision:
        """Check every limit against ``snapshot`` and decide on new positions.

        Performs calendar resets and the high-water-mark update first. A
        loss or drawdown breach disables trading; the position-count limit
        only refuses this request.
        """

        moment = now or snapshot.timestamp
        today = trading_date(moment, self._tz)
        equity = snapshot.equity
        state = self._state or self._start_session(equity, today)

        self._apply_resets(state, today, equity)
        state.last_equity = equity
        if equity > state.high_water_mark:
            state.high_water_mark = equity
            self._logger.info("New high water mark", high_water_mark=equity)

        limits = self.limits
        daily_pct = loss_pct(state.starting_daily_equity, equity)
        weekly_pct = loss_pct(state.starting_weekly_equity, equity)
        drawdown_pct = loss_pct(state.high_water_mark, equity)

        breaches: list[BreachKind] = []
        messages: dict[BreachKind, str] = {}
        warnings: list[str] = []

        if drawdown_pct >= limits.max_drawdown_pct:
            breaches.append(BreachKind.DRAWDOWN)
            messages[BreachKind.DRAWDOWN] = (
                f"Maximum drawdown breached: {drawdown_pct:.2f}% >= {limits.max_drawdown_pct}%"
            )
        elif drawdown_pct >= limits.drawdown_warning_pct:
            message = (
                f"Drawdown at {drawdown_pct:.2f}% "
                f"({limits.drawdown_warning_fraction:.0%} of {limits.max_drawdown_pct}% limit)"
            )
            warnings.append(message)
            self._logger.warning(message, drawdown_pct=drawdown_pct)

        if weekly_pct >= limits.max_weekly_loss_pct:
            breaches.append(BreachKind.WEEKLY_LOSS)
            messages[BreachKind.WEEKLY_LOSS] = (
                f"Weekly loss limit breached: {weekly_pct:.2f}% >= {limits.max_weekly_loss_pct}%"
            )
        if daily_pct >= limits.max_daily_loss_pct:
            breaches.append(BreachKind.DAILY_LOSS)
            messages[BreachKind.DAILY_LOSS] = (
                f"Daily loss limit breached: {daily_pct:.2f}% >= {limits.max_daily_loss_pct}%"
            )
        if state.open_position_count >= limits.max_concurrent_positions:
            breaches.append(BreachKind.POSITION_LIMIT)
            messages[BreachKind.POSITION_LIMIT] = (
                f"Position limit reached: {state.open_position_count}/"
                f"{limits.max_concurrent_positions}"
            )

        halting = [kind for kind in breaches if kind.halts_trading]
        if halting:
            reason = halting[0]
            self._halt(state, reason, messages[reason], equity, moment)
        elif not state.trading_enabled:
            reason = BreachKind.TRADING_DISABLED
            messages[reason] = "Trading disabled until explicitly re-enabled"
        elif breaches:
            reason = breaches[0]
        else:
            return Decision(allow=True, warnings=tuple(warnings))
        return Decision(
            allow=False,
            reason=reason,
            message=messages[reason],
            warnings=tuple(warnings),
            breaches=tuple(breaches),
        )

    def on_equity_update(self, snapshot: AccountSnapshot) -> Decision:
        """Re-evaluate limits after a fill or equity change."""

        return self.evaluate(snapshot, snapshot.timestamp)

    def _halt(
        self, state: RiskState, kind: BreachKind, message: str, equity: float, moment: datetime
    ) -> None:
        # One signal per halt, including a breach after a manual disable().
        if state.flatten_signalled:
            return
        state.trading_enabled = False
        state.flatten_signalled = True
        self._logger.critical(
            "Emergency stop: trading disabled",
            breach=kind.value,
            reason=message,
            equity=equity,
            high_water_mark=state.high_water_mark,
            starting_daily_equity=state.starting_daily_equity,
            starting_weekly_equity=state.starting_weekly_equity,
        )
        signal = FlattenSignal(reason=message, kind=kind, equity=equity, timestamp=moment)
        for listener in list(self._listeners):
            try:
                listener(signal)
            except Exception as exc:
                # Halt state is already committed; remaining listeners still run.
                self._logger.error(
                    "Flatten listener failed",
                    listener=repr(listener),
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )

    # -------------------------------------------------------------- queries
    def can_open_new_position(self) -> bool:
        """Read-only check of the enabled flag and the position count."""

        state = self._state
        if state is None:
            return False
        return (
            state.trading_enabled
            and state.open_position_count < self.limits.max_concurrent_positions
        )

    @property
    def trading_enabled(self) -> bool:
        return self._state is not None and self._state.trading_enabled

    def statistics(self) -> RiskStatistics:
        return RiskStatistics.from_state(self._require_state())

    # ----------------------------------------------------- lifecycle events
    def record_position_opened(self) -> None:
        self._require_state().open_position_count += 1

    def record_position_closed(self) -> None:
        state = self._require_state()
        if state.open_position_count == 0:
            raise ValueError("no open positions to close")
        state.open_position_count -= 1

    def sync_open_positions(self, count: int) -> None:
        """Overwrite the open-position count with the broker's view."""

        if count < 0:
            raise ValueError("open position count cannot be negative")
        self._require_state().open_position_count = count

    def add_flatten_listener(self, listener: FlattenListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------ operator actions
    def re_enable(self, reason: str = "manual review", *, rebase: bool = False) -> None:
        """Resume trading after an operator has reviewed a halt.

        With ``rebase`` the daily and weekly baselines and the high-water mark
        restart from the last observed equity; otherwise the next evaluation
        with unchanged equity halts trading again.
        """

        state = self._require_state()
        state.trading_enabled = True
        state.flatten_signalled = False
        if rebase:
            state.starting_daily_equity = state.last_equity
            state.starting_weekly_equity = state.last_equity
            state.high_water_mark = state.last_equity
        self._logger.warning(
            "Trading manually re-enabled", reason=reason, rebase=rebase, equity=state.last_equity
        )

    def disable(self, reason: str = "manual stop") -> None:
        state = self._require_state()
        state.trading_enabled = False
        self._logger.warning("Trading manually disabled", reason=reason, equity=state.last_equity)

    def reset_high_water_mark(self, equity: float | None = None) -> None:
        """Explicitly restart drawdown tracking from ``equity`` (last equity by default)."""

        state = self._require_state()
        value = state.last_equity if equity is None else float(equity)
        if value <= 0:
            raise ValueError("high water mark must be positive")
        state.high_water_mark = value
        self._logger.warning("High water mark reset", high_water_mark=value)


__all__ = ["BreachKind", "Decision", "FlattenListener", "FlattenSignal", "RiskGovernor"]

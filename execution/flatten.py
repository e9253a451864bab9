# SPDX-License-Identifier: MIT
"""Consumer of the governor's flatten signal that closes every open position."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from concurrent.futures import wait as futures_wait
from dataclasses import dataclass, field
from typing import Callable

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random,
    wait_random_exponential,
)

from core.utils.logging import get_logger
from domain.order import ExecutionResult
from interfaces.execution import OrderExecutor
from risk.governor import FlattenSignal


class CloseFailed(RuntimeError):
    """Raised when the executor refuses to close a position."""

    def __init__(self, position_id: str, result: ExecutionResult) -> None:
        super().__init__(
            f"closing position {position_id} failed: {result.error or result.status.value}"
        )
        self.position_id = position_id
        self.result = result

    @property
    def retryable(self) -> bool:
        return self.result.retryable


class RetryPolicy(BaseModel):
    """Retry configuration with exponential backoff and jitter."""

    attempts: PositiveInt = Field(4, description="Maximum close attempts per position.")
    initial_backoff: PositiveFloat = Field(
        1.0, description="Backoff multiplier in seconds; waits grow as powers of two."
    )
    max_backoff: PositiveFloat = Field(8.0, description="Upper bound of a single wait.")
    max_jitter: float = Field(
        0.1, ge=0.0, description="Random jitter added on top of the exponential backoff."
    )

    def build(
        self,
        *,
        logger: logging.Logger,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Retrying:
        wait = wait_random_exponential(multiplier=self.initial_backoff, max=self.max_backoff)
        if self.max_jitter > 0:
            wait = wait + wait_random(0, self.max_jitter)
        return Retrying(
            stop=stop_after_attempt(int(self.attempts)),
            wait=wait,
            retry=retry_if_exception(self._is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=sleep,
            reraise=True,
        )

    @staticmethod
    def _is_retryable(error: BaseException) -> bool:
        if isinstance(error, CloseFailed):
            return error.retryable
        return isinstance(error, (TimeoutError, ConnectionError))


@dataclass(slots=True)
class FlattenReport:
    """Positions closed and positions left open by one flatten pass."""

    reason: str
    closed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.failed


class FlattenHandler:
    """Flatten listener that closes all open positions through an executor.

    Register an instance with :meth:`risk.governor.RiskGovernor.add_flatten_listener`.
    Calling the handler only schedules a flatten pass on a background worker
    and returns its future, so the governor's evaluation never waits on the
    broker or on retry backoff. Call :meth:`wait` to collect the reports and
    :meth:`shutdown` when the strategy stops. :meth:`flatten` runs a pass
    synchronously on the calling thread.
    """

    def __init__(
        self,
        executor: OrderExecutor,
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        worker_factory: Callable[[], Executor] | None = None,
    ) -> None:
        self._executor = executor
        self._policy = RetryPolicy() if retry_policy is None else retry_policy
        self._sleep = sleep
        self._worker_factory = worker_factory or (
            lambda: ThreadPoolExecutor(max_workers=1, thread_name_prefix="riskguard-flatten")
        )
        self._worker: Executor | None = None
        self._pending: list[Future[FlattenReport]] = []
        self._lock = threading.Lock()
        self._logger = get_logger(__name__)
        self.last_report: FlattenReport | None = None

    def __call__(self, signal: FlattenSignal) -> Future[FlattenReport]:
        with self._lock:
            if self._worker is None:
                self._worker = self._worker_factory()
            future = self._worker.submit(self.flatten, signal.reason)
            self._pending.append(future)
        self._logger.info("Flatten scheduled", reason=signal.reason, breach=signal.kind.value)
        return future

    def __enter__(self) -> "FlattenHandler":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    @property
    def pending(self) -> int:
        """Number of scheduled flatten passes that have not finished yet."""

        with self._lock:
            return sum(1 for future in self._pending if not future.done())

    def wait(self, timeout: float | None = None) -> list[FlattenReport]:
        """Block until every scheduled pass finishes and return their reports.

        Raises :class:`TimeoutError` if passes are still running after
        ``timeout`` seconds; unfinished passes stay scheduled. Errors raised
        inside a pass propagate from here.
        """

        with self._lock:
            scheduled = list(self._pending)
        _, running = futures_wait(scheduled, timeout=timeout)
        if running:
            raise TimeoutError(f"{len(running)} flatten pass(es) still running")
        with self._lock:
            self._pending = [future for future in self._pending if future not in scheduled]
        return [future.result() for future in scheduled]

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            worker, self._worker = self._worker, None
        if worker is not None:
            worker.shutdown(wait=wait)

    def flatten(self, reason: str) -> FlattenReport:
        report = FlattenReport(reason=reason)
        positions = self._executor.open_positions()
        with self._logger.operation(
            "flatten_positions", reason=reason, positions=len(positions)
        ) as op:
            for position_id in positions:
                try:
                    self._close(position_id)
                except (CloseFailed, TimeoutError, ConnectionError) as exc:
                    report.failed[position_id] = str(exc)
                    self._logger.error(
                        "Failed to close position",
                        position_id=position_id,
                        error_type=type(exc).__name__,
                        error_message=str(exc),
                    )
                else:
                    report.closed.append(position_id)
            op["closed"] = len(report.closed)
            op["failed"] = len(report.failed)
        if report.failed:
            self._logger.critical(
                "Positions remain open after flatten",
                reason=reason,
                open_positions=sorted(report.failed),
            )
        self.last_report = report
        return report

    def _close(self, position_id: str) -> ExecutionResult:
        retrying = self._policy.build(logger=self._logger.logger, sleep=self._sleep)
        for attempt in retrying:
            with attempt:
                result = self._executor.close(position_id)
                if not result.is_successful:
                    raise CloseFailed(position_id, result)
                return result
        raise RuntimeError("Retrying loop exited unexpectedly")


__all__ = ["CloseFailed", "FlattenHandler", "FlattenReport", "RetryPolicy"]

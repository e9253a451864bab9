# SPDX-License-Identifier: MIT
"""Heuristic checks that flag untrustworthy backtest statistics.

Every finding is advisory: :class:`BacktestValidator` never raises on a bad
backtest, it collects all errors and warnings so a reviewer sees them at once.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from backtest.performance import BacktestSettings, BacktestSummary
from core.config.risk_settings import ValidationThresholds
from core.utils.logging import get_logger

_logger = get_logger(__name__)

_REPORT_RULE = "================================"


@dataclass(slots=True)
class ValidationReport:
    """Ordered findings of :meth:`BacktestValidator.validate`."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(f"[ERROR] {message}")

    def add_warning(self, message: str) -> None:
        self.warnings.append(f"[WARNING] {message}")

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def is_valid(self) -> bool:
        """``True`` iff no hard error was found; warnings never block validity."""

        return not self.errors

    def to_text(self) -> str:
        lines = ["=== BACKTEST VALIDATION REPORT ===", ""]
        if self.errors:
            lines.append("ERRORS:")
            lines.extend(f"  {error}" for error in self.errors)
            lines.append("")
        if self.warnings:
            lines.append("WARNINGS:")
            lines.extend(f"  {warning}" for warning in self.warnings)
            lines.append("")
        if not self.errors and not self.warnings:
            lines.extend(["✓ All validation checks passed!", ""])
        lines.append("VERDICT: PASSED" if self.is_valid else "VERDICT: FAILED")
        lines.append(_REPORT_RULE)
        return "\n".join(lines) + "\n"


@dataclass(slots=True)
class OverfitAnalysis:
    """In-sample versus out-of-sample comparison.

    ``probability`` is an additive score that can exceed 100; treat it as a
    relative ranking signal rather than a calibrated probability.
    """

    probability: float = 0.0
    findings: list[str] = field(default_factory=list)

    def add_finding(self, message: str, weight: float) -> None:
        self.findings.append(message)
        self.probability += weight

    @property
    def verdict(self) -> str:
        if self.probability >= 70:
            return "HIGHLY LIKELY OVERFIT - Do not use live"
        if self.probability >= 40:
            return "POSSIBLE OVERFIT - Proceed with extreme caution"
        if self.probability >= 20:
            return "ACCEPTABLE - Normal 10-30% degradation expected"
        return "ROBUST - Out-of-sample performance consistent"

    def to_text(self) -> str:
        lines = ["=== OVERFITTING ANALYSIS ===", ""]
        if self.findings:
            lines.append("Issues Detected:")
            lines.extend(f"  • {finding}" for finding in self.findings)
            lines.append("")
        lines.append(f"Overfit Probability: {self.probability:.0f}%")
        lines.append(f"Verdict: {self.verdict}")
        lines.append("============================")
        return "\n".join(lines) + "\n"


@dataclass(frozen=True, slots=True)
class PerformanceScenario:
    label: str
    degradation: float
    return_pct: float
    sharpe_ratio: float
    max_drawdown_pct: float


@dataclass(frozen=True, slots=True)
class LivePerformanceExpectation:
    """Illustrative live-trading ranges derived by fixed linear degradation.

    This is not a statistical forecast: return and Sharpe are scaled down and
    drawdown scaled up by a constant per scenario.
    """

    backtest_return_pct: float
    backtest_sharpe_ratio: float
    backtest_max_drawdown_pct: float
    conservative: PerformanceScenario
    moderate: PerformanceScenario
    optimistic: PerformanceScenario

    @property
    def scenarios(self) -> tuple[PerformanceScenario, ...]:
        return (self.conservative, self.moderate, self.optimistic)

    def to_text(self) -> str:
        lines = [
            "=== LIVE PERFORMANCE EXPECTATIONS ===",
            "",
            "Backtest Results:",
            f"  Return: {self.backtest_return_pct:.1f}%",
            f"  Sharpe: {self.backtest_sharpe_ratio:.2f}",
            f"  Max DD: {self.backtest_max_drawdown_pct:.1f}%",
            "",
        ]
        for scenario in self.scenarios:
            lines.extend(
                [
                    f"Expected Live Performance ({scenario.label} "
                    f"-{scenario.degradation:.0%}):",
                    f"  Return: {scenario.return_pct:.1f}%",
                    f"  Sharpe: {scenario.sharpe_ratio:.2f}",
                    f"  Max DD: {scenario.max_drawdown_pct:.1f}%",
                    "",
                ]
            )
        lines.append("======================================")
        return "\n".join(lines) + "\n"


def _decline_pct(baseline: float, value: float) -> float | None:
    if baseline <= 0:
        return None
    return (baseline - value) / baseline * 100.0


class BacktestValidator:
    """Apply the validation rule set to backtest summaries.

    Args:
        thresholds: Rule thresholds; defaults reproduce the standard rule set
            (30/100 trades, 85 % win rate, profit factor 1.0/1.5/5.0, ...).
    """

    DEGRADATION = {"Conservative": 0.30, "Moderate": 0.20, "Optimistic": 0.10}

    def __init__(self, thresholds: ValidationThresholds | None = None) -> None:
        self.thresholds = ValidationThresholds() if thresholds is None else thresholds

    def validate(
        self, summary: BacktestSummary, settings: BacktestSettings | None = None
    ) -> ValidationReport:
        """Evaluate every rule against ``summary``; no rule short-circuits another.

        ``settings`` falls back to ``summary.settings`` and then to a settings
        object with every flag unset.
        """

        limits = self.thresholds
        if settings is None:
            settings = summary.settings if summary.settings is not None else BacktestSettings()
        report = ValidationReport()

        trades = summary.total_trades
        if trades < limits.min_trades:
            report.add_error(
                f"Insufficient trades: {trades} (minimum {limits.min_trades} "
                "required for statistical significance)"
            )
        elif trades < limits.recommended_trades:
            report.add_warning(
                f"Trade count: {trades} ({limits.recommended_trades}+ recommended for robustness)"
            )

        if summary.win_rate > limits.max_win_rate:
            report.add_error(
                f"Win rate too high: {summary.win_rate * 100:.1f}% "
                "(likely overfit, expect 55-70% max)"
            )

        pf = summary.profit_factor
        if pf < limits.min_profit_factor:
            report.add_error(f"Negative profit factor: {pf:.2f} (strategy loses money)")
        elif pf > limits.max_profit_factor:
            report.add_error(f"Profit factor too high: {pf:.2f} (likely overfit, expect 1.5-2.5)")
        elif pf < limits.recommended_profit_factor:
            report.add_warning(
                f"Low profit factor: {pf:.2f} "
                f"(below recommended {limits.recommended_profit_factor}+)"
            )

        sharpe = summary.sharpe_ratio
        if sharpe < limits.min_sharpe:
            report.add_error(
                f"Negative Sharpe ratio: {sharpe:.2f} (strategy underperforms risk-free rate)"
            )
        elif sharpe < limits.recommended_sharpe:
            report.add_warning(
                f"Low Sharpe ratio: {sharpe:.2f} "
                f"(below {limits.recommended_sharpe}, poor risk-adjusted returns)"
            )
        elif sharpe > limits.suspicious_sharpe:
            report.add_warning(f"Very high Sharpe ratio: {sharpe:.2f} (may indicate overfitting)")

        drawdown = summary.max_drawdown_pct
        if drawdown > limits.max_drawdown_pct:
            report.add_error(
                f"Excessive drawdown: {drawdown:.1f}% "
                f"(above {limits.max_drawdown_pct:.0f}%, high risk of ruin)"
            )
        elif drawdown > limits.high_drawdown_pct:
            report.add_warning(
                f"High drawdown: {drawdown:.1f}% "
                f"(above {limits.high_drawdown_pct:.0f}%, requires strong risk tolerance)"
            )

        if summary.avg_win_loss_ratio < limits.min_win_loss_ratio:
            report.add_warning(
                f"Low win/loss ratio: {summary.avg_win_loss_ratio:.2f} "
                "(losses larger than wins, requires high win rate)"
            )

        if (
            summary.max_consecutive_losses == 0
            or summary.max_consecutive_wins > limits.max_consecutive_wins
        ):
            report.add_error("Suspiciously perfect results - likely overfit or look-ahead bias")

        if summary.max_consecutive_losses > limits.high_consecutive_losses:
            report.add_warning(
                f"High consecutive losses: {summary.max_consecutive_losses} "
                "(psychological challenge)"
            )

        if drawdown > 0:
            ratio = abs(summary.return_pct / drawdown)
        else:
            ratio = math.inf
        if ratio < limits.min_return_drawdown_ratio:
            report.add_warning(
                f"Return/Drawdown ratio: {ratio:.2f} (returns don't justify risk)"
            )

        if not settings.included_commission or not settings.included_spread:
            report.add_error("Backtest must include commissions and spread for realistic results")

        if not settings.used_tick_data:
            report.add_warning("Backtest should use tick data for accuracy (not 1-minute bars)")

        if summary.duration_days < limits.min_duration_days:
            report.add_warning(
                f"Short backtest period: {summary.duration_days} days "
                "(minimum 6-12 months recommended)"
            )

        _logger.info(
            "Backtest validation completed",
            total_trades=trades,
            errors=len(report.errors),
            warnings=len(report.warnings),
            is_valid=report.is_valid,
        )
        return report

    def compare_samples(
        self, in_sample: BacktestSummary, out_of_sample: BacktestSummary
    ) -> OverfitAnalysis:
        """Score the degradation from ``in_sample`` to ``out_of_sample``.

        Ratio-based declines are only measured against a positive in-sample
        baseline.
        """

        analysis = OverfitAnalysis()

        sharpe_decline = _decline_pct(in_sample.sharpe_ratio, out_of_sample.sharpe_ratio)
        if sharpe_decline is not None:
            if sharpe_decline > 50:
                analysis.add_finding(
                    f"Sharpe ratio declined {sharpe_decline:.1f}% "
                    "(severe degradation, likely overfit)",
                    30,
                )
            elif sharpe_decline > 30:
                analysis.add_finding(
                    f"Sharpe ratio declined {sharpe_decline:.1f}% (moderate degradation)", 20
                )

        win_rate_shift = abs(in_sample.win_rate - out_of_sample.win_rate) * 100.0
        if win_rate_shift > 15:
            analysis.add_finding(
                f"Win rate changed by {win_rate_shift:.1f}% (significant inconsistency)", 20
            )

        pf_decline = _decline_pct(in_sample.profit_factor, out_of_sample.profit_factor)
        if pf_decline is not None and pf_decline > 40:
            analysis.add_finding(
                f"Profit factor declined {pf_decline:.1f}% (severe degradation)", 25
            )

        if out_of_sample.max_drawdown_pct > in_sample.max_drawdown_pct * 1.5:
            analysis.add_finding(
                f"Out-of-sample drawdown {out_of_sample.max_drawdown_pct:.1f}% much worse "
                f"than in-sample {in_sample.max_drawdown_pct:.1f}%",
                15,
            )

        return_decline = _decline_pct(in_sample.return_pct, out_of_sample.return_pct)
        if out_of_sample.return_pct < 0 < in_sample.return_pct:
            analysis.add_finding(
                "Out-of-sample shows losses while in-sample was profitable (major red flag)", 40
            )
        elif return_decline is not None and return_decline > 50:
            analysis.add_finding(
                f"Return declined {return_decline:.1f}% (severe performance drop)", 25
            )

        _logger.info(
            "Overfit analysis completed",
            probability=analysis.probability,
            findings=len(analysis.findings),
            verdict=analysis.verdict,
        )
        return analysis

    def project_live_performance(self, summary: BacktestSummary) -> LivePerformanceExpectation:
        """Three illustrative live scenarios; not a forecast."""

        scenarios = [
            PerformanceScenario(
                label=label,
                degradation=degradation,
                return_pct=summary.return_pct * (1 - degradation),
                sharpe_ratio=summary.sharpe_ratio * (1 - degradation),
                max_drawdown_pct=summary.max_drawdown_pct * (1 + degradation),
            )
            for label, degradation in self.DEGRADATION.items()
        ]
        return LivePerformanceExpectation(
            backtest_return_pct=summary.return_pct,
            backtest_sharpe_ratio=summary.sharpe_ratio,
            backtest_max_drawdown_pct=summary.max_drawdown_pct,
            conservative=scenarios[0],
            moderate=scenarios[1],
            optimistic=scenarios[2],
        )


__all__ = [
    "BacktestValidator",
    "LivePerformanceExpectation",
    "OverfitAnalysis",
    "PerformanceScenario",
    "ValidationReport",
]

"""Offline analysis of completed backtests: trade log, summaries, validation, Monte Carlo."""

from .monte_carlo import (
    MonteCarloEngine,
    MonteCarloSummary,
    RiskOfRuinAnalysis,
    SimulationResult,
    percentile,
    risk_of_ruin,
    simulate,
)
from .performance import BacktestSettings, BacktestSummary, export_summary, summarize_trades
from .trade_log import CSV_COLUMNS, TradeLog, export_monte_carlo_csv
from .validation import (
    BacktestValidator,
    LivePerformanceExpectation,
    OverfitAnalysis,
    PerformanceScenario,
    ValidationReport,
)

__all__ = [
    "BacktestSettings",
    "BacktestSummary",
    "BacktestValidator",
    "CSV_COLUMNS",
    "LivePerformanceExpectation",
    "MonteCarloEngine",
    "MonteCarloSummary",
    "OverfitAnalysis",
    "PerformanceScenario",
    "RiskOfRuinAnalysis",
    "SimulationResult",
    "TradeLog",
    "ValidationReport",
    "export_monte_carlo_csv",
    "export_summary",
    "percentile",
    "risk_of_ruin",
    "simulate",
    "summarize_trades",
]

# SPDX-License-Identifier: MIT
"""RiskGuard CLI exposing validate/compare/project/summarize/montecarlo/ruin/size."""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterator

import click

from backtest.monte_carlo import MonteCarloEngine, risk_of_ruin
from backtest.performance import BacktestSettings, BacktestSummary, export_summary
from backtest.trade_log import TradeLog, export_monte_carlo_csv
from backtest.validation import BacktestValidator
from core.config import ConfigError as SettingsConfigError
from core.config import RiskGuardSettings, load_settings, load_yaml_mapping, parse_cli_overrides
from core.errors import PreconditionError, SimulationCancelled
from core.utils.logging import configure_logging
from domain.instrument import InstrumentConstraints
from risk.sizing import PositionSizer, describe_size


class CLIError(click.ClickException):
    """Base class for typed CLI failures with deterministic exit codes."""

    exit_code = 1


class ConfigError(CLIError):
    exit_code = 2


class InputError(CLIError):
    exit_code = 3


class ComputeError(CLIError):
    exit_code = 4


@contextmanager
def step_logger(command: str, name: str) -> Iterator[None]:
    """Emit start/stop step lines on stderr around ``name``."""

    click.echo(f"[{command}] ▶ {name}", err=True)
    start = time.perf_counter()
    try:
        yield
    except Exception:
        click.echo(f"[{command}] ✖ {name} ({time.perf_counter() - start:.2f}s)", err=True)
        raise
    click.echo(f"[{command}] ✓ {name} ({time.perf_counter() - start:.2f}s)", err=True)


@contextmanager
def _computing() -> Iterator[None]:
    try:
        yield
    except (PreconditionError, SimulationCancelled) as exc:
        raise ComputeError(str(exc)) from exc


def _settings(ctx: click.Context) -> RiskGuardSettings:
    return ctx.obj["settings"]


def _emit(payload: dict[str, Any], text: str, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))
    else:
        click.echo(text, nl=False)


def _load_summary(path: Path) -> BacktestSummary:
    data = load_yaml_mapping(path, error_cls=InputError)
    try:
        return BacktestSummary.from_mapping(data)
    except (TypeError, ValueError) as exc:
        raise InputError(f"invalid backtest summary in {path}: {exc}") from exc


def _load_trades(path: Path, starting_balance: float | None) -> TradeLog:
    try:
        return TradeLog.from_csv(path, starting_balance=starting_balance)
    except (OSError, TypeError, ValueError) as exc:
        raise InputError(f"cannot read trade log {path}: {exc}") from exc


_TRADES_ARGUMENT = click.argument(
    "trades_path",
    metavar="TRADES_CSV",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
_SUMMARY_TYPE = click.Path(exists=True, dir_okay=False, path_type=Path)
_JSON_OPTION = click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of text.")


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the RiskGuard YAML configuration.",
)
@click.option(
    "--set",
    "overrides",
    multiple=True,
    metavar="KEY=VALUE",
    help="Override a configuration value, e.g. monte_carlo.n_simulations=5000.",
)
@click.option("--log-level", default=None, help="Override the configured log level.")
@click.pass_context
def cli(
    ctx: click.Context, config_path: Path | None, overrides: tuple[str, ...], log_level: str | None
) -> None:
    """Risk controls and backtest validation tooling."""

    try:
        settings = load_settings(config_path, parse_cli_overrides(overrides))
    except SettingsConfigError as exc:
        raise ConfigError(str(exc)) from exc
    configure_logging(log_level or settings.log_level, use_json=settings.log_json)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.argument("summary_path", metavar="SUMMARY", type=_SUMMARY_TYPE)
@click.option("--strict", is_flag=True, help="Exit with status 1 when the backtest fails.")
@_JSON_OPTION
@click.pass_context
def validate(ctx: click.Context, summary_path: Path, strict: bool, as_json: bool) -> None:
    """Run the validation rule set against a backtest summary."""

    summary = _load_summary(summary_path)
    report = BacktestValidator(_settings(ctx).validation).validate(summary)
    payload = {"is_valid": report.is_valid, "errors": report.errors, "warnings": report.warnings}
    _emit(payload, report.to_text(), as_json)
    if strict and not report.is_valid:
        ctx.exit(1)


@cli.command()
@click.argument("in_sample_path", metavar="IN_SAMPLE", type=_SUMMARY_TYPE)
@click.argument("out_of_sample_path", metavar="OUT_OF_SAMPLE", type=_SUMMARY_TYPE)
@_JSON_OPTION
@click.pass_context
def compare(
    ctx: click.Context, in_sample_path: Path, out_of_sample_path: Path, as_json: bool
) -> None:
    """Score in-sample versus out-of-sample degradation."""

    validator = BacktestValidator(_settings(ctx).validation)
    analysis = validator.compare_samples(
        _load_summary(in_sample_path), _load_summary(out_of_sample_path)
    )
    payload = {
        "probability": analysis.probability,
        "findings": analysis.findings,
        "verdict": analysis.verdict,
    }
    _emit(payload, analysis.to_text(), as_json)


@cli.command()
@click.argument("summary_path", metavar="SUMMARY", type=_SUMMARY_TYPE)
@_JSON_OPTION
@click.pass_context
def project(ctx: click.Context, summary_path: Path, as_json: bool) -> None:
    """Print illustrative live-performance scenarios."""

    validator = BacktestValidator(_settings(ctx).validation)
    expectation = validator.project_live_performance(_load_summary(summary_path))
    _emit(asdict(expectation), expectation.to_text(), as_json)


@cli.command()
@_TRADES_ARGUMENT
@click.option("--starting-balance", type=click.FloatRange(min=0, min_open=True), required=True)
@click.option("--tick-data/--no-tick-data", default=False, help="Backtest used tick data.")
@click.option("--commission/--no-commission", default=False, help="Commissions were included.")
@click.option("--spread/--no-spread", default=False, help="Spread was included.")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the summary as JSON to this path.",
)
@click.option("--validate", "run_validation", is_flag=True, help="Validate the summary as well.")
@click.pass_context
def summarize(
    ctx: click.Context,
    trades_path: Path,
    starting_balance: float,
    tick_data: bool,
    commission: bool,
    spread: bool,
    output: Path | None,
    run_validation: bool,
) -> None:
    """Compute backtest summary statistics from a trade-log CSV."""

    command = "summarize"
    log = _load_trades(trades_path, starting_balance)
    settings = BacktestSettings(
        used_tick_data=tick_data, included_commission=commission, included_spread=spread
    )
    with step_logger(command, "compute summary"), _computing():
        summary = log.summarize(starting_balance, settings)
    if output is not None:
        export_summary(summary, output)
        click.echo(f"[{command}] • wrote {output}", err=True)
    click.echo(json.dumps(summary.as_dict(), indent=2, sort_keys=True))
    if run_validation:
        report = BacktestValidator(_settings(ctx).validation).validate(summary)
        click.echo(report.to_text(), nl=False)


@cli.command()
@_TRADES_ARGUMENT
@click.option("--starting-balance", type=click.FloatRange(min=0, min_open=True), default=None)
@click.option("--simulations", type=click.IntRange(min=1), default=None)
@click.option("--trades", "trades_per_simulation", type=click.IntRange(min=1), default=None)
@click.option("--seed", type=int, default=None)
@click.option("--workers", type=click.IntRange(min=1), default=None)
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None)
@click.option(
    "--export-csv",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write the TradeNumber,ProfitLoss,Return%,Win export.",
)
@_JSON_OPTION
@click.pass_context
def montecarlo(
    ctx: click.Context,
    trades_path: Path,
    starting_balance: float | None,
    simulations: int | None,
    trades_per_simulation: int | None,
    seed: int | None,
    workers: int | None,
    timeout: float | None,
    export_csv: Path | None,
    as_json: bool,
) -> None:
    """Bootstrap the trade returns and summarise outcome distributions."""

    command = "montecarlo"
    log = _load_trades(trades_path, starting_balance)
    updates = {
        "n_simulations": simulations,
        "trades_per_simulation": trades_per_simulation,
        "random_seed": seed,
        "max_workers": workers,
        "timeout_seconds": timeout,
    }
    config = _settings(ctx).monte_carlo.model_copy(
        update={key: value for key, value in updates.items() if value is not None}
    )
    if export_csv is not None:
        export_csv.parent.mkdir(parents=True, exist_ok=True)
        export_csv.write_text(export_monte_carlo_csv(log), encoding="utf-8")
        click.echo(f"[{command}] • wrote {export_csv}", err=True)
    with step_logger(command, "simulate"), _computing():
        result = MonteCarloEngine(config).run(log.returns_pct())
    summary = result.summary()
    payload = {**summary.as_dict(), "seed": result.seed}
    _emit(payload, summary.to_text(), as_json)


@cli.command()
@click.option("--win-rate", type=float, default=None, help="Win rate in (0, 1).")
@click.option("--avg-win", type=float, default=None)
@click.option("--avg-loss", type=float, default=None)
@click.option("--risk-pct", type=float, required=True, help="Risk per trade in percent.")
@click.option(
    "--trades",
    "trades_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Derive win rate and averages from a trade-log CSV.",
)
@click.option("--starting-balance", type=click.FloatRange(min=0, min_open=True), default=None)
@_JSON_OPTION
@click.pass_context
def ruin(
    ctx: click.Context,
    win_rate: float | None,
    avg_win: float | None,
    avg_loss: float | None,
    risk_pct: float,
    trades_path: Path | None,
    starting_balance: float | None,
    as_json: bool,
) -> None:
    """Estimate risk of ruin by capital multiple (fixed-bet approximation)."""

    with _computing():
        if trades_path is not None:
            log = _load_trades(trades_path, starting_balance)
            engine = MonteCarloEngine(_settings(ctx).monte_carlo)
            analysis = engine.risk_of_ruin_from_trades(log, risk_pct)
        else:
            if win_rate is None or avg_win is None or avg_loss is None:
                raise click.UsageError(
                    "--win-rate, --avg-win and --avg-loss are required without --trades"
                )
            analysis = risk_of_ruin(win_rate, avg_win, avg_loss, risk_pct)
    payload = {
        "win_rate": analysis.win_rate,
        "win_loss_ratio": analysis.win_loss_ratio,
        "adjusted_win_probability": analysis.adjusted_win_probability,
        "risk_per_trade_pct": analysis.risk_per_trade_pct,
        "by_capital_multiple": {
            str(key): value for key, value in analysis.by_capital_multiple.items()
        },
    }
    _emit(payload, analysis.to_text(), as_json)


@cli.command()
@click.option("--balance", type=float, required=True)
@click.option(
    "--method",
    type=click.Choice(["fixed", "volatility", "kelly"]),
    default="fixed",
    show_default=True,
)
@click.option("--risk-pct", type=float, default=None, help="Defaults to sizing.risk_pct.")
@click.option("--stop-pips", type=float, default=None)
@click.option("--atr", type=float, default=None)
@click.option("--atr-multiplier", type=float, default=None)
@click.option("--win-rate", type=float, default=None)
@click.option("--win-loss-ratio", type=float, default=None)
@click.option("--min-size", type=float, default=1000.0, show_default=True)
@click.option("--max-size", type=float, default=10_000_000.0, show_default=True)
@click.option("--step", "size_step", type=float, default=1000.0, show_default=True)
@click.option("--pip-value", type=float, default=0.0001, show_default=True)
@click.option("--pip-size", type=float, default=0.0001, show_default=True)
@click.option("--price", type=float, default=None, help="Entry price for the equity check.")
@_JSON_OPTION
@click.pass_context
def size(
    ctx: click.Context,
    balance: float,
    method: str,
    risk_pct: float | None,
    stop_pips: float | None,
    atr: float | None,
    atr_multiplier: float | None,
    win_rate: float | None,
    win_loss_ratio: float | None,
    min_size: float,
    max_size: float,
    size_step: float,
    pip_value: float,
    pip_size: float,
    price: float | None,
    as_json: bool,
) -> None:
    """Size a position with the fixed-risk, volatility or fractional-Kelly method."""

    try:
        constraints = InstrumentConstraints(
            min_size=min_size,
            max_size=max_size,
            size_step=size_step,
            pip_value=pip_value,
            pip_size=pip_size,
        )
    except ValueError as exc:
        raise InputError(str(exc)) from exc
    sizer = PositionSizer(constraints, _settings(ctx).sizing)

    with _computing():
        if method == "volatility":
            if atr is None:
                raise click.UsageError("--atr is required for the volatility method")
            units = sizer.by_volatility(balance, atr, atr_multiplier, risk_pct)
        else:
            if stop_pips is None:
                raise click.UsageError(f"--stop-pips is required for the {method} method")
            if method == "kelly":
                if win_rate is None or win_loss_ratio is None:
                    raise click.UsageError(
                        "--win-rate and --win-loss-ratio are required for kelly"
                    )
                units = sizer.by_kelly(balance, win_rate, win_loss_ratio, stop_pips)
            else:
                units = sizer.by_fixed_risk(balance, stop_pips, risk_pct)

    payload: dict[str, Any] = {"method": method, "size": units}
    lines = [f"Size: {units:g} units ({method})"]
    if price is not None:
        check = sizer.validate(units, price=price, equity=balance)
        payload.update(ok=check.ok, errors=check.errors, warnings=check.warnings)
        lines = [describe_size(units, price, balance, constraints.lot_size)]
        lines.extend(f"[WARNING] {warning}" for warning in check.warnings)
        lines.extend(f"[ERROR] {error}" for error in check.errors)
    _emit(payload, "\n".join(lines) + "\n", as_json)


def main() -> None:  # pragma: no cover - console entry point
    cli(prog_name="riskguard")


if __name__ == "__main__":  # pragma: no cover
    main()

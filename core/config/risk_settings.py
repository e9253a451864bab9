# SPDX-License-Identifier: MIT
"""Validated configuration for risk limits, sizing, validation and simulation."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError
from pydantic_settings.sources import PydanticBaseSettingsSource

DEFAULT_CONFIG_PATH = Path("configs/riskguard.yaml")


class ConfigError(ValueError):
    """Raised when a configuration value is invalid."""


class RiskLimitsConfig(BaseModel):
    """Session loss and exposure limits enforced by the risk governor.

    By convention ``max_drawdown_pct >= max_weekly_loss_pct >=
    max_daily_loss_pct``; the ordering is reported, not enforced.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_daily_loss_pct: PositiveFloat = 2.0
    max_weekly_loss_pct: PositiveFloat = 5.0
    max_drawdown_pct: PositiveFloat = 20.0
    max_concurrent_positions: PositiveInt = 5
    drawdown_warning_fraction: float = Field(default=0.5, gt=0.0, lt=1.0)
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone '{value}'") from exc
        return value

    def to_limits(self) -> "RiskLimits":
        from risk.limits import RiskLimits

        return RiskLimits(
            max_daily_loss_pct=self.max_daily_loss_pct,
            max_weekly_loss_pct=self.max_weekly_loss_pct,
            max_drawdown_pct=self.max_drawdown_pct,
            max_concurrent_positions=self.max_concurrent_positions,
            drawdown_warning_fraction=self.drawdown_warning_fraction,
        )


class SizingConfig(BaseModel):
    """Defaults applied by :class:`risk.sizing.PositionSizer`."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    risk_pct: PositiveFloat = 1.0
    atr_multiplier: PositiveFloat = 2.0
    kelly_fraction: float = Field(default=0.25, gt=0.0, le=1.0)
    kelly_min_pct: PositiveFloat = 0.5
    kelly_max_pct: PositiveFloat = 10.0
    max_equity_fraction_pct: PositiveFloat = 5.0

    @model_validator(mode="after")
    def _validate_kelly_bounds(self) -> "SizingConfig":
        if self.kelly_min_pct > self.kelly_max_pct:
            raise ValueError("kelly_min_pct must not exceed kelly_max_pct")
        return self


class MonteCarloConfig(BaseModel):
    """Parameters of a bootstrap Monte Carlo run.

    ``trades_per_simulation`` defaults to the length of the observed return
    series. ``random_seed`` left unset draws fresh OS entropy; tests must pin
    it.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    n_simulations: PositiveInt = 1000
    trades_per_simulation: PositiveInt | None = None
    random_seed: int | None = None
    batch_size: PositiveInt = 250
    max_workers: PositiveInt = 1
    timeout_seconds: PositiveFloat | None = None
    min_samples: int = Field(default=2, ge=2)
    recommended_samples: PositiveInt = 20
    starting_equity: PositiveFloat = 100.0


class ValidationThresholds(BaseModel):
    """Heuristic limits used by :class:`backtest.validation.BacktestValidator`."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    min_trades: PositiveInt = 30
    recommended_trades: PositiveInt = 100
    max_win_rate: float = Field(default=0.85, gt=0.0, le=1.0)
    min_profit_factor: float = 1.0
    recommended_profit_factor: float = 1.5
    max_profit_factor: float = 5.0
    min_sharpe: float = 0.0
    recommended_sharpe: float = 1.0
    suspicious_sharpe: float = 3.0
    max_drawdown_pct: float = 50.0
    high_drawdown_pct: float = 30.0
    min_win_loss_ratio: float = 0.8
    max_consecutive_wins: PositiveInt = 20
    high_consecutive_losses: PositiveInt = 10
    min_return_drawdown_ratio: float = 1.0
    min_duration_days: int = 180

    @model_validator(mode="after")
    def _validate_ordering(self) -> "ValidationThresholds":
        if self.min_trades > self.recommended_trades:
            raise ValueError("min_trades must not exceed recommended_trades")
        if not self.min_profit_factor <= self.recommended_profit_factor <= self.max_profit_factor:
            raise ValueError("profit factor thresholds must be increasing")
        if self.high_drawdown_pct > self.max_drawdown_pct:
            raise ValueError("high_drawdown_pct must not exceed max_drawdown_pct")
        return self


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Lowest-priority settings source backed by a YAML document."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        init_source: PydanticBaseSettingsSource | None = None,
        env_source: PydanticBaseSettingsSource | None = None,
    ) -> None:
        super().__init__(settings_cls)
        self._init_source = init_source
        self._env_source = env_source

    def __call__(self) -> dict[str, Any]:
        config_path = self._resolve_path()
        if config_path is None or not config_path.exists():
            return {}
        payload = load_yaml_mapping(config_path, error_cls=SettingsError)
        payload.pop("config_file", None)
        return payload

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def _resolve_path(self) -> Path | None:
        for source in (self._init_source, self._env_source):
            if source is None:
                continue
            candidate = source().get("config_file") or source().get("config")
            if candidate:
                return Path(candidate).expanduser()
        field = self.settings_cls.model_fields.get("config_file")
        default = getattr(field, "default", None) if field else None
        return Path(default).expanduser() if default else None


class RiskGuardSettings(BaseSettings):
    """Application settings: init kwargs > environment > ``.env`` > YAML."""

    model_config = SettingsConfigDict(
        env_prefix="RISKGUARD_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf8",
        extra="ignore",
    )

    config_file: Path | None = Field(
        default=DEFAULT_CONFIG_PATH,
        validation_alias=AliasChoices("config_file", "config"),
    )
    log_level: str = "INFO"
    log_json: bool = True
    limits: RiskLimitsConfig = Field(default_factory=RiskLimitsConfig)
    sizing: SizingConfig = Field(default_factory=SizingConfig)
    monte_carlo: MonteCarloConfig = Field(default_factory=MonteCarloConfig)
    validation: ValidationThresholds = Field(default_factory=ValidationThresholds)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level '{value}'")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        yaml_source = YamlSettingsSource(settings_cls, init_settings, env_settings)
        return (init_settings, env_settings, dotenv_settings, yaml_source, file_secret_settings)


def load_yaml_mapping(
    path: str | Path, *, error_cls: type[Exception] = ConfigError
) -> dict[str, Any]:
    """Read ``path`` and return its top-level mapping."""

    text = Path(path).read_text(encoding="utf8")
    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise error_cls(f"failed to parse YAML configuration at {path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise error_cls(f"configuration file {path} must define a mapping")
    return dict(payload)


def _deep_merge(base: Mapping[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_settings(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RiskGuardSettings:
    """Build :class:`RiskGuardSettings` from ``path`` plus dotted overrides.

    Overrides are merged section by section on top of the YAML payload so a
    single ``limits.max_daily_loss_pct=1.5`` keeps the other limit values.
    """

    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if path is not None and not config_path.exists():
        raise ConfigError(f"configuration file {config_path} does not exist")
    file_payload = load_yaml_mapping(config_path) if config_path.exists() else {}

    init_payload: dict[str, Any] = {}
    for key, value in (overrides or {}).items():
        base = file_payload.get(key)
        if isinstance(base, Mapping) and isinstance(value, Mapping):
            init_payload[key] = _deep_merge(base, value)
        else:
            init_payload[key] = value
    try:
        return RiskGuardSettings(config_file=config_path, **init_payload)
    except (ValidationError, SettingsError) as exc:
        raise ConfigError(str(exc)) from exc


def parse_cli_overrides(pairs: Sequence[str] | None) -> dict[str, Any]:
    """Convert ``key.path=value`` pairs into nested dictionaries."""

    overrides: dict[str, Any] = {}
    for raw in pairs or ():
        if "=" not in raw:
            raise ConfigError(f"Invalid override '{raw}', expected format key=value")
        key, value = raw.split("=", 1)
        parts = [segment.strip() for segment in key.split(".") if segment.strip()]
        if not parts:
            raise ConfigError("Override keys cannot be empty")
        target = overrides
        for segment in parts[:-1]:
            target = target.setdefault(segment, {})
            if not isinstance(target, dict):
                raise ConfigError(f"Override path '{key}' collides with a scalar value")
        try:
            target[parts[-1]] = yaml.safe_load(value)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Unable to parse override '{raw}': {exc}") from exc
    return overrides


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "MonteCarloConfig",
    "RiskGuardSettings",
    "RiskLimitsConfig",
    "SizingConfig",
    "ValidationThresholds",
    "YamlSettingsSource",
    "load_settings",
    "load_yaml_mapping",
    "parse_cli_overrides",
]

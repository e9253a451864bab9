"""Configuration models and loaders for the risk components."""

from .risk_settings import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    MonteCarloConfig,
    RiskGuardSettings,
    RiskLimitsConfig,
    SizingConfig,
    ValidationThresholds,
    YamlSettingsSource,
    load_settings,
    load_yaml_mapping,
    parse_cli_overrides,
)

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

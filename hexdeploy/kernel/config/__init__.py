"""Configuration models and loading."""

from hexdeploy.kernel.config.loader import ConfigLoader, load_config
from hexdeploy.kernel.config.models import (
    ApplicationConfig,
    EnvironmentSettings,
    HexDeployConfig,
    LoggingConfig,
    StrategyPolicy,
    default_environments,
)

__all__ = [
    "ApplicationConfig",
    "ConfigLoader",
    "EnvironmentSettings",
    "HexDeployConfig",
    "LoggingConfig",
    "StrategyPolicy",
    "default_environments",
    "load_config",
]

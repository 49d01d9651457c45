"""Configuration loader for hexdeploy.

Supports two config sources:

1. **kind: Config YAML** - canonical format, loaded via explicit path or the
   ``HEXDEPLOY_CONFIG_PATH`` env var.
2. **pyproject.toml [tool.hexdeploy]** - auto-discovery fallback.

When neither is found the built-in defaults are used.

Example ``deploy.yaml``::

    kind: Config
    spec:
      application:
        name: checkout
        image_repository: registry.example.com/checkout
      environments:
        prod:
          namespace: checkout-prod
          replicas: 6
          requires_approval: true
      strategy:
        canary_traffic_percent: 10
      adapters:
        cluster: my_company.deploy.KubernetesCluster
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from hexdeploy.kernel.config.models import (
    ApplicationConfig,
    EnvironmentSettings,
    HexDeployConfig,
    LoggingConfig,
    StrategyPolicy,
    default_environments,
)
from hexdeploy.kernel.domain.environment import Environment
from hexdeploy.kernel.exceptions import ConfigurationError
from hexdeploy.kernel.logging import get_logger

_TRUTHY_VALUES = frozenset({"true", "1", "yes", "on", "enabled"})
_FALSY_VALUES = frozenset({"false", "0", "no", "off", "disabled"})

CONFIG_PATH_ENV_VAR = "HEXDEPLOY_CONFIG_PATH"
STATE_DIR_ENV_VAR = "HEXDEPLOY_STATE_DIR"

logger = get_logger(__name__)


def _parse_bool_env(value: str) -> bool:
    """Parse a boolean from an environment variable value.

    Raises
    ------
    ValueError
        If value is not a recognized boolean string
    """
    normalized = value.lower().strip()
    if normalized in _TRUTHY_VALUES:
        return True
    if normalized in _FALSY_VALUES:
        return False
    expected = _TRUTHY_VALUES | _FALSY_VALUES
    raise ValueError(f"Invalid boolean value: {value!r}. Expected one of: {expected}")


class ConfigLoader:
    """Loads and processes hexdeploy configuration files."""

    ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

    def load(self, path: str | Path | None = None) -> HexDeployConfig:
        """Load configuration from YAML, pyproject.toml, or defaults.

        Parameters
        ----------
        path : str | Path | None
            Explicit config path. If None, the discovery order is used.

        Raises
        ------
        ConfigurationError
            If an explicit path does not exist or a file is malformed
        """
        config_path = self._find_config_file(path)
        if config_path is None:
            logger.debug("No configuration file found, using defaults")
            return self._parse_config({})

        logger.info("Loading configuration from {path}", path=config_path)
        if config_path.suffix in (".yaml", ".yml"):
            return self._load_yaml_config(config_path)
        return self._load_toml_config(config_path)

    def _load_yaml_config(self, config_path: Path) -> HexDeployConfig:
        with config_path.open("r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(str(config_path), f"invalid YAML: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                str(config_path), f"expected a mapping, got {type(data).__name__}"
            )

        kind = data.get("kind")
        if kind != "Config":
            raise ConfigurationError(
                str(config_path), f"must use 'kind: Config' manifest format, got 'kind: {kind}'"
            )

        spec = data.get("spec", {})
        if not isinstance(spec, dict):
            raise ConfigurationError(str(config_path), "'spec' must be a mapping")

        return self._parse_config(self._substitute_env_vars(spec))

    def _load_toml_config(self, config_path: Path) -> HexDeployConfig:
        with config_path.open("rb") as f:
            data = tomllib.load(f)

        section = data.get("tool", {}).get("hexdeploy")
        if section is None:
            if config_path.name == "pyproject.toml":
                logger.warning("No [tool.hexdeploy] section in pyproject.toml, using defaults")
                section = {}
            else:
                section = data

        return self._parse_config(self._substitute_env_vars(section))

    def _find_config_file(self, path: str | Path | None) -> Path | None:
        """Find the configuration file.

        Discovery order:
        1. Explicit path argument
        2. ``HEXDEPLOY_CONFIG_PATH`` env var
        3. ``pyproject.toml`` with ``[tool.hexdeploy]`` in CWD or a parent
        """
        if path:
            config_path = Path(path)
            if not config_path.exists():
                raise ConfigurationError(str(config_path), "configuration file not found")
            return config_path

        if env_path := os.getenv(CONFIG_PATH_ENV_VAR):
            config_path = Path(env_path)
            if config_path.exists():
                logger.debug("Using config from {}: {}", CONFIG_PATH_ENV_VAR, config_path)
                return config_path
            logger.warning("{} set but file not found: {}", CONFIG_PATH_ENV_VAR, config_path)

        current = Path.cwd()
        while True:
            pyproject = current / "pyproject.toml"
            if pyproject.exists():
                with pyproject.open("rb") as f:
                    data = tomllib.load(f)
                if "hexdeploy" in data.get("tool", {}):
                    return pyproject
            if current == current.parent:
                return None
            current = current.parent

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively replace ``${VAR}`` with environment values (unknown vars are kept)."""
        if isinstance(data, str):

            def replacer(match: re.Match[str]) -> str:
                value = os.environ.get(match.group(1))
                if value is None:
                    logger.debug(
                        "Environment variable ${{{var_name}}} not found, keeping placeholder",
                        var_name=match.group(1),
                    )
                    return match.group(0)
                return value

            return self.ENV_VAR_PATTERN.sub(replacer, data)

        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}

        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]

        return data

    def _parse_config(self, data: dict[str, Any]) -> HexDeployConfig:
        application = self._parse_application(data.get("application", {}))
        config = HexDeployConfig(
            application=application,
            environments=self._parse_environments(data.get("environments", {}), application),
            strategy=_build("strategy", StrategyPolicy, data.get("strategy", {})),
            logging=self._parse_logging_config(data.get("logging", {})),
        )

        policy = data.get("concurrency_policy", config.concurrency_policy)
        if policy not in ("reject", "queue"):
            raise ConfigurationError(
                "concurrency_policy", f"must be 'reject' or 'queue', got {policy!r}"
            )
        config.concurrency_policy = policy

        if "approval_max_wait_seconds" in data:
            config.approval_max_wait_seconds = float(data["approval_max_wait_seconds"])

        adapters = data.get("adapters", {})
        if not isinstance(adapters, dict):
            raise ConfigurationError("adapters", "must be a mapping of port name to class path")
        config.adapters = {str(k): str(v) for k, v in adapters.items()}

        state_dir = os.getenv(STATE_DIR_ENV_VAR) or data.get("state_dir")
        if state_dir:
            config.state_dir = str(state_dir)
        return config

    def _parse_application(self, data: dict[str, Any]) -> ApplicationConfig:
        data = dict(data)
        for key in ("scanners", "test_suites"):
            if key in data:
                data[key] = tuple(data[key])
        return _build("application", ApplicationConfig, data)

    def _parse_environments(
        self, data: dict[str, Any], application: ApplicationConfig
    ) -> dict[Environment, EnvironmentSettings]:
        environments = default_environments(application.name)
        for raw_name, raw_settings in data.items():
            env = Environment.parse(raw_name)
            base = environments[env]
            overrides = dict(raw_settings or {})
            overrides.pop("name", None)
            merged = {f.name: getattr(base, f.name) for f in fields(EnvironmentSettings)}
            merged.update(overrides)
            environments[env] = _build(f"environments.{env}", EnvironmentSettings, merged)
        return environments

    def _parse_logging_config(self, data: dict[str, Any]) -> LoggingConfig:
        """Parse logging configuration with ``HEXDEPLOY_LOG_*`` environment overrides."""
        data = dict(data)
        if level := os.getenv("HEXDEPLOY_LOG_LEVEL"):
            data["level"] = level.upper()
        if fmt := os.getenv("HEXDEPLOY_LOG_FORMAT"):
            data["format"] = fmt.lower()
        if output_file := os.getenv("HEXDEPLOY_LOG_FILE"):
            data["output_file"] = output_file
        if use_color := os.getenv("HEXDEPLOY_LOG_COLOR"):
            try:
                data["use_color"] = _parse_bool_env(use_color)
            except ValueError as e:
                logger.warning("Ignoring HEXDEPLOY_LOG_COLOR: {}", e)
        return _build("logging", LoggingConfig, data)


def _build(component: str, model: type, data: dict[str, Any]) -> Any:
    known = {f.name for f in fields(model)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(component, f"unknown keys: {sorted(unknown)}")
    try:
        return model(**data)
    except TypeError as e:
        raise ConfigurationError(component, str(e)) from e


def load_config(path: str | Path | None = None) -> HexDeployConfig:
    """Load hexdeploy configuration (convenience wrapper)."""
    return ConfigLoader().load(path)

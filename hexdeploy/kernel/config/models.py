"""Configuration data models for hexdeploy."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal

from hexdeploy.kernel.domain.environment import Environment
from hexdeploy.kernel.exceptions import ConfigurationError, ValidationError

DEFAULT_APPROVAL_MAX_WAIT_SECONDS = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging configuration.

    Examples
    --------
    TOML configuration:

    ```toml
    [tool.hexdeploy.logging]
    level = "DEBUG"
    format = "rich"
    ```

    Environment variable overrides:

    ```bash
    export HEXDEPLOY_LOG_LEVEL=DEBUG
    export HEXDEPLOY_LOG_FORMAT=json
    export HEXDEPLOY_LOG_FILE=/var/log/hexdeploy/deploy.log
    ```
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "structured", "rich"] = "structured"
    output_file: str | None = None
    use_color: bool = True
    include_timestamp: bool = True
    backtrace: bool = True
    diagnose: bool = True


@dataclass(frozen=True, slots=True)
class StrategyPolicy:
    """Policy constants for the deployment strategies.

    Attributes
    ----------
    canary_traffic_percent : int
        Share of traffic routed to the canary during monitoring
    canary_window_seconds : float
        Length of the canary observation window
    canary_poll_interval_seconds : float
        Interval between canary health samples
    canary_max_error_rate : float
        Error rate above which a health sample counts as an alarm
    bluegreen_settle_seconds : float
        Connection-draining delay after the blue-green selector switch
    rollout_timeout_seconds : float
        Upper bound for any rollout-readiness wait
    rollout_poll_interval_seconds : float
        Interval between rollout-status polls
    """

    canary_traffic_percent: int = 10
    canary_window_seconds: float = 600.0
    canary_poll_interval_seconds: float = 30.0
    canary_max_error_rate: float = 0.05
    bluegreen_settle_seconds: float = 60.0
    rollout_timeout_seconds: float = 600.0
    rollout_poll_interval_seconds: float = 5.0

    def __post_init__(self) -> None:
        if not 0 < self.canary_traffic_percent < 100:
            raise ValidationError(
                "canary_traffic_percent", "must be between 1 and 99", self.canary_traffic_percent
            )
        if not 0.0 <= self.canary_max_error_rate <= 1.0:
            raise ValidationError(
                "canary_max_error_rate", "must be within [0, 1]", self.canary_max_error_rate
            )
        for name in (
            "canary_window_seconds",
            "canary_poll_interval_seconds",
            "rollout_timeout_seconds",
            "rollout_poll_interval_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValidationError(name, "must be positive", getattr(self, name))
        if self.bluegreen_settle_seconds < 0:
            raise ValidationError(
                "bluegreen_settle_seconds", "must be non-negative", self.bluegreen_settle_seconds
            )

    def scaled(self, factor: float) -> StrategyPolicy:
        """Copy with every duration multiplied by ``factor`` (used by dry runs)."""
        if factor <= 0:
            raise ValidationError("factor", "must be positive", factor)
        return replace(
            self,
            canary_window_seconds=self.canary_window_seconds * factor,
            canary_poll_interval_seconds=self.canary_poll_interval_seconds * factor,
            bluegreen_settle_seconds=self.bluegreen_settle_seconds * factor,
            rollout_timeout_seconds=self.rollout_timeout_seconds * factor,
            rollout_poll_interval_seconds=self.rollout_poll_interval_seconds * factor,
        )


@dataclass(frozen=True, slots=True)
class EnvironmentSettings:
    """Environment-specific deployment settings.

    Attributes
    ----------
    name : Environment
        Environment these settings apply to
    namespace : str
        Cluster namespace the application deploys into
    replicas : int
        Target replica count for the stable deployment
    notify_channel : str
        Notification channel for run outcomes
    requires_approval : bool
        Whether the approval gate runs before infrastructure/deploy stages
    stage_timeout_seconds : float | None
        Default per-stage timeout (None = unbounded)
    infra_vars : dict[str, str]
        Variables passed to the infrastructure provisioner
    """

    name: Environment
    namespace: str
    replicas: int = 1
    notify_channel: str = "#deployments"
    requires_approval: bool = False
    stage_timeout_seconds: float | None = None
    infra_vars: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.namespace:
            raise ConfigurationError(f"environments.{self.name}", "namespace cannot be empty")
        if self.replicas < 1:
            raise ValidationError("replicas", "must be at least 1", self.replicas)


@dataclass(frozen=True, slots=True)
class ApplicationConfig:
    """The application being deployed.

    Attributes
    ----------
    name : str
        Application name; also the stable deployment name
    image_repository : str
        Image repository the artifact is pushed to
    service_name : str | None
        Stable service fronting the deployment (defaults to ``name``)
    source_ref : str
        Source reference handed to the artifact builder
    scanners : tuple[str, ...]
        Scanner names run in the parallel scan stage
    test_suites : tuple[str, ...]
        Test suites run in the parallel test stage
    """

    name: str = "app"
    image_repository: str = "registry.local/app"
    service_name: str | None = None
    source_ref: str = "main"
    scanners: tuple[str, ...] = ("dependencies", "container")
    test_suites: tuple[str, ...] = ("smoke", "integration")

    @property
    def service(self) -> str:
        return self.service_name or self.name


def default_environments(app_name: str = "app") -> dict[Environment, EnvironmentSettings]:
    """Built-in environment settings used when no config file declares them."""
    return {
        Environment.DEV: EnvironmentSettings(
            name=Environment.DEV, namespace=f"{app_name}-dev", notify_channel="#deploy-dev"
        ),
        Environment.TEST: EnvironmentSettings(
            name=Environment.TEST, namespace=f"{app_name}-test", notify_channel="#deploy-test"
        ),
        Environment.STAGING: EnvironmentSettings(
            name=Environment.STAGING,
            namespace=f"{app_name}-staging",
            replicas=2,
            notify_channel="#deploy-staging",
        ),
        Environment.PROD: EnvironmentSettings(
            name=Environment.PROD,
            namespace=f"{app_name}-prod",
            replicas=4,
            notify_channel="#deploy-prod",
            requires_approval=True,
        ),
    }


@dataclass(slots=True)
class HexDeployConfig:
    """Complete hexdeploy configuration.

    Attributes
    ----------
    application : ApplicationConfig
        Application under deployment
    environments : dict[Environment, EnvironmentSettings]
        Per-environment settings
    strategy : StrategyPolicy
        Strategy policy constants
    logging : LoggingConfig
        Logging configuration
    concurrency_policy : Literal["reject", "queue"]
        What to do with a run request while another run for the app is in flight
    approval_max_wait_seconds : float
        Maximum approval wait; expiry is treated as a denial
    adapters : dict[str, str]
        Port name → module path of the adapter class to instantiate
    state_dir : str | None
        Directory for host-wide run lock files (``<state_dir>/locks``); None
        serializes runs within one process only
    """

    application: ApplicationConfig = field(default_factory=ApplicationConfig)
    environments: dict[Environment, EnvironmentSettings] = field(
        default_factory=default_environments
    )
    strategy: StrategyPolicy = field(default_factory=StrategyPolicy)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    concurrency_policy: Literal["reject", "queue"] = "reject"
    approval_max_wait_seconds: float = DEFAULT_APPROVAL_MAX_WAIT_SECONDS
    adapters: dict[str, str] = field(default_factory=dict)
    state_dir: str | None = None

    def settings_for(self, environment: Environment) -> EnvironmentSettings:
        try:
            return self.environments[environment]
        except KeyError:
            raise ConfigurationError(
                "environments", f"no settings declared for '{environment}'"
            ) from None

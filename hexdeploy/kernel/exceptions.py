"""Core exception hierarchy for hexdeploy.

All hexdeploy exceptions inherit from HexDeployError so callers (the CLI in
particular) can catch the whole family at one boundary.
"""

from __future__ import annotations

# ============================================================================
# Base Exception
# ============================================================================


class HexDeployError(Exception):
    """Base exception for all hexdeploy errors."""

    pass


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(HexDeployError):
    """Raised when configuration is invalid or missing.

    Examples
    --------
    Example usage::

        raise ConfigurationError("environments.prod", "namespace is required")
    """

    def __init__(self, component: str, reason: str) -> None:
        super().__init__(f"Configuration error in '{component}': {reason}")
        self.component = component
        self.reason = reason


class ValidationError(HexDeployError):
    """Raised when data validation fails.

    Examples
    --------
    Example usage::

        raise ValidationError("environment", "must be one of dev|test|staging|prod", "qa")
    """

    def __init__(self, field: str, constraint: str, value: object = None) -> None:
        if value is not None:
            msg = f"Validation failed for '{field}': {constraint} (got {value!r})"
        else:
            msg = f"Validation failed for '{field}': {constraint}"
        super().__init__(msg)
        self.field = field
        self.constraint = constraint
        self.value = value


class ResolveError(HexDeployError):
    """Raised when a module path cannot be resolved."""

    def __init__(self, kind: str, reason: str) -> None:
        self.kind = kind
        self.reason = reason
        super().__init__(f"Cannot resolve '{kind}': {reason}")


# ============================================================================
# Stage Errors
# ============================================================================


class StageFailedError(HexDeployError):
    """Raised by a stage body to fail the stage with a structured reason.

    The ``kind`` is copied onto the stage's ``StageError`` so downstream
    consumers (dispatcher, CLI exit code) can classify the failure.
    """

    default_kind = "external_error"

    def __init__(self, stage: str, reason: str, kind: str | None = None) -> None:
        self.stage = stage
        self.reason = reason
        self.kind = kind or self.default_kind
        super().__init__(f"Stage '{stage}' failed ({self.kind}): {reason}")


class ThresholdBreachError(StageFailedError):
    """Raised when a quality gate (e.g. scan severity) is breached."""

    default_kind = "threshold_breach"


class ApprovalDeniedError(StageFailedError):
    """Raised when an approval gate is denied or times out."""

    default_kind = "approval_denied"

    def __init__(self, stage: str, reason: str, timed_out: bool = False) -> None:
        self.timed_out = timed_out
        super().__init__(stage, reason)


class StrategyAbortedError(StageFailedError):
    """Raised when a deployment strategy aborts at a checked step."""

    default_kind = "strategy_aborted"

    def __init__(self, stage: str, step: str, reason: str) -> None:
        self.step = step
        super().__init__(stage, f"aborted at '{step}': {reason}")


class PostSwitchCleanupFailedError(StageFailedError):
    """Raised when blue-green retirement fails after traffic already moved.

    Highest-severity failure: the new revision is serving traffic and must not
    be switched back automatically.
    """

    default_kind = "post_switch_cleanup"


# ============================================================================
# Run & Dispatch Errors
# ============================================================================


class PipelineBusyError(HexDeployError):
    """Raised when a run is requested for an application that is already deploying."""

    def __init__(self, application: str) -> None:
        self.application = application
        super().__init__(f"A pipeline run for '{application}' is already in flight")


class RollbackError(HexDeployError):
    """Raised when an automatic rollback cannot be performed."""

    def __init__(self, environment: str, reason: str) -> None:
        self.environment = environment
        self.reason = reason
        super().__init__(f"Rollback for '{environment}' failed: {reason}")


class InvalidTransitionError(HexDeployError):
    """Raised when a state transition violates the machine config."""


__all__ = [
    # Base
    "HexDeployError",
    # Configuration & Validation
    "ConfigurationError",
    "ValidationError",
    "ResolveError",
    # Stages
    "StageFailedError",
    "ThresholdBreachError",
    "ApprovalDeniedError",
    "StrategyAbortedError",
    "PostSwitchCleanupFailedError",
    # Run & Dispatch
    "PipelineBusyError",
    "RollbackError",
    # State machines
    "InvalidTransitionError",
]

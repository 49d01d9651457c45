"""Domain models for hexdeploy."""

from hexdeploy.kernel.domain.deployment import (
    DeploymentOutcome,
    FailureKind,
    FailureReason,
    HealthSignal,
    Manifest,
    ProbeResult,
    RolloutStatus,
)
from hexdeploy.kernel.domain.environment import Environment, StrategyKind, strategy_kind_for
from hexdeploy.kernel.domain.stage import (
    ParallelGroup,
    PipelineHooks,
    PipelineOutcome,
    PipelineStatus,
    SkipReason,
    StageError,
    StageErrorKind,
    StageHooks,
    StageOutcome,
    StageResult,
    StageSpec,
)
from hexdeploy.kernel.domain.state_machine import StateMachine, StateMachineConfig, StateTransition
from hexdeploy.kernel.domain.version import derive_build_version, normalize_requested_version

__all__ = [
    "DeploymentOutcome",
    "Environment",
    "FailureKind",
    "FailureReason",
    "HealthSignal",
    "Manifest",
    "ParallelGroup",
    "PipelineHooks",
    "PipelineOutcome",
    "PipelineStatus",
    "ProbeResult",
    "RolloutStatus",
    "SkipReason",
    "StageError",
    "StageErrorKind",
    "StageHooks",
    "StageOutcome",
    "StageResult",
    "StageSpec",
    "StateMachine",
    "StateMachineConfig",
    "StateTransition",
    "StrategyKind",
    "derive_build_version",
    "normalize_requested_version",
    "strategy_kind_for",
]

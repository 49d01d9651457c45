"""Domain models shared by the deployment strategies.

``Manifest`` is a reference to an already-rendered deployment manifest (the
templating itself happens outside hexdeploy); ``DeploymentOutcome`` is the
terminal value every strategy returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hexdeploy.kernel.domain.state_machine import StateTransition


@dataclass(frozen=True, slots=True)
class Manifest:
    """Reference to a deployable workload manifest.

    Attributes
    ----------
    name : str
        Deployment object name (the stable identity)
    image : str
        Fully-qualified image reference, including tag
    replicas : int
        Target replica count
    labels : dict[str, str]
        Labels applied to the workload
    """

    name: str
    image: str
    replicas: int = 1
    labels: dict[str, str] = field(default_factory=dict)

    def variant(self, suffix: str, replicas: int | None = None) -> Manifest:
        """Return a copy under ``{name}-{suffix}``, optionally rescaled."""
        return replace(
            self,
            name=f"{self.name}-{suffix}",
            replicas=self.replicas if replicas is None else replicas,
            labels={**self.labels, "track": suffix},
        )


@dataclass(frozen=True, slots=True)
class RolloutStatus:
    """Rollout readiness as reported by cluster control."""

    ready_replicas: int
    desired_replicas: int

    @property
    def ready(self) -> bool:
        return self.desired_replicas > 0 and self.ready_replicas >= self.desired_replicas


@dataclass(frozen=True, slots=True)
class HealthSignal:
    """Health/error-rate sample for a workload."""

    healthy: bool = True
    error_rate: float = 0.0
    detail: str = ""


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Outcome of a single validation probe."""

    name: str
    passed: bool
    detail: str = ""


class FailureKind(StrEnum):
    """Structured reasons a deployment strategy can fail."""

    APPLY_ERROR = "apply_error"
    TIMEOUT = "timeout"
    HEALTH_CHECK = "health_check"
    READINESS = "readiness"
    VALIDATION = "validation"
    MONITORING_ALARM = "monitoring_alarm"
    POST_SWITCH_CLEANUP = "post_switch_cleanup"


@dataclass(frozen=True, slots=True)
class FailureReason:
    kind: FailureKind
    step: str
    message: str


@dataclass(frozen=True, slots=True)
class DeploymentOutcome:
    """Terminal value of a strategy run: success with a revision, or a failure reason."""

    strategy: str
    revision: str | None = None
    reason: FailureReason | None = None
    transitions: tuple[StateTransition, ...] = ()

    @classmethod
    def success(
        cls, strategy: str, revision: str, transitions: tuple[StateTransition, ...] = ()
    ) -> DeploymentOutcome:
        return cls(strategy=strategy, revision=revision, transitions=transitions)

    @classmethod
    def failed(
        cls, strategy: str, reason: FailureReason, transitions: tuple[StateTransition, ...] = ()
    ) -> DeploymentOutcome:
        return cls(strategy=strategy, reason=reason, transitions=transitions)

    @property
    def succeeded(self) -> bool:
        return self.reason is None

    @property
    def states(self) -> list[str]:
        """Visited states in order, starting from the initial state."""
        return [t.to_state for t in self.transitions]

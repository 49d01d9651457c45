"""Stage domain model: specs, parallel groups, hooks, and results.

Stages are declared once when the pipeline is constructed and never change
while it runs. A stage body is either a single action or a ``ParallelGroup``
of member stages that run concurrently.

Example::

    build = StageSpec("build", action=build_artifact, writes={"artifact_ref"})
    scans = StageSpec.parallel(
        "scan",
        [
            StageSpec("scan-deps", action=scan_deps, writes={"scan.deps.findings"}),
            StageSpec("scan-image", action=scan_image, writes={"scan.image.findings"}),
        ],
    )
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from itertools import combinations
from typing import TYPE_CHECKING, Any, TypeAlias

from hexdeploy.kernel.exceptions import ValidationError

if TYPE_CHECKING:
    from hexdeploy.kernel.context import RunContext, StageScope

Guard: TypeAlias = "Callable[[RunContext], bool]"
StageAction: TypeAlias = "Callable[[StageScope], Awaitable[None] | None]"
StageHook: TypeAlias = "Callable[[RunContext, StageResult], Awaitable[None] | None]"
PipelineHook: TypeAlias = "Callable[[RunContext, PipelineOutcome], Awaitable[None] | None]"


def always_run(_ctx: RunContext) -> bool:
    """Default guard: the stage always runs."""
    return True


class StageOutcome(StrEnum):
    """Terminal outcome of a single stage."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class SkipReason(StrEnum):
    """Why a stage was not executed."""

    GUARD = "guard"
    UPSTREAM_FAILURE = "upstream_failure"


class StageErrorKind(StrEnum):
    """Classification of stage failures."""

    TIMEOUT = "timeout"
    EXTERNAL_ERROR = "external_error"
    THRESHOLD_BREACH = "threshold_breach"
    APPROVAL_DENIED = "approval_denied"
    STRATEGY_ABORTED = "strategy_aborted"
    POST_SWITCH_CLEANUP = "post_switch_cleanup"
    GUARD_ERROR = "guard_error"
    PARALLEL_MEMBER_FAILED = "parallel_member_failed"


@dataclass(frozen=True, slots=True)
class StageError:
    """Structured failure detail attached to a failed stage."""

    kind: StageErrorKind
    message: str
    step: str | None = None
    error_type: str | None = None


@dataclass(frozen=True, slots=True)
class StageHooks:
    """Post-stage hooks keyed by outcome.

    ``always`` runs exactly once for every stage, skipped ones included.
    ``on_success`` / ``on_failure`` run only for stages that executed.
    """

    on_success: tuple[StageHook, ...] = ()
    on_failure: tuple[StageHook, ...] = ()
    always: tuple[StageHook, ...] = ()


@dataclass(frozen=True, slots=True)
class PipelineHooks:
    """Pipeline-level hooks run once the whole stage list is terminal."""

    on_success: tuple[PipelineHook, ...] = ()
    on_failure: tuple[PipelineHook, ...] = ()
    always: tuple[PipelineHook, ...] = ()


@dataclass(frozen=True, slots=True)
class ParallelGroup:
    """A set of member stages executed concurrently and joined.

    Members must have unique names and pairwise-disjoint ``writes`` sets; a
    member that declares no writes may not write outputs at all. Members are
    plain action stages, never groups themselves.
    """

    members: tuple[StageSpec, ...]

    def __post_init__(self) -> None:
        if not self.members:
            raise ValidationError("members", "parallel group needs at least one member")

        names = [m.name for m in self.members]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValidationError("members", "member names must be unique", sorted(duplicates))

        nested = [m.name for m in self.members if m.group is not None]
        if nested:
            raise ValidationError("members", "parallel groups cannot be nested", nested)

        for left, right in combinations(self.members, 2):
            overlap = left.declared_writes() & right.declared_writes()
            if overlap:
                raise ValidationError(
                    "writes",
                    f"parallel members '{left.name}' and '{right.name}' write the same keys",
                    sorted(overlap),
                )

    def declared_writes(self) -> frozenset[str]:
        keys: frozenset[str] = frozenset()
        for member in self.members:
            keys |= member.declared_writes()
        return keys


@dataclass(frozen=True, slots=True)
class StageSpec:
    """Declaration of a single pipeline stage.

    Attributes
    ----------
    name : str
        Unique stage name
    action : StageAction | None
        Sync or async callable receiving a ``StageScope``; mutually exclusive
        with ``group``
    group : ParallelGroup | None
        Member stages to run concurrently
    guard : Guard
        Pure predicate over the run context; False records the stage skipped
    hooks : StageHooks
        Post-stage hooks
    timeout : float | None
        Maximum duration in seconds (None = unbounded)
    writes : frozenset[str] | None
        Output keys the stage may write. None means unrestricted, except for
        parallel members where it means "writes nothing".
    """

    name: str
    action: StageAction | None = None
    group: ParallelGroup | None = None
    guard: Guard = always_run
    hooks: StageHooks = field(default_factory=StageHooks)
    timeout: float | None = None
    writes: frozenset[str] | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("name", "cannot be empty")
        if (self.action is None) == (self.group is None):
            raise ValidationError(self.name, "stage needs exactly one of 'action' or 'group'")
        if self.timeout is not None and self.timeout <= 0:
            raise ValidationError("timeout", "must be positive", self.timeout)
        if self.writes is not None and not isinstance(self.writes, frozenset):
            object.__setattr__(self, "writes", frozenset(self.writes))

    @classmethod
    def parallel(
        cls,
        name: str,
        members: Iterable[StageSpec],
        *,
        guard: Guard = always_run,
        hooks: StageHooks | None = None,
        timeout: float | None = None,
    ) -> StageSpec:
        """Build a stage whose body is a parallel group of ``members``."""
        return cls(
            name=name,
            group=ParallelGroup(tuple(members)),
            guard=guard,
            hooks=hooks or StageHooks(),
            timeout=timeout,
        )

    @property
    def is_parallel(self) -> bool:
        return self.group is not None

    def declared_writes(self) -> frozenset[str]:
        if self.group is not None:
            return self.group.declared_writes()
        return self.writes or frozenset()


@dataclass(slots=True)
class StageResult:
    """Recorded result of one stage (or one parallel member)."""

    name: str
    outcome: StageOutcome
    error: StageError | None = None
    outputs: dict[str, str] = field(default_factory=dict)
    skip_reason: SkipReason | None = None
    members: list[StageResult] = field(default_factory=list)
    duration_ms: float = 0.0
    hook_errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.outcome is StageOutcome.FAILURE

    @property
    def skipped(self) -> bool:
        return self.outcome is StageOutcome.SKIPPED

    def root_error(self) -> StageError | None:
        """Most specific error: the first failed member's error for parallel groups."""
        for member in self.members:
            if member.failed:
                return member.root_error()
        return self.error


class PipelineStatus(StrEnum):
    """Aggregate status of a pipeline run."""

    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(slots=True)
class PipelineOutcome:
    """Aggregate of all stage results for one run."""

    run_id: str
    results: list[StageResult] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    hook_errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> PipelineStatus:
        if any(r.failed for r in self.results):
            return PipelineStatus.FAILURE
        return PipelineStatus.SUCCESS

    @property
    def succeeded(self) -> bool:
        return self.status is PipelineStatus.SUCCESS

    @property
    def finalized(self) -> bool:
        return self.finished_at is not None

    @property
    def first_failure(self) -> StageResult | None:
        return next((r for r in self.results if r.failed), None)

    @property
    def error_kind(self) -> StageErrorKind | None:
        failure = self.first_failure
        if failure is None:
            return None
        error = failure.root_error()
        return error.kind if error else StageErrorKind.EXTERNAL_ERROR

    def result(self, name: str) -> StageResult | None:
        return next((r for r in self.results if r.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        """Serializable summary, used for archival and ``--json`` output."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "stages": [_result_to_dict(r) for r in self.results],
            "hook_errors": list(self.hook_errors),
        }


def _result_to_dict(result: StageResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": result.name,
        "outcome": result.outcome.value,
        "duration_ms": round(result.duration_ms, 1),
        "outputs": dict(result.outputs),
    }
    if result.skip_reason:
        data["skip_reason"] = result.skip_reason.value
    if result.error:
        data["error"] = {
            "kind": result.error.kind.value,
            "message": result.error.message,
            "step": result.error.step,
        }
    if result.members:
        data["members"] = [_result_to_dict(m) for m in result.members]
    if result.hook_errors:
        data["hook_errors"] = list(result.hook_errors)
    return data


def merge_outputs(target: dict[str, str], outputs: Mapping[str, str]) -> None:
    """Append outputs into ``target``; keys already present are rejected."""
    clash = target.keys() & outputs.keys()
    if clash:
        raise ValidationError("outputs", "output keys are append-only", sorted(clash))
    target.update(outputs)

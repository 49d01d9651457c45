"""DeploymentPipelineRunner - one call from deployment request to dispatched outcome.

Delegates to existing components:

- ``resolve_run_context`` - request → ``RunContext`` (build version assigned once)
- ``DeploymentStages`` - the standard stage list over the configured adapters
- ``StageExecutor`` - guards, parallel groups, hooks, timeouts, fail-fast
- ``OutcomeDispatcher`` - notifications, tickets, rollback, archival

The whole run holds the application's run lock, and every log line emitted
while it executes carries its run id.

Examples
--------
Basic usage::

    runner = DeploymentPipelineRunner(config, ports)
    result = await runner.run(DeploymentRequest.create(environment="dev", source_revision=sha))
    print(result.outcome.status)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from hexdeploy.kernel.domain.environment import strategy_kind_for
from hexdeploy.kernel.domain.stage import StageErrorKind
from hexdeploy.kernel.logging import get_logger, run_logging_context
from hexdeploy.kernel.orchestration.dispatcher import OutcomeDispatcher
from hexdeploy.kernel.orchestration.run_registry import RunRegistry
from hexdeploy.kernel.orchestration.stage_executor import StageExecutor
from hexdeploy.kernel.resolver import resolve_run_context

if TYPE_CHECKING:
    from hexdeploy.kernel.config.models import HexDeployConfig
    from hexdeploy.kernel.context import RunContext
    from hexdeploy.kernel.domain.stage import PipelineHooks, PipelineOutcome, StageSpec
    from hexdeploy.kernel.orchestration.dispatcher import DispatchReport
    from hexdeploy.kernel.ports_builder import DeploymentPorts
    from hexdeploy.kernel.resolver import DeploymentRequest

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RunResult:
    """A finished run: its context, outcome and what dispatch did."""

    ctx: RunContext
    outcome: PipelineOutcome
    dispatch: DispatchReport

    @property
    def succeeded(self) -> bool:
        return self.outcome.succeeded

    @property
    def error_kind(self) -> StageErrorKind | None:
        return self.outcome.error_kind


@dataclass(frozen=True, slots=True)
class PlannedStage:
    """One line of a dry plan: a stage and whether its guard lets it run."""

    name: str
    runs: bool
    members: tuple[str, ...] = ()


class DeploymentPipelineRunner:
    """Runs the standard deployment pipeline.

    Parameters
    ----------
    config : HexDeployConfig
        Resolved configuration
    ports : DeploymentPorts
        Adapter instances
    registry : RunRegistry | None
        Run lock registry; share one instance between runners in a process.
        Defaults to one over ``config.state_dir`` so separate processes
        serialize too
    hooks : PipelineHooks | None
        Pipeline-level hooks run after the last stage
    """

    def __init__(
        self,
        config: HexDeployConfig,
        ports: DeploymentPorts,
        registry: RunRegistry | None = None,
        hooks: PipelineHooks | None = None,
    ) -> None:
        self.config = config
        self.ports = ports
        if ports.observer_manager is None:
            from hexdeploy.stdlib.adapters.local import (
                LocalObserverManager,  # lazy: stdlib depends on kernel
            )

            ports.observer_manager = LocalObserverManager()
        if registry is None:
            lock_dir = Path(config.state_dir) / "locks" if config.state_dir else None
            registry = RunRegistry(config.concurrency_policy, lock_dir=lock_dir)
        self.registry = registry
        self.hooks = hooks
        self.dispatcher = OutcomeDispatcher(
            notifier=ports.notifier,
            version_store=ports.version_store,
            rollback_requester=ports.rollback_requester,
            archive=ports.archive,
        )

    def stages(self) -> list[StageSpec]:
        from hexdeploy.stdlib.stages import DeploymentStages  # lazy: stdlib depends on kernel

        return DeploymentStages(self.config, self.ports).build()

    def plan(self, request: DeploymentRequest) -> tuple[RunContext, list[PlannedStage]]:
        """Evaluate every guard against the context ``request`` resolves to; runs nothing."""
        ctx = resolve_run_context(request, self.config)
        planned = []
        for stage in self.stages():
            members = tuple(m.name for m in stage.group.members) if stage.group else ()
            planned.append(PlannedStage(stage.name, bool(stage.guard(ctx)), members))
        return ctx, planned

    async def run(self, request: DeploymentRequest) -> RunResult:
        """Resolve, execute and dispatch one deployment.

        Raises
        ------
        PipelineBusyError
            If a run for the application is in flight and the policy is ``reject``
        ValidationError
            If the request cannot be resolved into a run context
        """
        ctx = resolve_run_context(request, self.config)
        async with self.registry.acquire(ctx.application):
            with run_logging_context(ctx.run_id):
                logger.info(
                    "Deploying {app} {version} to {env} with the {strategy} strategy",
                    app=ctx.application,
                    version=ctx.version_label,
                    env=ctx.environment,
                    strategy=strategy_kind_for(ctx.environment),
                )
                executor = StageExecutor(
                    observer_manager=self.ports.observer_manager,
                    default_stage_timeout=ctx.settings.stage_timeout_seconds,
                )
                outcome = await executor.execute(self.stages(), ctx, self.hooks)
                report = await self.dispatcher.dispatch(outcome, ctx)
        return RunResult(ctx=ctx, outcome=outcome, dispatch=report)

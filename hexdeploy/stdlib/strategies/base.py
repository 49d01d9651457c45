"""Base class for deployment strategies.

A strategy drives one rollout through ``ClusterControl`` and returns a
``DeploymentOutcome``. Every step is a transition of a private
``StateMachine`` built from the strategy's ``StateMachineConfig``; transitions
are validated, recorded on the outcome and published as
``StrategyTransitioned`` events.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from hexdeploy.kernel.config.models import StrategyPolicy
from hexdeploy.kernel.domain.deployment import DeploymentOutcome, FailureKind, FailureReason
from hexdeploy.kernel.domain.state_machine import StateMachine, StateMachineConfig
from hexdeploy.kernel.logging import get_logger
from hexdeploy.kernel.orchestration.events import StrategyTransitioned

if TYPE_CHECKING:
    from hexdeploy.kernel.context import RunContext
    from hexdeploy.kernel.domain.deployment import Manifest, RolloutStatus
    from hexdeploy.kernel.domain.environment import StrategyKind
    from hexdeploy.kernel.ports.cluster import ClusterControl
    from hexdeploy.kernel.ports.observer_manager import ObserverManager

logger = get_logger(__name__)

SUCCEEDED = "succeeded"
FAILED = "failed"

# Bound on the teardown a cancelled strategy runs before re-raising
CANCEL_CLEANUP_TIMEOUT_SECONDS = 30.0


@dataclass(slots=True)
class StrategyRun:
    """Per-call state of one strategy application."""

    machine: StateMachine
    app_name: str
    manifest: Manifest
    namespace: str
    service: str
    ctx: RunContext | None = None
    committed: bool = False


class DeploymentStrategy(ABC):
    """Common driver for the Direct, Canary and BlueGreen strategies.

    Parameters
    ----------
    cluster : ClusterControl
        Cluster the strategy acts on
    policy : StrategyPolicy | None
        Timing and threshold constants (defaults when None)
    observer_manager : ObserverManager | None
        Receives ``StrategyTransitioned`` events
    """

    kind: ClassVar[StrategyKind]
    state_machine: ClassVar[StateMachineConfig]

    def __init__(
        self,
        cluster: ClusterControl,
        policy: StrategyPolicy | None = None,
        observer_manager: ObserverManager | None = None,
    ) -> None:
        self.cluster = cluster
        self.policy = policy or StrategyPolicy()
        self.observer_manager = observer_manager

    @property
    def name(self) -> str:
        return self.kind.value

    async def apply(
        self,
        app_name: str,
        manifest: Manifest,
        namespace: str,
        ctx: RunContext | None = None,
        service: str | None = None,
    ) -> DeploymentOutcome:
        """Roll ``manifest`` out into ``namespace``.

        Parameters
        ----------
        app_name : str
            Application being deployed
        manifest : Manifest
            Manifest at the target version and replica count
        namespace : str
            Target namespace
        ctx : RunContext | None
            Run context of the calling pipeline
        service : str | None
            Stable service fronting the deployment (defaults to ``app_name``)

        Returns
        -------
        DeploymentOutcome
            ``success`` with the new revision, or ``failed`` with the reason
        """
        run = StrategyRun(
            machine=StateMachine(self.state_machine),
            app_name=app_name,
            manifest=manifest,
            namespace=namespace,
            service=service or app_name,
            ctx=ctx,
        )
        logger.info(
            "Applying {strategy} deployment of {app} ({image}) to {namespace}",
            strategy=self.name,
            app=app_name,
            image=manifest.image,
            namespace=namespace,
        )
        try:
            outcome = await self._execute(run)
        except asyncio.CancelledError:
            await self._cleanup_after_cancel(run)
            raise
        if outcome.succeeded:
            logger.info(
                "{strategy} deployment succeeded: {revision}",
                strategy=self.name,
                revision=outcome.revision,
            )
        else:
            assert outcome.reason is not None
            logger.warning(
                "{strategy} deployment failed at {step} ({kind}): {message}",
                strategy=self.name,
                step=outcome.reason.step,
                kind=outcome.reason.kind.value,
                message=outcome.reason.message,
            )
        return outcome

    @abstractmethod
    async def _execute(self, run: StrategyRun) -> DeploymentOutcome:
        """Drive the state machine of ``run`` to a terminal state."""
        ...

    async def _teardown(self, run: StrategyRun) -> None:
        """Undo what a cancelled run left behind; a no-op unless overridden.

        Called when the enclosing task is cancelled (a stage timeout, for
        one) before the state machine reached a terminal state.
        """

    async def _cleanup_after_cancel(self, run: StrategyRun) -> None:
        if run.machine.is_terminal:
            return
        logger.warning(
            "{strategy} deployment of {app} cancelled in {state}; tearing down",
            strategy=self.name,
            app=run.app_name,
            state=run.machine.state,
        )
        # A second cancellation does not interrupt the teardown
        try:
            async with asyncio.timeout(CANCEL_CLEANUP_TIMEOUT_SECONDS):
                await asyncio.shield(self._teardown(run))
        except Exception as e:
            logger.error(
                "Teardown of cancelled {strategy} deployment of {app} failed: {error}",
                strategy=self.name,
                app=run.app_name,
                error=e,
            )

    # ------------------------------------------------------------------
    # Helpers shared by the strategies
    # ------------------------------------------------------------------

    async def _advance(self, run: StrategyRun, to_state: str, reason: str | None = None) -> None:
        from_state = run.machine.state
        run.machine.transition(to_state, reason)
        logger.debug(
            "{strategy}: {from_state} -> {to_state}",
            strategy=self.name,
            from_state=from_state,
            to_state=to_state,
        )
        if self.observer_manager is not None:
            await self.observer_manager.notify(
                StrategyTransitioned(strategy=self.name, from_state=from_state, to_state=to_state)
            )

    async def _succeed(self, run: StrategyRun, revision: str) -> DeploymentOutcome:
        await self._advance(run, SUCCEEDED)
        return DeploymentOutcome.success(self.name, revision, run.machine.history)

    async def _fail(self, run: StrategyRun, reason: FailureReason) -> DeploymentOutcome:
        await self._advance(run, FAILED, reason.message)
        return DeploymentOutcome.failed(self.name, reason, run.machine.history)

    async def wait_for_rollout(self, name: str, namespace: str) -> RolloutStatus:
        """Poll rollout status until ready.

        Raises
        ------
        TimeoutError
            If the rollout is not ready within ``rollout_timeout_seconds``
        """
        async with asyncio.timeout(self.policy.rollout_timeout_seconds):
            while True:
                status = await self.cluster.arollout_status(name, namespace)
                if status.ready:
                    return status
                logger.debug(
                    "Rollout of {name}: {ready}/{desired} ready",
                    name=name,
                    ready=status.ready_replicas,
                    desired=status.desired_replicas,
                )
                await asyncio.sleep(self.policy.rollout_poll_interval_seconds)

    async def _await_ready(
        self, name: str, namespace: str, step: str, timeout_kind: FailureKind
    ) -> FailureReason | None:
        """``wait_for_rollout`` mapped onto a failure reason (None when ready)."""
        try:
            await self.wait_for_rollout(name, namespace)
        except TimeoutError:
            return FailureReason(
                timeout_kind,
                step,
                f"{name} not ready within {self.policy.rollout_timeout_seconds:g}s",
            )
        except Exception as e:
            return FailureReason(FailureKind.READINESS, step, f"rollout status of {name}: {e}")
        return None

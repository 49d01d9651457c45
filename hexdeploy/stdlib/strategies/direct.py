"""Direct strategy: apply the manifest in place and wait for the rollout."""

from __future__ import annotations

from typing import ClassVar

from hexdeploy.kernel.domain.deployment import DeploymentOutcome, FailureKind, FailureReason
from hexdeploy.kernel.domain.environment import StrategyKind
from hexdeploy.kernel.domain.state_machine import StateMachineConfig
from hexdeploy.stdlib.strategies.base import FAILED, SUCCEEDED, DeploymentStrategy, StrategyRun

SUBMITTING = "submitting"
WAITING_ROLLOUT = "waiting_rollout"

DIRECT_STATE_MACHINE = StateMachineConfig(
    name="direct",
    states={SUBMITTING, WAITING_ROLLOUT, SUCCEEDED, FAILED},
    initial_state=SUBMITTING,
    transitions={
        SUBMITTING: {WAITING_ROLLOUT, FAILED},
        WAITING_ROLLOUT: {SUCCEEDED, FAILED},
    },
    terminal_states={SUCCEEDED, FAILED},
)


class DirectStrategy(DeploymentStrategy):
    """``submitting → waiting_rollout → succeeded | failed``.

    Used for dev and test, where a brief mixed-version window is acceptable.
    """

    kind: ClassVar[StrategyKind] = StrategyKind.DIRECT
    state_machine: ClassVar[StateMachineConfig] = DIRECT_STATE_MACHINE

    async def _execute(self, run: StrategyRun) -> DeploymentOutcome:
        try:
            revision = await self.cluster.aapply(run.manifest, run.namespace)
        except Exception as e:
            return await self._fail(
                run, FailureReason(FailureKind.APPLY_ERROR, SUBMITTING, str(e))
            )

        await self._advance(run, WAITING_ROLLOUT)
        reason = await self._await_ready(
            run.manifest.name, run.namespace, WAITING_ROLLOUT, FailureKind.TIMEOUT
        )
        if reason is not None:
            return await self._fail(run, reason)
        return await self._succeed(run, revision)

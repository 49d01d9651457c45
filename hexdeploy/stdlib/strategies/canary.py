"""Canary strategy: trial a minority-traffic variant, then promote or abort.

The traffic split and the promotion are separate cluster calls and are not
atomic. A crash between them leaves a split that an operator has to resolve.
"""

from __future__ import annotations

import asyncio
import math
from typing import ClassVar

from hexdeploy.kernel.domain.deployment import DeploymentOutcome, FailureKind, FailureReason
from hexdeploy.kernel.domain.environment import StrategyKind
from hexdeploy.kernel.domain.state_machine import StateMachineConfig
from hexdeploy.kernel.logging import get_logger
from hexdeploy.stdlib.strategies.base import FAILED, SUCCEEDED, DeploymentStrategy, StrategyRun

logger = get_logger(__name__)

DEPLOYING_CANARY = "deploying_canary"
ROUTING_SPLIT = "routing_split"
MONITORING = "monitoring"
PROMOTING = "promoting"
ABORTING = "aborting"
CLEANUP = "cleanup"

CANARY_SUFFIX = "canary"

CANARY_STATE_MACHINE = StateMachineConfig(
    name="canary",
    states={
        DEPLOYING_CANARY,
        ROUTING_SPLIT,
        MONITORING,
        PROMOTING,
        ABORTING,
        CLEANUP,
        SUCCEEDED,
        FAILED,
    },
    initial_state=DEPLOYING_CANARY,
    transitions={
        DEPLOYING_CANARY: {ROUTING_SPLIT, ABORTING},
        ROUTING_SPLIT: {MONITORING, ABORTING},
        MONITORING: {PROMOTING, ABORTING},
        PROMOTING: {CLEANUP, ABORTING},
        CLEANUP: {SUCCEEDED, FAILED},
        ABORTING: {FAILED},
    },
    terminal_states={SUCCEEDED, FAILED},
)


class CanaryStrategy(DeploymentStrategy):
    """``deploying_canary → routing_split → monitoring → promoting | aborting → cleanup``.

    1. Apply the ``-canary`` variant at one replica and wait for readiness.
    2. Route ``canary_traffic_percent`` to the canary, the rest to stable.
    3. Sample health every ``canary_poll_interval_seconds`` for the whole
       ``canary_window_seconds``; an alarm or a failed sample aborts.
    4. Promote: apply the full manifest under the stable name, wait for
       readiness, then delete the canary and restore 100% stable routing.

    Aborting always deletes the canary and restores 100% stable routing.
    """

    kind: ClassVar[StrategyKind] = StrategyKind.CANARY
    state_machine: ClassVar[StateMachineConfig] = CANARY_STATE_MACHINE

    async def _execute(self, run: StrategyRun) -> DeploymentOutcome:
        canary = run.manifest.variant(CANARY_SUFFIX, replicas=1)

        try:
            await self.cluster.aapply(canary, run.namespace)
        except Exception as e:
            return await self._abort(
                run, canary.name, FailureReason(FailureKind.APPLY_ERROR, DEPLOYING_CANARY, str(e))
            )
        reason = await self._await_ready(
            canary.name, run.namespace, DEPLOYING_CANARY, FailureKind.READINESS
        )
        if reason is not None:
            return await self._abort(run, canary.name, reason)

        await self._advance(run, ROUTING_SPLIT)
        percent = self.policy.canary_traffic_percent
        weights = {run.manifest.name: 100 - percent, canary.name: percent}
        try:
            await self.cluster.apatch_route(run.service, run.namespace, weights)
        except Exception as e:
            return await self._abort(
                run, canary.name, FailureReason(FailureKind.APPLY_ERROR, ROUTING_SPLIT, str(e))
            )

        await self._advance(run, MONITORING)
        reason = await self._monitor(run, canary.name)
        if reason is not None:
            return await self._abort(run, canary.name, reason)

        await self._advance(run, PROMOTING)
        try:
            revision = await self.cluster.aapply(run.manifest, run.namespace)
        except Exception as e:
            return await self._abort(
                run, canary.name, FailureReason(FailureKind.APPLY_ERROR, PROMOTING, str(e))
            )
        reason = await self._await_ready(
            run.manifest.name, run.namespace, PROMOTING, FailureKind.READINESS
        )
        if reason is not None:
            return await self._abort(run, canary.name, reason)

        await self._advance(run, CLEANUP)
        try:
            await self.cluster.adelete(canary.name, run.namespace)
            await self.cluster.apatch_route(run.service, run.namespace, {run.manifest.name: 100})
        except Exception as e:
            return await self._fail(run, FailureReason(FailureKind.APPLY_ERROR, CLEANUP, str(e)))
        return await self._succeed(run, revision)

    async def _monitor(self, run: StrategyRun, canary_name: str) -> FailureReason | None:
        """Sample canary health across the observation window."""
        interval = self.policy.canary_poll_interval_seconds
        polls = max(1, math.ceil(self.policy.canary_window_seconds / interval))
        threshold = self.policy.canary_max_error_rate

        for poll in range(1, polls + 1):
            await asyncio.sleep(interval)
            try:
                signal = await self.cluster.ahealth(canary_name, run.namespace)
            except Exception as e:
                return FailureReason(
                    FailureKind.HEALTH_CHECK, MONITORING, f"health sample {poll} failed: {e}"
                )
            if not signal.healthy or signal.error_rate > threshold:
                detail = f" ({signal.detail})" if signal.detail else ""
                return FailureReason(
                    FailureKind.MONITORING_ALARM,
                    MONITORING,
                    f"alarm on sample {poll}/{polls}: error rate {signal.error_rate:.2%} "
                    f"(max {threshold:.2%}), healthy={signal.healthy}{detail}",
                )
            logger.debug(
                "Canary sample {poll}/{polls}: error rate {rate}",
                poll=poll,
                polls=polls,
                rate=signal.error_rate,
            )
        return None

    async def _abort(
        self, run: StrategyRun, canary_name: str, reason: FailureReason
    ) -> DeploymentOutcome:
        """Remove the canary and restore 100% stable routing, then fail with ``reason``."""
        await self._advance(run, ABORTING, reason.message)
        problems = await self._restore_stable(run, canary_name)
        if problems:
            message = f"{reason.message}; abort incomplete: {'; '.join(problems)}"
            reason = FailureReason(reason.kind, reason.step, message)
        return await self._fail(run, reason)

    async def _restore_stable(self, run: StrategyRun, canary_name: str) -> list[str]:
        """Delete the canary and route all traffic to stable; returns what failed."""
        problems: list[str] = []
        try:
            await self.cluster.adelete(canary_name, run.namespace)
        except Exception as e:
            logger.error("Could not delete canary {name}: {error}", name=canary_name, error=e)
            problems.append(f"delete canary: {e}")
        try:
            await self.cluster.apatch_route(run.service, run.namespace, {run.manifest.name: 100})
        except Exception as e:
            logger.error("Could not restore stable routing: {error}", error=e)
            problems.append(f"restore routing: {e}")
        return problems

    async def _teardown(self, run: StrategyRun) -> None:
        canary_name = run.manifest.variant(CANARY_SUFFIX, replicas=1).name
        problems = await self._restore_stable(run, canary_name)
        if problems:
            logger.critical(
                "Cancelled canary of {app} left behind: {problems}; manual cleanup required",
                app=run.app_name,
                problems="; ".join(problems),
            )

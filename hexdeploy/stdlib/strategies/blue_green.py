"""Blue-green strategy: validate a full-capacity green slot, then switch wholesale.

Once the service selector points at green, traffic is never switched back
automatically. Any later error is reported as ``post_switch_cleanup``.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, ClassVar

from hexdeploy.kernel.domain.deployment import DeploymentOutcome, FailureKind, FailureReason
from hexdeploy.kernel.domain.environment import StrategyKind
from hexdeploy.kernel.domain.state_machine import StateMachineConfig
from hexdeploy.kernel.logging import get_logger
from hexdeploy.stdlib.strategies.base import FAILED, SUCCEEDED, DeploymentStrategy, StrategyRun

if TYPE_CHECKING:
    from hexdeploy.kernel.config.models import StrategyPolicy
    from hexdeploy.kernel.ports.cluster import ClusterControl, ValidationProber
    from hexdeploy.kernel.ports.observer_manager import ObserverManager

logger = get_logger(__name__)

DEPLOYING_GREEN = "deploying_green"
VALIDATING = "validating"
SWITCHING_TRAFFIC = "switching_traffic"
ABORTING = "aborting"
RETIRING_OLD = "retiring_old"

BLUE_SUFFIX = "blue"
GREEN_SUFFIX = "green"

BLUE_GREEN_STATE_MACHINE = StateMachineConfig(
    name="blue_green",
    states={
        DEPLOYING_GREEN,
        VALIDATING,
        SWITCHING_TRAFFIC,
        ABORTING,
        RETIRING_OLD,
        SUCCEEDED,
        FAILED,
    },
    initial_state=DEPLOYING_GREEN,
    transitions={
        DEPLOYING_GREEN: {VALIDATING, ABORTING},
        VALIDATING: {SWITCHING_TRAFFIC, ABORTING},
        SWITCHING_TRAFFIC: {RETIRING_OLD, ABORTING},
        RETIRING_OLD: {SUCCEEDED, FAILED},
        ABORTING: {FAILED},
    },
    terminal_states={SUCCEEDED, FAILED},
)


class BlueGreenStrategy(DeploymentStrategy):
    """``deploying_green → validating → switching_traffic | aborting → retiring_old``.

    1. Apply ``-green`` at full replicas and wait for readiness; failure tears
       green down and leaves blue live (``readiness``).
    2. Run the validation probes against the green endpoint; any failed probe
       tears green down (``validation``).
    3. Point the stable service selector at green and wait
       ``bluegreen_settle_seconds`` for connections to drain.
    4. Delete the old ``-blue`` and relabel green to ``-blue`` so the next
       run's green slot is free.

    A failing selector patch means traffic never moved: green is torn down
    (``apply_error``). Errors after the patch yield ``post_switch_cleanup``
    and leave the service on green.
    """

    kind: ClassVar[StrategyKind] = StrategyKind.BLUE_GREEN
    state_machine: ClassVar[StateMachineConfig] = BLUE_GREEN_STATE_MACHINE

    def __init__(
        self,
        cluster: ClusterControl,
        prober: ValidationProber,
        policy: StrategyPolicy | None = None,
        observer_manager: ObserverManager | None = None,
    ) -> None:
        super().__init__(cluster, policy, observer_manager)
        self.prober = prober

    async def _execute(self, run: StrategyRun) -> DeploymentOutcome:
        green = run.manifest.variant(GREEN_SUFFIX)
        blue_name = f"{run.manifest.name}-{BLUE_SUFFIX}"

        try:
            revision = await self.cluster.aapply(green, run.namespace)
        except Exception as e:
            return await self._abort(
                run, green.name, FailureReason(FailureKind.READINESS, DEPLOYING_GREEN, str(e))
            )
        reason = await self._await_ready(
            green.name, run.namespace, DEPLOYING_GREEN, FailureKind.READINESS
        )
        if reason is not None:
            return await self._abort(run, green.name, reason)

        await self._advance(run, VALIDATING)
        reason = await self._validate(run, green.name)
        if reason is not None:
            return await self._abort(run, green.name, reason)

        await self._advance(run, SWITCHING_TRAFFIC)
        try:
            await self.cluster.apatch_selector(run.service, run.namespace, green.name)
        except Exception as e:
            return await self._abort(
                run,
                green.name,
                FailureReason(
                    FailureKind.APPLY_ERROR, SWITCHING_TRAFFIC, f"selector patch failed: {e}"
                ),
            )
        run.committed = True

        logger.info(
            "Traffic for {service} switched to {green}; settling for {settle:g}s",
            service=run.service,
            green=green.name,
            settle=self.policy.bluegreen_settle_seconds,
        )
        await asyncio.sleep(self.policy.bluegreen_settle_seconds)

        await self._advance(run, RETIRING_OLD)
        try:
            await self.cluster.adelete(blue_name, run.namespace)
            await self.cluster.arelabel(green.name, blue_name, run.namespace)
        except Exception as e:
            return await self._post_switch_failure(run, RETIRING_OLD, e)
        return await self._succeed(run, revision)

    async def _validate(self, run: StrategyRun, green_name: str) -> FailureReason | None:
        try:
            endpoint = await self.cluster.aendpoint(green_name, run.namespace)
            results = await self.prober.aprobe(endpoint)
        except Exception as e:
            return FailureReason(FailureKind.VALIDATION, VALIDATING, f"probe suite errored: {e}")

        failed = [r for r in results if not r.passed]
        if failed:
            details = ", ".join(f"{r.name}: {r.detail}" if r.detail else r.name for r in failed)
            return FailureReason(
                FailureKind.VALIDATION,
                VALIDATING,
                f"{len(failed)} of {len(results)} probes failed ({details})",
            )
        return None

    async def _abort(
        self, run: StrategyRun, green_name: str, reason: FailureReason
    ) -> DeploymentOutcome:
        """Tear green down; blue stays authoritative."""
        await self._advance(run, ABORTING, reason.message)
        try:
            await self.cluster.adelete(green_name, run.namespace)
        except Exception as e:
            logger.error("Could not delete green slot {name}: {error}", name=green_name, error=e)
            reason = FailureReason(
                reason.kind, reason.step, f"{reason.message}; green teardown failed: {e}"
            )
        return await self._fail(run, reason)

    async def _teardown(self, run: StrategyRun) -> None:
        green_name = run.manifest.variant(GREEN_SUFFIX).name
        # An interrupted selector patch may already have moved traffic to green
        if run.committed or run.machine.state == SWITCHING_TRAFFIC:
            logger.critical(
                "Blue-green deployment of {app} cancelled {when}; green slot {green} kept, "
                "manual cleanup required",
                app=run.app_name,
                when="after the switch" if run.committed else "during the switch",
                green=green_name,
            )
            return
        try:
            await self.cluster.adelete(green_name, run.namespace)
        except Exception as e:
            logger.critical(
                "Could not delete green slot {name} of a cancelled deployment: {error}",
                name=green_name,
                error=e,
            )

    async def _post_switch_failure(
        self, run: StrategyRun, step: str, error: Exception
    ) -> DeploymentOutcome:
        logger.critical(
            "Post-switch cleanup of {app} failed at {step}: {error}; traffic stays on green",
            app=run.app_name,
            step=step,
            error=error,
        )
        return await self._fail(
            run, FailureReason(FailureKind.POST_SWITCH_CLEANUP, step, str(error))
        )

"""Tests for CanaryStrategy."""

import asyncio

import pytest

from hexdeploy.kernel.domain import (
    FailureKind,
    HealthSignal,
    Manifest,
    StageErrorKind,
    StageSpec,
)
from hexdeploy.kernel.orchestration.events import StrategyTransitioned
from hexdeploy.kernel.orchestration.stage_executor import StageExecutor
from hexdeploy.stdlib.adapters.local import LocalObserverManager
from hexdeploy.stdlib.adapters.mock import MockCluster
from hexdeploy.stdlib.strategies import CanaryStrategy

NAMESPACE = "app-staging"


@pytest.fixture
def manifest():
    return Manifest("app", "registry.local/app:7-abcdef1", replicas=2, labels={"app": "app"})


def routes(cluster: MockCluster) -> list[dict[str, int]]:
    return [call.args[2] for call in cluster.called("patch_route")]


@pytest.mark.asyncio
async def test_success_promotes_and_cleans_up(fast_policy, manifest):
    cluster = MockCluster()
    outcome = await CanaryStrategy(cluster, fast_policy).apply("app", manifest, NAMESPACE)

    assert outcome.succeeded
    assert outcome.states == [
        "deploying_canary",
        "routing_split",
        "monitoring",
        "promoting",
        "cleanup",
        "succeeded",
    ]
    assert routes(cluster) == [{"app": 90, "app-canary": 10}, {"app": 100}]
    assert set(cluster.deployments[NAMESPACE]) == {"app"}
    assert cluster.deployments[NAMESPACE]["app"].replicas == 2
    assert cluster.health_polls >= 4


@pytest.mark.asyncio
async def test_alarm_prevents_promotion(fast_policy, manifest):
    cluster = MockCluster(health=HealthSignal(error_rate=0.5))
    cluster.seed(Manifest("app", "registry.local/app:6-0000001", replicas=2), NAMESPACE)
    await CanaryStrategy(cluster, fast_policy).apply("app", manifest, NAMESPACE)

    applied = cluster.called("apply")
    assert [c.args[0] for c in applied] == ["app-canary"]
    assert cluster.deployments[NAMESPACE]["app"].image == "registry.local/app:6-0000001"


def test_canary_variant_is_one_replica_with_track_label(manifest):
    canary = manifest.variant("canary", replicas=1)
    assert canary.name == "app-canary"
    assert canary.replicas == 1
    assert canary.labels == {"app": "app", "track": "canary"}


@pytest.mark.asyncio
async def test_alarm_on_fourth_sample_aborts(fast_policy, manifest):
    healthy = HealthSignal(error_rate=0.01)
    cluster = MockCluster(health=[healthy, healthy, healthy, HealthSignal(error_rate=0.2)])
    outcome = await CanaryStrategy(cluster, fast_policy).apply("app", manifest, NAMESPACE)

    assert outcome.reason.kind is FailureKind.MONITORING_ALARM
    assert outcome.reason.step == "monitoring"
    assert "alarm on sample 4/" in outcome.reason.message
    assert cluster.health_polls == 4
    assert "app-canary" not in cluster.deployments[NAMESPACE]
    assert cluster.routes[(NAMESPACE, "app")] == {"app": 100}
    assert outcome.states[-2:] == ["aborting", "failed"]


@pytest.mark.asyncio
async def test_unhealthy_sample_is_an_alarm(fast_policy, manifest):
    cluster = MockCluster(health=HealthSignal(healthy=False, detail="crashloop"))
    outcome = await CanaryStrategy(cluster, fast_policy).apply("app", manifest, NAMESPACE)

    assert outcome.reason.kind is FailureKind.MONITORING_ALARM
    assert "sample 1/" in outcome.reason.message
    assert "crashloop" in outcome.reason.message


@pytest.mark.asyncio
async def test_health_sample_error(fast_policy, manifest):
    cluster = MockCluster(fail_on={"health": "metrics backend down"})
    outcome = await CanaryStrategy(cluster, fast_policy).apply("app", manifest, NAMESPACE)

    assert outcome.reason.kind is FailureKind.HEALTH_CHECK
    assert "metrics backend down" in outcome.reason.message
    assert cluster.routes[(NAMESPACE, "app")] == {"app": 100}


@pytest.mark.asyncio
async def test_canary_not_ready(fast_policy, manifest):
    cluster = MockCluster(never_ready={"app-canary"})
    outcome = await CanaryStrategy(cluster, fast_policy).apply("app", manifest, NAMESPACE)

    assert outcome.reason.kind is FailureKind.READINESS
    assert outcome.reason.step == "deploying_canary"
    assert "app-canary" not in cluster.deployments[NAMESPACE]
    assert cluster.called("health") == []


@pytest.mark.asyncio
async def test_promotion_failure_aborts(fast_policy, manifest):
    cluster = MockCluster(fail_on={"apply:app": "admission webhook denied"})
    outcome = await CanaryStrategy(cluster, fast_policy).apply("app", manifest, NAMESPACE)

    assert outcome.reason.kind is FailureKind.APPLY_ERROR
    assert outcome.reason.step == "promoting"
    assert "app-canary" not in cluster.deployments[NAMESPACE]
    assert cluster.routes[(NAMESPACE, "app")] == {"app": 100}


@pytest.mark.asyncio
async def test_cleanup_failure_after_promotion(fast_policy, manifest):
    cluster = MockCluster(fail_on={"delete:app-canary": "forbidden"})
    outcome = await CanaryStrategy(cluster, fast_policy).apply("app", manifest, NAMESPACE)

    assert outcome.reason.kind is FailureKind.APPLY_ERROR
    assert outcome.reason.step == "cleanup"
    assert outcome.states[-2:] == ["cleanup", "failed"]


@pytest.mark.asyncio
async def test_incomplete_abort_is_reported(fast_policy, manifest):
    cluster = MockCluster(
        never_ready={"app-canary"}, fail_on={"delete:app-canary": "forbidden"}
    )
    outcome = await CanaryStrategy(cluster, fast_policy).apply("app", manifest, NAMESPACE)

    assert outcome.reason.kind is FailureKind.READINESS
    assert "abort incomplete" in outcome.reason.message
    assert "forbidden" in outcome.reason.message


@pytest.mark.asyncio
async def test_custom_service_and_transition_events(fast_policy, manifest):
    events = []
    observers = LocalObserverManager(event_log_level=None)
    observers.register(events.append)
    cluster = MockCluster()

    await CanaryStrategy(cluster, fast_policy, observers).apply(
        "app", manifest, NAMESPACE, service="app-public"
    )

    assert (NAMESPACE, "app-public") in cluster.routes
    transitions = [e for e in events if isinstance(e, StrategyTransitioned)]
    assert transitions[0].from_state == "deploying_canary"
    assert transitions[-1].to_state == "succeeded"


class HangingHealthCluster(MockCluster):
    """Health sampling never returns."""

    async def ahealth(self, name, namespace):
        self._record("health", name, namespace)
        await asyncio.sleep(3600)


@pytest.mark.asyncio
async def test_stage_timeout_during_monitoring_restores_stable(fast_policy, manifest, make_ctx):
    cluster = HangingHealthCluster()
    strategy = CanaryStrategy(cluster, fast_policy)

    async def deploy(scope):
        await strategy.apply("app", manifest, NAMESPACE)

    outcome = await StageExecutor().execute(
        [StageSpec("deploy-application", action=deploy, timeout=0.2)], make_ctx("staging")
    )

    assert outcome.result("deploy-application").error.kind is StageErrorKind.TIMEOUT
    assert cluster.called("health")
    assert "app-canary" not in cluster.deployments[NAMESPACE]
    assert cluster.routes[(NAMESPACE, "app")] == {"app": 100}

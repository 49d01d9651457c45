"""Tests for the in-memory adapters used by tests and dry runs."""

import pytest

from hexdeploy.kernel.domain import HealthSignal, Manifest
from hexdeploy.kernel.ports import (
    ArtifactRef,
    ClusterControl,
    Notifier,
    Registry,
    Severity,
    ValidationProber,
)
from hexdeploy.stdlib.adapters.mock import (
    MockApprovalGate,
    MockCluster,
    MockNotifier,
    MockProber,
    MockProvisioner,
    MockRegistry,
    MockTestRunner,
)


def test_mocks_satisfy_their_ports():
    assert isinstance(MockCluster(), ClusterControl)
    assert isinstance(MockProber(), ValidationProber)
    assert isinstance(MockNotifier(), Notifier)
    assert isinstance(MockRegistry(), Registry)


class TestMockCluster:
    @pytest.mark.asyncio
    async def test_route_weights_must_sum_to_100(self):
        cluster = MockCluster()
        with pytest.raises(ValueError, match="sum to 100"):
            await cluster.apatch_route("app", "ns", {"app": 90, "app-canary": 20})

    @pytest.mark.asyncio
    async def test_scripted_failure_by_target(self):
        cluster = MockCluster(fail_on={"delete:app-blue": PermissionError("forbidden")})
        await cluster.adelete("app-green", "ns")
        with pytest.raises(PermissionError):
            await cluster.adelete("app-blue", "ns")
        assert [c.args[0] for c in cluster.called("delete")] == ["app-green", "app-blue"]

    @pytest.mark.asyncio
    async def test_health_samples_repeat_the_last(self):
        cluster = MockCluster(health=[HealthSignal(error_rate=0.0), HealthSignal(error_rate=0.3)])
        rates = [(await cluster.ahealth("app", "ns")).error_rate for _ in range(3)]
        assert rates == [0.0, 0.3, 0.3]

    @pytest.mark.asyncio
    async def test_relabel_moves_deployment_and_selector(self):
        cluster = MockCluster()
        await cluster.aapply(Manifest("app-green", "img:2"), "ns")
        await cluster.apatch_selector("app", "ns", "app-green")
        await cluster.arelabel("app-green", "app-blue", "ns")

        assert cluster.serving("app", "ns").name == "app-blue"
        assert cluster.serving("app", "ns").labels["track"] == "blue"


class TestOtherMocks:
    @pytest.mark.asyncio
    async def test_registry_signs_only_pushed_tags(self):
        registry = MockRegistry()
        with pytest.raises(KeyError):
            await registry.asign("7-abcdef1")
        await registry.apush(ArtifactRef("app", "sha256:00"), "7-abcdef1")
        await registry.asign("7-abcdef1")
        assert registry.signed == {"7-abcdef1"}

    @pytest.mark.asyncio
    async def test_provisioner_default_outputs(self):
        outputs = await MockProvisioner().aapply({"namespace": "app-dev"})
        assert outputs == {"endpoint_url": "https://app-dev.example.internal"}

    @pytest.mark.asyncio
    async def test_test_runner_reports_failures(self):
        runner = MockTestRunner(failing={"smoke": ["test_login"]})
        report = await runner.arun("smoke", "https://x")
        assert not report.ok
        assert report.failures == ("test_login",)
        assert (await runner.arun("integration", "https://x")).ok

    @pytest.mark.asyncio
    async def test_notifier_tickets(self):
        notifier = MockNotifier()
        await notifier.anotify("#ops", Severity.WARNING, "heads up")
        assert await notifier.acreate_ticket({"title": "Monitor"}) == "OPS-1"
        assert notifier.severities() == [Severity.WARNING]

    @pytest.mark.asyncio
    async def test_approval_gate_records_requests(self):
        gate = MockApprovalGate(decision=False)
        assert await gate.await_decision("request") is False  # type: ignore[arg-type]
        assert gate.requests == ["request"]

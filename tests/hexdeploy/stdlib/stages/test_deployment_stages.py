"""Tests for the standard deployment stage list."""

import pytest

from hexdeploy.kernel.domain import SkipReason, StageErrorKind, StageOutcome
from hexdeploy.kernel.exceptions import ConfigurationError
from hexdeploy.kernel.orchestration.stage_executor import StageExecutor
from hexdeploy.kernel.ports import Finding, FindingSeverity
from hexdeploy.stdlib.adapters.mock import (
    MockCluster,
    MockProvisioner,
    MockScanner,
    MockTestRunner,
)
from hexdeploy.stdlib.stages import DeploymentStages, build_deployment_stages
from hexdeploy.stdlib.stages.deployment import strategy_time_budget


async def run(config, ports, ctx):
    return await StageExecutor().execute(DeploymentStages(config, ports).build(), ctx)


def test_stage_order(config, make_ports):
    stages = build_deployment_stages(config, make_ports())
    assert [s.name for s in stages] == [
        "build",
        "scan",
        "publish",
        "approval",
        "provision-infrastructure",
        "deploy-application",
        "test",
        "release",
    ]
    scan = stages[1]
    assert [m.name for m in scan.group.members] == ["scan-dependencies", "scan-container"]


def test_deploy_stage_timeout_covers_the_strategy(config, make_ports):
    stages = {s.name: s for s in build_deployment_stages(config, make_ports())}
    budget = strategy_time_budget(config.strategy)
    assert stages["deploy-application"].timeout == budget
    assert budget > 3 * config.strategy.rollout_timeout_seconds
    assert stages["approval"].timeout > config.approval_max_wait_seconds


def test_missing_scanner_adapter(config, make_ports):
    ports = make_ports()
    del ports.scanners["container"]
    with pytest.raises(ConfigurationError, match="scanner 'container'"):
        build_deployment_stages(config, ports)


@pytest.mark.asyncio
async def test_dev_run_end_to_end(config, make_ports, make_ctx):
    ports = make_ports()
    ctx = make_ctx("dev", feature_flags={"new_feature": True})
    outcome = await run(config, ports, ctx)

    assert outcome.succeeded
    assert outcome.result("approval").skip_reason is SkipReason.GUARD
    assert ctx.get_output("artifact.tag") == "7-abcdef1"
    assert ctx.get_output("deploy.strategy") == "direct"
    assert ctx.get_output("infra.endpoint_url") == "https://app-dev.example.internal"
    assert ctx.get_output("release.tag") == "dev-current"
    assert ctx.get_output("scan.container.findings") == "0"
    assert ctx.get_output("test.smoke.passed") == "10"

    assert set(ports.registry.tags) == {"7-abcdef1", "dev-current"}
    assert ports.registry.signed == {"7-abcdef1"}
    assert ports.version_store.versions[("app", "dev")] == "7-abcdef1"
    deployed = ports.cluster.deployments["app-dev"]["app"]
    assert deployed.image == "registry.local/app:7-abcdef1"
    assert deployed.labels == {"app": "app", "version": "7-abcdef1"}


@pytest.mark.asyncio
async def test_provision_variables(config, make_ports, make_ctx):
    provisioner = MockProvisioner()
    ports = make_ports(provisioner=provisioner)
    await run(config, ports, make_ctx("dev", feature_flags={"new_feature": True}))

    variables = provisioner.called("plan")[0].args[0]
    assert variables == {
        "application": "app",
        "environment": "dev",
        "namespace": "app-dev",
        "version": "7-abcdef1",
        "feature_new_feature": "true",
    }


@pytest.mark.asyncio
async def test_explicit_version_skips_build_scan_publish(config, make_ports, make_ctx):
    ports = make_ports()
    ctx = make_ctx("test", requested_version="41-3f9c2ab")
    outcome = await run(config, ports, ctx)

    assert outcome.succeeded
    for name in ("build", "scan", "publish"):
        assert outcome.result(name).skip_reason is SkipReason.GUARD
    assert ports.builder.called("build") == []
    assert ports.cluster.deployments["app-test"]["app"].image == "registry.local/app:41-3f9c2ab"
    # Nothing was built, so there is nothing to re-tag
    assert ports.registry.tags == {}
    assert ports.version_store.versions[("app", "test")] == "41-3f9c2ab"


@pytest.mark.asyncio
async def test_blocking_finding_fails_scan(config, make_ports, make_ctx):
    scanner = MockScanner([Finding("CVE-2024-0001", FindingSeverity.CRITICAL, "openssl")])
    ports = make_ports(scanner__container=scanner)
    outcome = await run(config, ports, make_ctx("dev"))

    scan = outcome.result("scan")
    assert scan.failed
    members = {m.name: m for m in scan.members}
    assert members["scan-dependencies"].outcome is StageOutcome.SUCCESS
    assert members["scan-container"].error.kind is StageErrorKind.THRESHOLD_BREACH
    assert "CVE-2024-0001" in members["scan-container"].error.message
    assert outcome.result("publish").skip_reason is SkipReason.UPSTREAM_FAILURE
    assert ports.registry.tags == {}


@pytest.mark.asyncio
async def test_low_findings_do_not_block(config, make_ports, make_ctx):
    scanner = MockScanner([Finding("LINT-1", FindingSeverity.LOW)])
    ctx = make_ctx("dev")
    outcome = await run(config, make_ports(scanner__dependencies=scanner), ctx)

    assert outcome.succeeded
    assert ctx.get_output("scan.dependencies.findings") == "1"


@pytest.mark.asyncio
async def test_tests_skipped_when_disabled(config, make_ports, make_ctx):
    runner = MockTestRunner()
    outcome = await run(config, make_ports(test_runner=runner), make_ctx("dev", run_tests=False))

    assert outcome.result("test").skip_reason is SkipReason.GUARD
    assert runner.called("run") == []
    assert outcome.result("release").outcome is StageOutcome.SUCCESS


@pytest.mark.asyncio
async def test_failing_suite_fails_the_run(config, make_ports, make_ctx):
    runner = MockTestRunner(failing={"integration": ["test_checkout", "test_refund"]})
    outcome = await run(config, make_ports(test_runner=runner), make_ctx("dev"))

    assert outcome.error_kind is StageErrorKind.THRESHOLD_BREACH
    assert outcome.result("release").skip_reason is SkipReason.UPSTREAM_FAILURE


@pytest.mark.asyncio
async def test_endpoint_falls_back_to_cluster(config, make_ports, make_ctx):
    runner = MockTestRunner()
    ports = make_ports(provisioner=MockProvisioner(outputs={}), test_runner=runner)
    await run(config, ports, make_ctx("dev"))

    endpoints = {call.args[1] for call in runner.called("run")}
    assert endpoints == {"http://app.app-dev.svc.cluster.local"}


@pytest.mark.asyncio
async def test_strategy_failure_is_strategy_aborted(config, make_ports, make_ctx):
    ports = make_ports(cluster=MockCluster(never_ready={"app"}))
    outcome = await run(config, ports, make_ctx("dev"))

    error = outcome.result("deploy-application").error
    assert error.kind is StageErrorKind.STRATEGY_ABORTED
    assert error.step == "waiting_rollout"
    assert "not ready within" in error.message

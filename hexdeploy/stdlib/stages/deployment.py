"""The standard deployment stage list.

``build → scan (parallel) → publish → approval → provision-infrastructure →
deploy-application → test (parallel) → release``

Build, scan and publish are skipped when an explicit version is requested
(the artifact already exists). Approval runs only where the environment
requires it, and the test stage only when tests are enabled for the run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hexdeploy.kernel.domain.deployment import FailureKind, Manifest
from hexdeploy.kernel.domain.stage import StageAction, StageSpec
from hexdeploy.kernel.exceptions import (
    ConfigurationError,
    PostSwitchCleanupFailedError,
    StageFailedError,
    StrategyAbortedError,
    ThresholdBreachError,
)
from hexdeploy.kernel.logging import get_logger
from hexdeploy.kernel.orchestration.approval import await_approval
from hexdeploy.kernel.ports.approval import ApprovalRequest
from hexdeploy.kernel.ports.artifacts import ArtifactRef
from hexdeploy.stdlib.strategies import select_strategy

if TYPE_CHECKING:
    from hexdeploy.kernel.config.models import HexDeployConfig, StrategyPolicy
    from hexdeploy.kernel.context import RunContext, StageScope
    from hexdeploy.kernel.ports import Scanner
    from hexdeploy.kernel.ports_builder import DeploymentPorts

logger = get_logger(__name__)

BUILD = "build"
SCAN = "scan"
PUBLISH = "publish"
APPROVAL = "approval"
PROVISION = "provision-infrastructure"
DEPLOY = "deploy-application"
TEST = "test"
RELEASE = "release"

ARTIFACT_NAME = "artifact.name"
ARTIFACT_DIGEST = "artifact.digest"
ARTIFACT_TAG = "artifact.tag"
DEPLOY_REVISION = "deploy.revision"
DEPLOY_STRATEGY = "deploy.strategy"
RELEASE_TAG = "release.tag"
ENDPOINT_OUTPUT = "infra.endpoint_url"

# Margin on top of the bounded waits inside approval and deployment
STAGE_TIMEOUT_MARGIN_SECONDS = 60.0


def builds_new_artifact(ctx: RunContext) -> bool:
    """Guard: build, scan and publish run only when deploying the latest build."""
    return ctx.requested_version is None


def requires_approval(ctx: RunContext) -> bool:
    return ctx.settings.requires_approval


def tests_enabled(ctx: RunContext) -> bool:
    return ctx.run_tests


def strategy_time_budget(policy: StrategyPolicy) -> float:
    """Upper bound of a strategy run: three rollout waits plus the canary window and settle."""
    return (
        3 * policy.rollout_timeout_seconds
        + policy.canary_window_seconds
        + policy.bluegreen_settle_seconds
        + STAGE_TIMEOUT_MARGIN_SECONDS
    )


class DeploymentStages:
    """Builds the standard stage list over a set of adapters.

    Parameters
    ----------
    config : HexDeployConfig
        Application, strategy policy and approval settings
    ports : DeploymentPorts
        Adapters the stages call

    Examples
    --------
    Example usage::

        stages = DeploymentStages(config, ports).build()
        outcome = await StageExecutor().execute(stages, ctx)
    """

    def __init__(self, config: HexDeployConfig, ports: DeploymentPorts) -> None:
        self.config = config
        self.ports = ports

    def build(self) -> list[StageSpec]:
        app = self.config.application
        scan_members = [
            StageSpec(
                f"{SCAN}-{name}",
                action=self._scan_action(name, self._scanner(name)),
                writes={f"scan.{name}.findings"},
            )
            for name in app.scanners
        ]
        test_members = [
            StageSpec(
                f"{TEST}-{suite}",
                action=self._test_action(suite),
                writes={f"test.{suite}.passed"},
            )
            for suite in app.test_suites
        ]

        stages = [
            StageSpec(
                BUILD,
                action=self.build_artifact,
                guard=builds_new_artifact,
                writes={ARTIFACT_NAME, ARTIFACT_DIGEST},
            ),
        ]
        if scan_members:
            stages.append(StageSpec.parallel(SCAN, scan_members, guard=builds_new_artifact))
        stages += [
            StageSpec(
                PUBLISH, action=self.publish, guard=builds_new_artifact, writes={ARTIFACT_TAG}
            ),
            StageSpec(
                APPROVAL,
                action=self.approve,
                guard=requires_approval,
                timeout=self.config.approval_max_wait_seconds + STAGE_TIMEOUT_MARGIN_SECONDS,
            ),
            StageSpec(PROVISION, action=self.provision),
            StageSpec(
                DEPLOY,
                action=self.deploy,
                timeout=strategy_time_budget(self.config.strategy),
                writes={DEPLOY_REVISION, DEPLOY_STRATEGY},
            ),
        ]
        if test_members:
            stages.append(StageSpec.parallel(TEST, test_members, guard=tests_enabled))
        stages.append(StageSpec(RELEASE, action=self.release, writes={RELEASE_TAG}))
        return stages

    def _scanner(self, name: str) -> Scanner:
        try:
            return self.ports.scanners[name]
        except KeyError:
            raise ConfigurationError("adapters", f"no adapter for scanner '{name}'") from None

    # ------------------------------------------------------------------
    # Stage actions
    # ------------------------------------------------------------------

    async def build_artifact(self, scope: StageScope) -> None:
        artifact = await self.ports.builder.abuild(self.config.application.source_ref)
        logger.info("Built {artifact}", artifact=artifact)
        scope.set_output(ARTIFACT_NAME, artifact.name)
        scope.set_output(ARTIFACT_DIGEST, artifact.digest)

    def _scan_action(self, name: str, scanner: Scanner) -> StageAction:
        async def scan(scope: StageScope) -> None:
            findings = await scanner.ascan(_artifact(scope))
            scope.set_output(f"scan.{name}.findings", str(len(findings)))
            blocking = [f for f in findings if f.severity.blocking]
            if blocking:
                rules = ", ".join(f"{f.rule} ({f.severity})" for f in blocking)
                raise ThresholdBreachError(
                    scope.stage, f"{len(blocking)} blocking finding(s): {rules}"
                )
            logger.info("Scanner {name}: {count} finding(s)", name=name, count=len(findings))

        scan.__name__ = f"scan_{name}"
        return scan

    async def publish(self, scope: StageScope) -> None:
        tag = scope.ctx.build_version
        await self.ports.registry.apush(_artifact(scope), tag)
        await self.ports.registry.asign(tag)
        scope.set_output(ARTIFACT_TAG, tag)

    async def approve(self, scope: StageScope) -> None:
        ctx = scope.ctx
        request = ApprovalRequest(
            application=ctx.application,
            environment=ctx.environment.value,
            version=ctx.deploy_version,
            release_notes=ctx.release_notes,
            run_id=ctx.run_id,
        )
        await await_approval(
            self.ports.approval_gate,
            request,
            self.config.approval_max_wait_seconds,
            stage=scope.stage,
        )

    async def provision(self, scope: StageScope) -> None:
        ctx = scope.ctx
        variables = {
            "application": ctx.application,
            "environment": ctx.environment.value,
            "namespace": ctx.settings.namespace,
            "version": ctx.deploy_version,
            **{f"feature_{name}": str(on).lower() for name, on in ctx.feature_flags.items()},
            **ctx.settings.infra_vars,
        }
        summary = await self.ports.provisioner.aplan(variables)
        logger.info("Infrastructure plan: {summary}", summary=summary)
        outputs = await self.ports.provisioner.aapply(variables)
        for key, value in sorted(outputs.items()):
            scope.set_output(f"infra.{key}", value)

    async def deploy(self, scope: StageScope) -> None:
        ctx = scope.ctx
        app = self.config.application
        manifest = Manifest(
            name=app.name,
            image=f"{app.image_repository}:{ctx.deploy_version}",
            replicas=ctx.settings.replicas,
            labels={"app": app.name, "version": ctx.deploy_version},
        )
        strategy = select_strategy(
            ctx.environment,
            self.ports.cluster,
            self.ports.prober,
            self.config.strategy,
            self.ports.observer_manager,
        )
        outcome = await strategy.apply(
            app.name, manifest, ctx.settings.namespace, ctx, service=app.service
        )
        if not outcome.succeeded:
            reason = outcome.reason
            assert reason is not None
            if reason.kind is FailureKind.POST_SWITCH_CLEANUP:
                raise PostSwitchCleanupFailedError(
                    scope.stage, f"{reason.step}: {reason.message}"
                )
            message = f"{reason.kind}: {reason.message}"
            raise StrategyAbortedError(scope.stage, reason.step, message)

        assert outcome.revision is not None
        scope.set_output(DEPLOY_REVISION, outcome.revision)
        scope.set_output(DEPLOY_STRATEGY, strategy.name)

    def _test_action(self, suite: str) -> StageAction:
        async def run_suite(scope: StageScope) -> None:
            ctx = scope.ctx
            endpoint = scope.get_output(ENDPOINT_OUTPUT)
            if endpoint is None:
                endpoint = await self.ports.cluster.aendpoint(
                    self.config.application.name, ctx.settings.namespace
                )
            report = await self.ports.test_runner.arun(suite, endpoint)
            scope.set_output(f"test.{suite}.passed", str(report.passed))
            if not report.ok:
                failures = ", ".join(report.failures) or "see test report"
                raise ThresholdBreachError(
                    scope.stage, f"{report.failed} test(s) failed in '{suite}': {failures}"
                )

        run_suite.__name__ = f"test_{suite}"
        return run_suite

    async def release(self, scope: StageScope) -> None:
        ctx = scope.ctx
        tag = f"{ctx.environment.value}-current"
        digest = scope.get_output(ARTIFACT_DIGEST)
        if digest is not None:
            await self.ports.registry.apush(_artifact(scope), tag)
        await self.ports.version_store.arecord_good_version(
            ctx.application, ctx.environment.value, ctx.deploy_version
        )
        scope.set_output(RELEASE_TAG, tag)
        logger.info(
            "Released {app} {version} as {tag}",
            app=ctx.application,
            version=ctx.deploy_version,
            tag=tag,
        )


def _artifact(scope: StageScope) -> ArtifactRef:
    name = scope.get_output(ARTIFACT_NAME)
    digest = scope.get_output(ARTIFACT_DIGEST)
    if name is None or digest is None:
        raise StageFailedError(scope.stage, "no artifact was built in this run")
    return ArtifactRef(name=name, digest=digest)


def build_deployment_stages(config: HexDeployConfig, ports: DeploymentPorts) -> list[StageSpec]:
    """Convenience wrapper around ``DeploymentStages(config, ports).build()``."""
    return DeploymentStages(config, ports).build()

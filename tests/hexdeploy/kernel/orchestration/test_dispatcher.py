"""Tests for OutcomeDispatcher planning and dispatch."""

import pytest

from hexdeploy.kernel.domain import (
    PipelineOutcome,
    PipelineStatus,
    StageError,
    StageErrorKind,
    StageOutcome,
    StageResult,
)
from hexdeploy.kernel.orchestration.dispatcher import OutcomeDispatcher
from hexdeploy.kernel.ports.notifier import Severity
from hexdeploy.stdlib.adapters.mock import (
    InMemoryVersionStore,
    MockArchive,
    MockNotifier,
    MockRollbackRequester,
)


def success_outcome(run_id: str) -> PipelineOutcome:
    return PipelineOutcome(
        run_id=run_id,
        results=[StageResult("deploy-application", StageOutcome.SUCCESS)],
        finished_at=1.0,
    )


def failed_outcome(run_id: str, kind: StageErrorKind, stage: str = "deploy-application"):
    return PipelineOutcome(
        run_id=run_id,
        results=[
            StageResult(stage, StageOutcome.FAILURE, error=StageError(kind, "it broke")),
        ],
        finished_at=1.0,
    )


@pytest.fixture
def notifier():
    return MockNotifier()


@pytest.fixture
def versions():
    return InMemoryVersionStore({("app", "staging"): "40-0000001", ("app", "dev"): "39-0000002"})


@pytest.fixture
def rollbacks():
    return MockRollbackRequester()


@pytest.fixture
def archive():
    return MockArchive()


@pytest.fixture
def dispatcher(notifier, versions, rollbacks, archive):
    return OutcomeDispatcher(notifier, versions, rollbacks, archive)


class TestPlan:
    def test_prod_success_creates_monitoring_ticket(self, dispatcher, make_ctx):
        ctx = make_ctx("prod", release_notes="Q3")
        plan = dispatcher.plan(success_outcome(ctx.run_id), ctx)

        assert plan.status is PipelineStatus.SUCCESS
        assert plan.severity is Severity.INFO
        assert plan.ticket["type"] == "monitoring"
        assert plan.ticket["release_notes"] == "Q3"
        assert plan.ticket["version"] == ctx.deploy_version
        assert not plan.request_rollback
        assert plan.actions() == ("notify:info", "ticket", "archive")

    def test_non_prod_success_has_no_ticket(self, dispatcher, make_ctx):
        ctx = make_ctx("staging")
        plan = dispatcher.plan(success_outcome(ctx.run_id), ctx)
        assert plan.ticket is None
        assert plan.actions() == ("notify:info", "archive")

    def test_non_prod_failure_requests_rollback(self, dispatcher, make_ctx):
        ctx = make_ctx("staging")
        plan = dispatcher.plan(failed_outcome(ctx.run_id, StageErrorKind.STRATEGY_ABORTED), ctx)
        assert plan.severity is Severity.ERROR
        assert plan.request_rollback
        assert plan.actions() == ("notify:error", "rollback", "archive")
        assert "deploy-application" in plan.message
        assert "strategy_aborted" in plan.message

    @pytest.mark.parametrize(
        ("env", "kind"),
        [
            ("prod", StageErrorKind.STRATEGY_ABORTED),
            ("dev", StageErrorKind.APPROVAL_DENIED),
            ("staging", StageErrorKind.POST_SWITCH_CLEANUP),
        ],
    )
    def test_no_rollback_cases(self, dispatcher, make_ctx, env, kind):
        ctx = make_ctx(env)
        plan = dispatcher.plan(failed_outcome(ctx.run_id, kind), ctx)
        assert not plan.request_rollback

    def test_post_switch_cleanup_is_critical(self, dispatcher, make_ctx):
        ctx = make_ctx("prod")
        plan = dispatcher.plan(failed_outcome(ctx.run_id, StageErrorKind.POST_SWITCH_CLEANUP), ctx)
        assert plan.severity is Severity.CRITICAL
        assert "manual cleanup required" in plan.message

    def test_plan_is_deterministic(self, dispatcher, make_ctx):
        ctx = make_ctx("dev")
        outcome = failed_outcome(ctx.run_id, StageErrorKind.TIMEOUT)
        assert dispatcher.plan(outcome, ctx) == dispatcher.plan(outcome, ctx)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_prod_success(self, dispatcher, notifier, archive, rollbacks, make_ctx):
        ctx = make_ctx("prod")
        report = await dispatcher.dispatch(success_outcome(ctx.run_id), ctx)

        assert report.ok
        assert report.ticket_id == "OPS-1"
        assert notifier.severities() == [Severity.INFO]
        assert notifier.notifications[0].channel == "#deploy-prod"
        assert rollbacks.requests == []
        assert archive.runs[ctx.run_id]["outcome"]["status"] == "success"

    @pytest.mark.asyncio
    async def test_staging_failure_rolls_back_to_last_good(
        self, dispatcher, rollbacks, archive, make_ctx
    ):
        ctx = make_ctx("staging")
        report = await dispatcher.dispatch(
            failed_outcome(ctx.run_id, StageErrorKind.STRATEGY_ABORTED), ctx
        )

        assert report.rollback_version == "40-0000001"
        assert rollbacks.requests == [("app", "staging", "40-0000001")]
        assert report.archived
        assert archive.runs[ctx.run_id]["dispatch"]["request_rollback"] is True

    @pytest.mark.asyncio
    async def test_missing_last_good_version(self, dispatcher, notifier, rollbacks, make_ctx):
        ctx = make_ctx("test")
        report = await dispatcher.dispatch(
            failed_outcome(ctx.run_id, StageErrorKind.EXTERNAL_ERROR), ctx
        )

        assert rollbacks.requests == []
        assert "no last-good version" in report.rollback_error
        assert notifier.severities() == [Severity.ERROR, Severity.CRITICAL]
        assert report.plan.error_kind is StageErrorKind.EXTERNAL_ERROR
        assert not report.ok

    @pytest.mark.asyncio
    async def test_rollback_requester_failure(self, notifier, versions, archive, make_ctx):
        failing = MockRollbackRequester(fail_on={"rollback": "rollback API unavailable"})
        dispatcher = OutcomeDispatcher(notifier, versions, failing, archive)
        ctx = make_ctx("dev")
        report = await dispatcher.dispatch(
            failed_outcome(ctx.run_id, StageErrorKind.TIMEOUT), ctx
        )

        assert "rollback API unavailable" in report.rollback_error
        assert report.archived

    @pytest.mark.asyncio
    async def test_side_effect_failures_are_isolated(self, versions, rollbacks, make_ctx):
        notifier = MockNotifier(fail_on={"notify": "slack down"})
        archive = MockArchive(fail_on={"archive": "bucket missing"})
        dispatcher = OutcomeDispatcher(notifier, versions, rollbacks, archive)
        ctx = make_ctx("prod")

        report = await dispatcher.dispatch(success_outcome(ctx.run_id), ctx)

        assert not report.notified
        assert report.ticket_id == "OPS-1"
        assert not report.archived
        assert report.errors == ["notify: slack down", "archive: bucket missing"]

    @pytest.mark.asyncio
    async def test_dispatching_twice_classifies_the_same(
        self, dispatcher, rollbacks, make_ctx
    ):
        ctx = make_ctx("staging")
        outcome = failed_outcome(ctx.run_id, StageErrorKind.THRESHOLD_BREACH)

        first = await dispatcher.dispatch(outcome, ctx)
        second = await dispatcher.dispatch(outcome, ctx)

        assert first.plan == second.plan
        assert first.plan.actions() == second.plan.actions()
        assert len(rollbacks.requests) == 2

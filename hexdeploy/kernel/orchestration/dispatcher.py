"""Outcome Dispatcher - turns a finished run into notifications, tickets and rollbacks.

The decision of what to do is a pure function of the pipeline outcome and the
run context (:meth:`OutcomeDispatcher.plan`), so dispatching the same outcome
twice always classifies the same actions. Only :meth:`OutcomeDispatcher.dispatch`
touches the outside world, and each side effect is attempted independently.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from hexdeploy.kernel.domain.environment import Environment
from hexdeploy.kernel.domain.stage import PipelineStatus, StageErrorKind
from hexdeploy.kernel.exceptions import RollbackError
from hexdeploy.kernel.logging import get_logger
from hexdeploy.kernel.ports.notifier import Severity

if TYPE_CHECKING:
    from hexdeploy.kernel.context import RunContext
    from hexdeploy.kernel.domain.stage import PipelineOutcome
    from hexdeploy.kernel.ports.artifacts import ArtifactArchive
    from hexdeploy.kernel.ports.notifier import Notifier
    from hexdeploy.kernel.ports.versions import RollbackRequester, VersionStore

logger = get_logger(__name__)

# Failure kinds that must never trigger an automatic rollback
NO_ROLLBACK_KINDS = frozenset({StageErrorKind.APPROVAL_DENIED, StageErrorKind.POST_SWITCH_CLEANUP})


class DispatchPlan(BaseModel):
    """The side effects a finished run calls for.

    Attributes
    ----------
    status : PipelineStatus
        Aggregate run status
    error_kind : StageErrorKind | None
        Kind of the first failure, None on success
    channel : str
        Notification channel of the environment
    severity : Severity
        Severity of the outcome notification
    message : str
        Outcome notification text
    ticket : dict[str, str] | None
        Fields of the monitoring ticket to create, if any
    request_rollback : bool
        Whether to request a rollback to the last-good version
    archive : bool
        Whether to archive the run's artifacts (always True)
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    application: str
    environment: Environment
    version: str
    status: PipelineStatus
    error_kind: StageErrorKind | None = None
    channel: str
    severity: Severity
    message: str
    ticket: dict[str, str] | None = None
    request_rollback: bool = False
    archive: bool = True

    def actions(self) -> tuple[str, ...]:
        """Classification of the planned actions.

        Examples
        --------
        A failed staging run: ``("notify:error", "rollback", "archive")``
        """
        planned = [f"notify:{self.severity.value}"]
        if self.ticket is not None:
            planned.append("ticket")
        if self.request_rollback:
            planned.append("rollback")
        if self.archive:
            planned.append("archive")
        return tuple(planned)


class DispatchReport(BaseModel):
    """What dispatching actually did.

    ``errors`` lists side effects that failed; ``rollback_error`` is the
    secondary error reported when an automatic rollback could not be made.
    The original run failure is never replaced by either.
    """

    plan: DispatchPlan
    notified: bool = False
    ticket_id: str | None = None
    rollback_version: str | None = None
    rollback_error: str | None = None
    archived: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and self.rollback_error is None


def _failure_message(outcome: PipelineOutcome, ctx: RunContext) -> str:
    failure = outcome.first_failure
    error = failure.root_error() if failure else None
    stage = failure.name if failure else "unknown"
    detail = error.message if error else "unknown error"
    kind = error.kind.value if error else StageErrorKind.EXTERNAL_ERROR.value
    message = (
        f"❌ Deployment of {ctx.application} {ctx.deploy_version} to {ctx.environment} "
        f"failed at stage '{stage}' ({kind}): {detail}"
    )
    if error is not None and error.kind is StageErrorKind.POST_SWITCH_CLEANUP:
        message += " | traffic is on the new revision, manual cleanup required"
    return message


class OutcomeDispatcher:
    """Dispatches a finished ``PipelineOutcome``.

    Parameters
    ----------
    notifier : Notifier
        Delivers outcome notifications and creates tickets
    version_store : VersionStore
        Source of the last-good version per environment
    rollback_requester : RollbackRequester
        Submits automatic rollback requests
    archive : ArtifactArchive
        Persists the run summary

    Examples
    --------
    Example usage::

        dispatcher = OutcomeDispatcher(notifier, versions, rollbacks, archive)
        plan = dispatcher.plan(outcome, ctx)       # pure
        report = await dispatcher.dispatch(outcome, ctx)
    """

    def __init__(
        self,
        notifier: Notifier,
        version_store: VersionStore,
        rollback_requester: RollbackRequester,
        archive: ArtifactArchive,
    ) -> None:
        self.notifier = notifier
        self.version_store = version_store
        self.rollback_requester = rollback_requester
        self.archive = archive

    def plan(self, outcome: PipelineOutcome, ctx: RunContext) -> DispatchPlan:
        """Decide the side effects for ``outcome``; no I/O."""
        common: dict[str, Any] = {
            "run_id": outcome.run_id,
            "application": ctx.application,
            "environment": ctx.environment,
            "version": ctx.deploy_version,
            "channel": ctx.settings.notify_channel,
        }

        if outcome.status is PipelineStatus.SUCCESS:
            ticket = None
            if ctx.environment.is_production:
                ticket = {
                    "type": "monitoring",
                    "title": f"Monitor {ctx.application} {ctx.deploy_version} in production",
                    "application": ctx.application,
                    "environment": ctx.environment.value,
                    "version": ctx.deploy_version,
                    "release_notes": ctx.release_notes,
                    "run_id": outcome.run_id,
                }
            return DispatchPlan(
                **common,
                status=PipelineStatus.SUCCESS,
                severity=Severity.INFO,
                message=(
                    f"✅ {ctx.application} {ctx.deploy_version} deployed to {ctx.environment} "
                    f"(run {outcome.run_id})"
                ),
                ticket=ticket,
            )

        kind = outcome.error_kind or StageErrorKind.EXTERNAL_ERROR
        severity = Severity.ERROR
        if kind is StageErrorKind.POST_SWITCH_CLEANUP:
            severity = Severity.CRITICAL
        rollback = not ctx.environment.is_production and kind not in NO_ROLLBACK_KINDS
        return DispatchPlan(
            **common,
            status=PipelineStatus.FAILURE,
            error_kind=kind,
            severity=severity,
            message=_failure_message(outcome, ctx),
            request_rollback=rollback,
        )

    async def dispatch(self, outcome: PipelineOutcome, ctx: RunContext) -> DispatchReport:
        """Carry out the plan for ``outcome``.

        Never raises for side-effect failures: they are logged and recorded
        on the returned report.
        """
        plan = self.plan(outcome, ctx)
        report = DispatchReport(plan=plan)
        logger.info(
            "Dispatching run {run_id}: {actions}",
            run_id=plan.run_id,
            actions=", ".join(plan.actions()),
        )

        try:
            await self.notifier.anotify(plan.channel, plan.severity, plan.message)
            report.notified = True
        except Exception as e:
            self._record(report, "notify", e)

        if plan.ticket is not None:
            try:
                report.ticket_id = await self.notifier.acreate_ticket(dict(plan.ticket))
            except Exception as e:
                self._record(report, "ticket", e)

        if plan.request_rollback:
            await self._rollback(plan, report)

        if plan.archive:
            try:
                await self.archive.aarchive(plan.run_id, self._archive_payload(outcome, ctx, plan))
                report.archived = True
            except Exception as e:
                self._record(report, "archive", e)

        return report

    async def _rollback(self, plan: DispatchPlan, report: DispatchReport) -> None:
        env = plan.environment.value
        try:
            version = await self.version_store.alast_good_version(plan.application, env)
            if version is None:
                raise RollbackError(env, "no last-good version recorded")
            await self.rollback_requester.arequest_rollback(plan.application, env, version)
        except Exception as e:
            error = e if isinstance(e, RollbackError) else RollbackError(env, str(e))
            logger.error("Automatic rollback not performed: {error}", error=error)
            report.rollback_error = str(error)
            try:
                await self.notifier.anotify(
                    plan.channel,
                    Severity.CRITICAL,
                    f"🚨 Automatic rollback of {plan.application} in {env} failed: {error.reason}",
                )
            except Exception as notify_error:
                self._record(report, "rollback-notify", notify_error)
            return

        logger.info(
            "Requested rollback of {app} in {env} to {version}",
            app=plan.application,
            env=env,
            version=version,
        )
        report.rollback_version = version

    @staticmethod
    def _archive_payload(
        outcome: PipelineOutcome, ctx: RunContext, plan: DispatchPlan
    ) -> dict[str, Any]:
        return {
            "application": ctx.application,
            "environment": ctx.environment.value,
            "build_version": ctx.build_version,
            "deploy_version": ctx.deploy_version,
            "source_revision": ctx.source_revision,
            "outcome": outcome.to_dict(),
            "outputs": dict(ctx.outputs),
            "dispatch": plan.model_dump(mode="json"),
        }

    @staticmethod
    def _record(report: DispatchReport, action: str, error: Exception) -> None:
        logger.error("Dispatch action '{action}' failed: {error}", action=action, error=error)
        report.errors.append(f"{action}: {error}")

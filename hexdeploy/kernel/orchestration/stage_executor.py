"""Stage Executor - walks the stage list of one deployment run.

Execution rules:

- Stages run strictly in declaration order.
- A stage whose guard returns False is recorded ``skipped``; only its
  ``always`` hooks run. A skipped group records every member skipped too, and
  each member gets its own ``always`` hooks.
- A parallel group runs its members concurrently and joins. Members run to
  completion (a failing member never cancels its siblings); the group fails if
  any member failed.
- After a failure the rest of the outer sequence is skipped (fail-fast), but
  every skipped stage still gets its ``always`` hooks, and the pipeline-level
  hooks run last.
- A stage exceeding its timeout fails with kind ``timeout``. The action is
  cancelled; deployment strategies tear down their partial rollout on
  cancellation, other side effects already issued are not undone.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from hexdeploy.kernel.domain.stage import (
    PipelineHooks,
    PipelineOutcome,
    SkipReason,
    StageError,
    StageErrorKind,
    StageOutcome,
    StageResult,
    StageSpec,
)
from hexdeploy.kernel.exceptions import StageFailedError, ValidationError
from hexdeploy.kernel.logging import get_logger
from hexdeploy.kernel.orchestration.events import (
    PipelineCompleted,
    PipelineStarted,
    StageCompleted,
    StageFailed,
    StageSkipped,
    StageStarted,
)

if TYPE_CHECKING:
    from hexdeploy.kernel.context import RunContext
    from hexdeploy.kernel.orchestration.events import Event
    from hexdeploy.kernel.ports.observer_manager import ObserverManager

logger = get_logger(__name__)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


async def invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async callable.

    Sync callables run in the default executor with a copy of the current
    context so ContextVars (the logging run id) propagate to the worker thread.
    """
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)

    ctx = contextvars.copy_context()
    result = await asyncio.get_running_loop().run_in_executor(None, ctx.run, fn, *args)
    if inspect.isawaitable(result):
        return await result
    return result


def _error_from_exception(exc: BaseException, timeout: float | None) -> StageError:
    if isinstance(exc, StageFailedError):
        try:
            kind = StageErrorKind(exc.kind)
        except ValueError:
            kind = StageErrorKind.EXTERNAL_ERROR
        return StageError(
            kind=kind,
            message=exc.reason,
            step=getattr(exc, "step", None),
            error_type=type(exc).__name__,
        )
    if isinstance(exc, TimeoutError):
        limit = f" after {timeout:g}s" if timeout else ""
        return StageError(
            kind=StageErrorKind.TIMEOUT,
            message=f"stage timed out{limit}",
            error_type=type(exc).__name__,
        )
    return StageError(
        kind=StageErrorKind.EXTERNAL_ERROR,
        message=str(exc) or type(exc).__name__,
        error_type=type(exc).__name__,
    )


class StageExecutor:
    """Executes an ordered stage list against a single ``RunContext``.

    Parameters
    ----------
    observer_manager : ObserverManager | None
        Receives stage and pipeline events (optional)
    default_stage_timeout : float | None
        Timeout applied to stages that declare none (None = unbounded)

    Examples
    --------
    Example usage::

        executor = StageExecutor(default_stage_timeout=900)
        outcome = await executor.execute(stages, ctx, hooks=PipelineHooks(always=(report,)))
        if not outcome.succeeded:
            ...
    """

    def __init__(
        self,
        observer_manager: ObserverManager | None = None,
        default_stage_timeout: float | None = None,
    ) -> None:
        self.observer_manager = observer_manager
        self.default_stage_timeout = default_stage_timeout

    async def execute(
        self,
        stages: Sequence[StageSpec],
        ctx: RunContext,
        hooks: PipelineHooks | None = None,
    ) -> PipelineOutcome:
        """Run ``stages`` in order and return the finalized outcome.

        Raises
        ------
        ValidationError
            If two top-level stages share a name
        """
        names = [s.name for s in stages]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValidationError("stages", "stage names must be unique", duplicates)

        outcome = PipelineOutcome(run_id=ctx.run_id, started_at=time.time())
        started = time.perf_counter()
        await self._notify(
            PipelineStarted(
                run_id=ctx.run_id,
                application=ctx.application,
                environment=str(ctx.environment),
                total_stages=len(stages),
            )
        )

        failed_stage: str | None = None
        for stage in stages:
            if failed_stage is not None:
                detail = f"upstream stage '{failed_stage}' failed"
                result = await self._skip(stage, ctx, SkipReason.UPSTREAM_FAILURE, detail)
            else:
                result = await self._run_stage(stage, ctx)
                if result.failed:
                    failed_stage = stage.name
            outcome.results.append(result)

        await self._run_pipeline_hooks(hooks or PipelineHooks(), ctx, outcome)
        outcome.finished_at = time.time()

        error_kind = outcome.error_kind
        await self._notify(
            PipelineCompleted(
                run_id=ctx.run_id,
                status=outcome.status.value,
                duration_ms=_elapsed_ms(started),
                error_kind=error_kind.value if error_kind else None,
            )
        )
        return outcome

    # ------------------------------------------------------------------
    # Single stage
    # ------------------------------------------------------------------

    async def _run_stage(
        self,
        stage: StageSpec,
        ctx: RunContext,
        group: str | None = None,
        inherited_timeout: float | None = None,
    ) -> StageResult:
        """Run one stage including guard and hooks. Never raises for stage errors."""
        try:
            should_run = bool(stage.guard(ctx))
        except Exception as e:
            logger.error("Guard of stage '{stage}' raised: {error}", stage=stage.name, error=e)
            result = StageResult(
                name=stage.name,
                outcome=StageOutcome.FAILURE,
                error=StageError(
                    kind=StageErrorKind.GUARD_ERROR,
                    message=f"guard raised: {e}",
                    error_type=type(e).__name__,
                ),
            )
            await self._notify(StageFailed(name=stage.name, kind="guard_error", message=str(e)))
            await self._run_hooks(stage, ctx, result)
            return result

        if not should_run:
            return await self._skip(stage, ctx, SkipReason.GUARD, "guard evaluated to False")

        await self._notify(StageStarted(name=stage.name, parallel=stage.is_parallel, group=group))
        started = time.perf_counter()

        if stage.group is not None:
            result = await self._run_group(stage, ctx)
        else:
            timeout = stage.timeout or inherited_timeout or self.default_stage_timeout
            # Parallel members may only write what they declared
            writes = stage.writes if group is None else (stage.writes or frozenset())
            result = await self._run_action(stage, ctx, timeout, writes)
            if group is None and not result.failed:
                ctx.commit(result.outputs)

        result.duration_ms = _elapsed_ms(started)

        if result.failed and result.error is not None:
            logger.warning(
                "Stage '{stage}' failed ({kind}): {message}",
                stage=stage.name,
                kind=result.error.kind.value,
                message=result.error.message,
            )
            await self._notify(
                StageFailed(
                    name=stage.name,
                    kind=result.error.kind.value,
                    message=result.error.message,
                    duration_ms=result.duration_ms,
                )
            )
        else:
            await self._notify(
                StageCompleted(
                    name=stage.name, duration_ms=result.duration_ms, outputs=dict(result.outputs)
                )
            )

        await self._run_hooks(stage, ctx, result)
        return result

    async def _run_action(
        self,
        stage: StageSpec,
        ctx: RunContext,
        timeout: float | None,
        writes: frozenset[str] | None,
    ) -> StageResult:
        scope = ctx.scope(stage.name, writes)
        action = stage.action
        assert action is not None  # guaranteed by StageSpec validation

        try:
            if timeout:
                async with asyncio.timeout(timeout):
                    await invoke(action, scope)
            else:
                await invoke(action, scope)
        except Exception as e:
            logger.opt(exception=not isinstance(e, (StageFailedError, TimeoutError))).debug(
                "Stage '{stage}' raised {error_type}", stage=stage.name, error_type=type(e).__name__
            )
            return StageResult(
                name=stage.name,
                outcome=StageOutcome.FAILURE,
                error=_error_from_exception(e, timeout),
            )

        return StageResult(name=stage.name, outcome=StageOutcome.SUCCESS, outputs=scope.written)

    # ------------------------------------------------------------------
    # Parallel groups
    # ------------------------------------------------------------------

    async def _run_group(self, stage: StageSpec, ctx: RunContext) -> StageResult:
        """Run all members concurrently; join once every member is terminal.

        Member results never raise, so ``gather`` never cancels siblings. Member
        writes are committed only after the join, so siblings never observe
        each other's outputs.
        """
        assert stage.group is not None
        members = stage.group.members
        member_results: list[StageResult] = list(
            await asyncio.gather(
                *(
                    self._run_stage(m, ctx, group=stage.name, inherited_timeout=stage.timeout)
                    for m in members
                )
            )
        )

        outputs: dict[str, str] = {}
        for member in member_results:
            if member.outcome is StageOutcome.SUCCESS:
                outputs.update(member.outputs)
        ctx.commit(outputs)

        failed = [m.name for m in member_results if m.failed]
        if failed:
            return StageResult(
                name=stage.name,
                outcome=StageOutcome.FAILURE,
                error=StageError(
                    kind=StageErrorKind.PARALLEL_MEMBER_FAILED,
                    message=f"{len(failed)} of {len(members)} members failed: {', '.join(failed)}",
                ),
                outputs=outputs,
                members=member_results,
            )
        return StageResult(
            name=stage.name, outcome=StageOutcome.SUCCESS, outputs=outputs, members=member_results
        )

    # ------------------------------------------------------------------
    # Skips and hooks
    # ------------------------------------------------------------------

    async def _skip(
        self, stage: StageSpec, ctx: RunContext, reason: SkipReason, detail: str
    ) -> StageResult:
        logger.info("Stage '{stage}' skipped: {detail}", stage=stage.name, detail=detail)
        members: list[StageResult] = []
        if stage.group is not None:
            member_detail = f"group '{stage.name}' skipped: {detail}"
            for member in stage.group.members:
                members.append(await self._skip(member, ctx, reason, member_detail))
        result = StageResult(
            name=stage.name, outcome=StageOutcome.SKIPPED, skip_reason=reason, members=members
        )
        await self._notify(StageSkipped(name=stage.name, reason=detail))
        await self._run_hooks(stage, ctx, result)
        return result

    async def _run_hooks(self, stage: StageSpec, ctx: RunContext, result: StageResult) -> None:
        """Run outcome hooks, then ``always`` hooks. Hook errors never change the outcome."""
        selected: tuple[Callable[..., Any], ...] = ()
        if result.outcome is StageOutcome.SUCCESS:
            selected = stage.hooks.on_success
        elif result.outcome is StageOutcome.FAILURE:
            selected = stage.hooks.on_failure

        for hook in (*selected, *stage.hooks.always):
            try:
                await invoke(hook, ctx, result)
            except Exception as e:
                hook_name = getattr(hook, "__name__", repr(hook))
                logger.error(
                    "Hook '{hook}' of stage '{stage}' failed: {error}",
                    hook=hook_name,
                    stage=stage.name,
                    error=e,
                )
                result.hook_errors.append(f"{hook_name}: {e}")

    async def _run_pipeline_hooks(
        self, hooks: PipelineHooks, ctx: RunContext, outcome: PipelineOutcome
    ) -> None:
        selected = hooks.on_success if outcome.succeeded else hooks.on_failure
        for hook in (*selected, *hooks.always):
            try:
                await invoke(hook, ctx, outcome)
            except Exception as e:
                hook_name = getattr(hook, "__name__", repr(hook))
                logger.error("Pipeline hook '{hook}' failed: {error}", hook=hook_name, error=e)
                outcome.hook_errors.append(f"{hook_name}: {e}")

    async def _notify(self, event: Event) -> None:
        if self.observer_manager is not None:
            await self.observer_manager.notify(event)

"""Approval gate - a bounded suspension point with an explicit denial outcome."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from hexdeploy.kernel.config.models import DEFAULT_APPROVAL_MAX_WAIT_SECONDS
from hexdeploy.kernel.exceptions import ApprovalDeniedError
from hexdeploy.kernel.logging import get_logger

if TYPE_CHECKING:
    from hexdeploy.kernel.ports.approval import ApprovalGate, ApprovalRequest

logger = get_logger(__name__)

APPROVAL_STAGE = "approval"


async def await_approval(
    gate: ApprovalGate,
    request: ApprovalRequest,
    max_wait: float = DEFAULT_APPROVAL_MAX_WAIT_SECONDS,
    stage: str = APPROVAL_STAGE,
) -> None:
    """Wait for an approver, treating silence past ``max_wait`` as a denial.

    Parameters
    ----------
    gate : ApprovalGate
        Source of the approver's decision
    request : ApprovalRequest
        What is being approved
    max_wait : float
        Maximum wait in seconds
    stage : str
        Stage name used in the raised error

    Raises
    ------
    ApprovalDeniedError
        If the approver denies, or no decision arrives within ``max_wait``
    """
    logger.info(
        "Waiting up to {max_wait:g}s for approval of {app} {version} to {env}",
        max_wait=max_wait,
        app=request.application,
        version=request.version,
        env=request.environment,
    )
    try:
        async with asyncio.timeout(max_wait):
            approved = await gate.await_decision(request)
    except TimeoutError:
        logger.warning("Approval for run {run_id} timed out", run_id=request.run_id)
        raise ApprovalDeniedError(
            stage, f"no decision within {max_wait:g}s", timed_out=True
        ) from None

    if not approved:
        logger.warning("Approval for run {run_id} denied", run_id=request.run_id)
        raise ApprovalDeniedError(stage, "denied by approver")

    logger.info("Approval for run {run_id} granted", run_id=request.run_id)

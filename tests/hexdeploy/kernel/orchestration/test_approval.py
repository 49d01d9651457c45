"""Tests for the bounded approval wait."""

import pytest

from hexdeploy.kernel.exceptions import ApprovalDeniedError
from hexdeploy.kernel.orchestration.approval import await_approval
from hexdeploy.kernel.ports.approval import ApprovalRequest
from hexdeploy.stdlib.adapters.mock import MockApprovalGate


@pytest.fixture
def request_():
    return ApprovalRequest(
        application="app",
        environment="prod",
        version="7-abcdef1",
        release_notes="Q3 release",
        run_id="run-1",
    )


@pytest.mark.asyncio
async def test_approved(request_):
    gate = MockApprovalGate(decision=True)
    await await_approval(gate, request_, max_wait=1.0)
    assert gate.requests == [request_]


@pytest.mark.asyncio
async def test_denied(request_):
    with pytest.raises(ApprovalDeniedError) as exc_info:
        await await_approval(MockApprovalGate(decision=False), request_, max_wait=1.0)
    assert exc_info.value.kind == "approval_denied"
    assert not exc_info.value.timed_out


@pytest.mark.asyncio
async def test_silence_past_max_wait_is_a_denial(request_):
    with pytest.raises(ApprovalDeniedError, match="no decision within 0.05s") as exc_info:
        await await_approval(MockApprovalGate(decision=None), request_, max_wait=0.05)
    assert exc_info.value.timed_out
    assert exc_info.value.stage == "approval"


@pytest.mark.asyncio
async def test_slow_approval_beyond_max_wait(request_):
    gate = MockApprovalGate(decision=True, delay=0.5)
    with pytest.raises(ApprovalDeniedError):
        await await_approval(gate, request_, max_wait=0.05, stage="approve-prod")

"""In-memory provisioner, test runner, notifier, version store and approval gate."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from hexdeploy.kernel.ports.approval import ApprovalGate, ApprovalRequest
from hexdeploy.kernel.ports.notifier import Notifier, Severity
from hexdeploy.kernel.ports.provisioner import InfraProvisioner
from hexdeploy.kernel.ports.testing import TestReport, TestRunner
from hexdeploy.kernel.ports.versions import RollbackRequester, VersionStore
from hexdeploy.stdlib.adapters.mock._recording import RecordedCall, Scripted


class MockProvisioner(Scripted, InfraProvisioner):
    """Provisioner returning fixed outputs.

    The default outputs contain ``endpoint_url`` derived from the
    ``namespace`` variable.
    """

    def __init__(
        self,
        outputs: dict[str, str] | None = None,
        fail_on: dict[str, BaseException | str] | None = None,
    ) -> None:
        self.outputs = outputs
        self.fail_on = dict(fail_on or {})
        self.calls: list[RecordedCall] = []

    async def aplan(self, variables: dict[str, str]) -> str:
        self._record("plan", dict(variables))
        return f"{len(variables)} variables, 0 to destroy"

    async def aapply(self, variables: dict[str, str]) -> dict[str, str]:
        self._record("apply", dict(variables))
        if self.outputs is not None:
            return dict(self.outputs)
        namespace = variables.get("namespace", "default")
        return {"endpoint_url": f"https://{namespace}.example.internal"}


class MockTestRunner(Scripted, TestRunner):
    """Test runner passing every suite unless told otherwise.

    Parameters
    ----------
    failing : dict[str, list[str]] | None
        Suite name → names of failing test cases
    """

    __test__ = False

    def __init__(
        self,
        failing: dict[str, list[str]] | None = None,
        fail_on: dict[str, BaseException | str] | None = None,
    ) -> None:
        self.failing = dict(failing or {})
        self.fail_on = dict(fail_on or {})
        self.calls: list[RecordedCall] = []

    async def arun(self, suite: str, endpoint: str) -> TestReport:
        self._record("run", suite, endpoint)
        failures = tuple(self.failing.get(suite, ()))
        return TestReport(suite=suite, passed=10, failed=len(failures), failures=failures)


@dataclass
class SentNotification:
    channel: str
    severity: Severity
    message: str


class MockNotifier(Scripted, Notifier):
    """Notifier collecting notifications and tickets in memory."""

    def __init__(self, fail_on: dict[str, BaseException | str] | None = None) -> None:
        self.fail_on = dict(fail_on or {})
        self.calls: list[RecordedCall] = []
        self.notifications: list[SentNotification] = []
        self.tickets: list[dict[str, Any]] = []

    async def anotify(self, channel: str, severity: Severity, message: str) -> None:
        self._record("notify", channel, severity)
        self.notifications.append(SentNotification(channel, severity, message))

    async def acreate_ticket(self, fields: dict[str, Any]) -> str:
        self._record("ticket", fields.get("title", ""))
        self.tickets.append(dict(fields))
        return f"OPS-{len(self.tickets)}"

    def severities(self) -> list[Severity]:
        return [n.severity for n in self.notifications]


class InMemoryVersionStore(Scripted, VersionStore):
    """Last-good versions keyed by ``(application, environment)``."""

    def __init__(
        self,
        versions: dict[tuple[str, str], str] | None = None,
        fail_on: dict[str, BaseException | str] | None = None,
    ) -> None:
        self.versions = dict(versions or {})
        self.fail_on = dict(fail_on or {})
        self.calls: list[RecordedCall] = []

    async def alast_good_version(self, application: str, environment: str) -> str | None:
        self._record("last_good", application, environment)
        return self.versions.get((application, environment))

    async def arecord_good_version(self, application: str, environment: str, version: str) -> None:
        self._record("record_good", application, environment, version)
        self.versions[(application, environment)] = version


class MockRollbackRequester(Scripted, RollbackRequester):
    """Records rollback requests as ``(application, environment, version)``."""

    def __init__(self, fail_on: dict[str, BaseException | str] | None = None) -> None:
        self.fail_on = dict(fail_on or {})
        self.calls: list[RecordedCall] = []
        self.requests: list[tuple[str, str, str]] = []

    async def arequest_rollback(self, application: str, environment: str, version: str) -> None:
        self._record("rollback", application, environment, version)
        self.requests.append((application, environment, version))


class MockApprovalGate(ApprovalGate):
    """Approval gate with a scripted decision.

    Parameters
    ----------
    decision : bool | None
        True approves, False denies, None never answers
    delay : float
        Seconds to wait before answering
    """

    def __init__(self, decision: bool | None = True, delay: float = 0.0) -> None:
        self.decision = decision
        self.delay = delay
        self.requests: list[ApprovalRequest] = []

    async def await_decision(self, request: ApprovalRequest) -> bool:
        self.requests.append(request)
        if self.decision is None:
            await asyncio.Event().wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        return bool(self.decision)


__all__ = [
    "InMemoryVersionStore",
    "MockApprovalGate",
    "MockNotifier",
    "MockProvisioner",
    "MockRollbackRequester",
    "MockTestRunner",
    "SentNotification",
]

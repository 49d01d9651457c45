"""Port interface for post-deployment test suites."""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class TestReport:
    """Result of one test suite run."""

    __test__ = False  # not a pytest test class

    suite: str
    passed: int
    failed: int = 0
    failures: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.failed == 0


@runtime_checkable
class TestRunner(Protocol):
    """Runs a named test suite against a deployed endpoint."""

    __test__ = False

    @abstractmethod
    async def arun(self, suite: str, endpoint: str) -> TestReport:
        """Run ``suite`` against ``endpoint``."""
        ...

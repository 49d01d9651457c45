"""Port interface for the manual approval gate."""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ApprovalRequest:
    """What an approver is asked to sign off."""

    application: str
    environment: str
    version: str
    release_notes: str = ""
    run_id: str = ""


@runtime_checkable
class ApprovalGate(Protocol):
    """Blocks until an approver responds.

    Implementations may wait indefinitely; the engine bounds the wait and
    treats expiry as a denial.
    """

    @abstractmethod
    async def await_decision(self, request: ApprovalRequest) -> bool:
        """Return True when approved, False when denied."""
        ...

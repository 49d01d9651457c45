"""Port interface for notifications and ticketing."""

from __future__ import annotations

from abc import abstractmethod
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable


class Severity(StrEnum):
    """Notification severity; CRITICAL is page-worthy."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@runtime_checkable
class Notifier(Protocol):
    """Delivers notifications (chat/email) and creates tickets."""

    @abstractmethod
    async def anotify(self, channel: str, severity: Severity, message: str) -> None:
        """Send ``message`` to ``channel`` at ``severity``."""
        ...

    @abstractmethod
    async def acreate_ticket(self, fields: dict[str, Any]) -> str:
        """Create a follow-up ticket and return its identifier."""
        ...

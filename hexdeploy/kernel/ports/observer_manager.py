"""Observer Manager Port - interface for event observation.

Observers are read-only: they cannot affect execution, and an observer
failure must never fail a stage.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from hexdeploy.kernel.orchestration.events.events import Event

ObserverFunc = Callable[[Event], Any]


@runtime_checkable
class ObserverManager(Protocol):
    """Port interface for event observation systems."""

    @abstractmethod
    def register(self, handler: ObserverFunc) -> str:
        """Register a sync or async handler and return its id."""
        ...

    @abstractmethod
    async def notify(self, event: Event) -> None:
        """Deliver ``event`` to every registered handler."""
        ...

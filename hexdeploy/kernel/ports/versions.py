"""Port interfaces for version bookkeeping and rollback requests."""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol, runtime_checkable


@runtime_checkable
class VersionStore(Protocol):
    """Tracks the last version confirmed good per application and environment."""

    @abstractmethod
    async def alast_good_version(self, application: str, environment: str) -> str | None:
        """Return the last-good version, or None when none is recorded."""
        ...

    @abstractmethod
    async def arecord_good_version(self, application: str, environment: str, version: str) -> None:
        """Record ``version`` as the new last-good version."""
        ...


@runtime_checkable
class RollbackRequester(Protocol):
    """Submits a rollback request to the deployment system."""

    @abstractmethod
    async def arequest_rollback(self, application: str, environment: str, version: str) -> None:
        """Request that ``application`` in ``environment`` be redeployed at ``version``."""
        ...

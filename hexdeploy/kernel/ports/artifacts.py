"""Port interfaces for artifact production: build, scan, publish, archive."""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable


class FindingSeverity(StrEnum):
    """Scanner finding severity, lowest to highest."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def blocking(self) -> bool:
        """HIGH and CRITICAL findings fail the scan stage."""
        return self in (FindingSeverity.HIGH, FindingSeverity.CRITICAL)


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """Reference to a built artifact (e.g. an image digest)."""

    name: str
    digest: str

    def __str__(self) -> str:
        return f"{self.name}@{self.digest}"


@dataclass(frozen=True, slots=True)
class Finding:
    """A single severity-tagged scanner finding."""

    rule: str
    severity: FindingSeverity
    message: str = ""


@runtime_checkable
class ArtifactBuilder(Protocol):
    """Port interface for compiling/building the deployable artifact."""

    @abstractmethod
    async def abuild(self, source_ref: str) -> ArtifactRef:
        """Build an artifact from ``source_ref``.

        Raises
        ------
        Exception
            Any builder error; the build stage fails with ``external_error``
        """
        ...


@runtime_checkable
class Scanner(Protocol):
    """Port interface for static-analysis / vulnerability scanners."""

    @abstractmethod
    async def ascan(self, artifact: ArtifactRef) -> list[Finding]:
        """Scan an artifact and return its findings (empty list if clean)."""
        ...


@runtime_checkable
class Registry(Protocol):
    """Port interface for the artifact registry."""

    @abstractmethod
    async def apush(self, artifact: ArtifactRef, tag: str) -> None:
        """Push ``artifact`` under ``tag``."""
        ...

    @abstractmethod
    async def asign(self, tag: str) -> None:
        """Sign the artifact published under ``tag``."""
        ...


@runtime_checkable
class ArtifactArchive(Protocol):
    """Port interface for archiving a run's result artifacts."""

    @abstractmethod
    async def aarchive(self, run_id: str, payload: dict[str, Any]) -> None:
        """Persist the run summary and outputs for later inspection."""
        ...

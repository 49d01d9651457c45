"""Port interface for infrastructure provisioning (e.g. Terraform)."""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol, runtime_checkable


@runtime_checkable
class InfraProvisioner(Protocol):
    """Plans and applies infrastructure; ``aapply`` returns string outputs."""

    @abstractmethod
    async def aplan(self, variables: dict[str, str]) -> str:
        """Produce a plan for ``variables`` and return a human-readable summary."""
        ...

    @abstractmethod
    async def aapply(self, variables: dict[str, str]) -> dict[str, str]:
        """Apply infrastructure and return its outputs (e.g. ``endpoint_url``)."""
        ...

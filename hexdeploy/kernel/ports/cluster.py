"""Port interface for cluster control (apply, rollout status, routing, deletion).

Strategies drive deployments exclusively through this port. None of the calls
are transactional; a failure between two calls leaves the cluster in whatever
intermediate state the completed calls produced.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from hexdeploy.kernel.domain.deployment import (
        HealthSignal,
        Manifest,
        ProbeResult,
        RolloutStatus,
    )


@runtime_checkable
class ClusterControl(Protocol):
    """Port interface for the orchestration cluster (e.g. Kubernetes)."""

    @abstractmethod
    async def aapply(self, manifest: Manifest, namespace: str) -> str:
        """Apply a manifest and return the resulting revision identifier."""
        ...

    @abstractmethod
    async def arollout_status(self, name: str, namespace: str) -> RolloutStatus:
        """Return the current rollout status of deployment ``name``."""
        ...

    @abstractmethod
    async def apatch_route(self, service: str, namespace: str, weights: dict[str, int]) -> None:
        """Set weighted routing for ``service``; weights are percentages summing to 100."""
        ...

    @abstractmethod
    async def apatch_selector(self, service: str, namespace: str, target: str) -> None:
        """Point the selector of ``service`` at deployment ``target``."""
        ...

    @abstractmethod
    async def arelabel(self, name: str, new_name: str, namespace: str) -> None:
        """Rename/re-label deployment ``name`` to ``new_name``."""
        ...

    @abstractmethod
    async def adelete(self, name: str, namespace: str) -> None:
        """Delete deployment ``name``; deleting a missing deployment is not an error."""
        ...

    @abstractmethod
    async def ahealth(self, name: str, namespace: str) -> HealthSignal:
        """Sample health / error rate for deployment ``name``."""
        ...

    @abstractmethod
    async def aendpoint(self, name: str, namespace: str) -> str:
        """Return a reachable endpoint URL for deployment ``name``."""
        ...


@runtime_checkable
class ValidationProber(Protocol):
    """Port interface for the blue-green validation probe suite."""

    @abstractmethod
    async def aprobe(self, endpoint: str) -> list[ProbeResult]:
        """Run every validation probe against ``endpoint``."""
        ...

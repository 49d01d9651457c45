"""In-memory cluster control and validation prober for testing and dry runs."""

from __future__ import annotations

from hexdeploy.kernel.domain.deployment import HealthSignal, Manifest, ProbeResult, RolloutStatus
from hexdeploy.kernel.ports.cluster import ClusterControl, ValidationProber
from hexdeploy.stdlib.adapters.mock._recording import RecordedCall, Scripted


class MockCluster(Scripted, ClusterControl):
    """In-memory ``ClusterControl``.

    Tracks deployments, weighted routes and service selectors per namespace so
    tests can assert on the resulting cluster state.

    Parameters
    ----------
    fail_on : dict[str, Exception | str] | None
        Scripted failures, e.g. ``{"delete:app-blue": "forbidden"}``
    never_ready : set[str] | None
        Deployment names whose rollout never becomes ready
    health : HealthSignal | list[HealthSignal] | None
        Health samples returned in order; the last one repeats

    Examples
    --------
    Example usage::

        cluster = MockCluster(health=[HealthSignal(), HealthSignal(error_rate=0.4)])
        revision = await cluster.aapply(Manifest("app", "registry/app:1"), "app-dev")
        assert cluster.deployments["app-dev"]["app"].image == "registry/app:1"
    """

    def __init__(
        self,
        fail_on: dict[str, BaseException | str] | None = None,
        never_ready: set[str] | None = None,
        health: HealthSignal | list[HealthSignal] | None = None,
    ) -> None:
        self.fail_on = dict(fail_on or {})
        self.never_ready = set(never_ready or ())
        if health is None:
            self._health = [HealthSignal()]
        elif isinstance(health, HealthSignal):
            self._health = [health]
        else:
            self._health = list(health)
        self.health_polls = 0
        self.calls: list[RecordedCall] = []
        self.deployments: dict[str, dict[str, Manifest]] = {}
        self.revisions: dict[str, str] = {}
        self.routes: dict[tuple[str, str], dict[str, int]] = {}
        self.selectors: dict[tuple[str, str], str] = {}
        self._revision_counter = 0

    def seed(self, manifest: Manifest, namespace: str) -> None:
        """Place an existing deployment without recording a call."""
        self.deployments.setdefault(namespace, {})[manifest.name] = manifest

    def serving(self, service: str, namespace: str) -> Manifest | None:
        """The deployment currently selected by ``service``, if any."""
        target = self.selectors.get((namespace, service), service)
        return self.deployments.get(namespace, {}).get(target)

    async def aapply(self, manifest: Manifest, namespace: str) -> str:
        self._record("apply", manifest.name, namespace)
        self._revision_counter += 1
        revision = f"{manifest.name}-r{self._revision_counter}"
        self.deployments.setdefault(namespace, {})[manifest.name] = manifest
        self.revisions[manifest.name] = revision
        return revision

    async def arollout_status(self, name: str, namespace: str) -> RolloutStatus:
        self._record("rollout_status", name, namespace)
        manifest = self.deployments.get(namespace, {}).get(name)
        if manifest is None:
            return RolloutStatus(ready_replicas=0, desired_replicas=0)
        if name in self.never_ready:
            return RolloutStatus(ready_replicas=0, desired_replicas=manifest.replicas)
        return RolloutStatus(ready_replicas=manifest.replicas, desired_replicas=manifest.replicas)

    async def apatch_route(self, service: str, namespace: str, weights: dict[str, int]) -> None:
        self._record("patch_route", service, namespace, dict(weights))
        if sum(weights.values()) != 100:
            raise ValueError(f"route weights must sum to 100, got {weights}")
        self.routes[(namespace, service)] = dict(weights)

    async def apatch_selector(self, service: str, namespace: str, target: str) -> None:
        self._record("patch_selector", service, namespace, target)
        self.selectors[(namespace, service)] = target

    async def arelabel(self, name: str, new_name: str, namespace: str) -> None:
        self._record("relabel", name, new_name, namespace)
        deployments = self.deployments.setdefault(namespace, {})
        manifest = deployments.pop(name)
        deployments[new_name] = Manifest(
            name=new_name,
            image=manifest.image,
            replicas=manifest.replicas,
            labels={**manifest.labels, "track": new_name.rsplit("-", 1)[-1]},
        )
        for key, target in self.selectors.items():
            if key[0] == namespace and target == name:
                self.selectors[key] = new_name

    async def adelete(self, name: str, namespace: str) -> None:
        self._record("delete", name, namespace)
        self.deployments.get(namespace, {}).pop(name, None)

    async def ahealth(self, name: str, namespace: str) -> HealthSignal:
        self._record("health", name, namespace)
        index = min(self.health_polls, len(self._health) - 1)
        self.health_polls += 1
        return self._health[index]

    async def aendpoint(self, name: str, namespace: str) -> str:
        self._record("endpoint", name, namespace)
        return f"http://{name}.{namespace}.svc.cluster.local"


class MockProber(ValidationProber):
    """Validation prober returning pre-configured probe results.

    Parameters
    ----------
    results : list[ProbeResult] | None
        Results of every probe run (default: one passing ``health`` probe)
    error : Exception | None
        Raised instead of returning results
    """

    def __init__(
        self, results: list[ProbeResult] | None = None, error: Exception | None = None
    ) -> None:
        self.results = list(results) if results is not None else [ProbeResult("health", True)]
        self.error = error
        self.endpoints: list[str] = []

    async def aprobe(self, endpoint: str) -> list[ProbeResult]:
        self.endpoints.append(endpoint)
        if self.error is not None:
            raise self.error
        return list(self.results)


__all__ = ["MockCluster", "MockProber"]

"""Fluent builder collecting the adapters a deployment run depends on.

Example
-------
    ```python
    ports = (
        PortsBuilder()
        .with_cluster(KubernetesCluster())
        .with_notifier(SlackNotifier())
        .with_mocks()  # in-memory adapters for everything not set
        .build()
    )
    ```
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, Self

from hexdeploy.kernel.exceptions import ConfigurationError

if TYPE_CHECKING:
    from hexdeploy.kernel.ports import (
        ApprovalGate,
        ArtifactArchive,
        ArtifactBuilder,
        ClusterControl,
        InfraProvisioner,
        Notifier,
        ObserverManager,
        Registry,
        RollbackRequester,
        Scanner,
        TestRunner,
        ValidationProber,
        VersionStore,
    )


@dataclass(slots=True)
class DeploymentPorts:
    """Adapter instances for every port of the engine.

    ``scanners`` maps scanner name to adapter; ``observer_manager`` is optional.
    """

    builder: ArtifactBuilder
    scanners: dict[str, Scanner]
    registry: Registry
    cluster: ClusterControl
    prober: ValidationProber
    provisioner: InfraProvisioner
    test_runner: TestRunner
    notifier: Notifier
    version_store: VersionStore
    rollback_requester: RollbackRequester
    archive: ArtifactArchive
    approval_gate: ApprovalGate
    observer_manager: ObserverManager | None = field(default=None)


REQUIRED_PORTS = tuple(
    f.name for f in fields(DeploymentPorts) if f.name not in ("scanners", "observer_manager")
)


class PortsBuilder:
    """Fluent builder for ``DeploymentPorts``."""

    def __init__(self) -> None:
        self._ports: dict[str, Any] = {}
        self._scanners: dict[str, Scanner] = {}

    def _add_port(self, key: str, port: Any) -> Self:
        self._ports[key] = port
        return self

    def with_port(self, key: str, port: Any) -> Self:
        """Set a port by name; ``scanner.<name>`` adds a scanner.

        Raises
        ------
        ConfigurationError
            If ``key`` names no known port
        """
        if key.startswith("scanner."):
            return self.with_scanner(key.removeprefix("scanner."), port)
        if key not in REQUIRED_PORTS and key != "observer_manager":
            known = ", ".join((*REQUIRED_PORTS, "observer_manager", "scanner.<name>"))
            raise ConfigurationError("adapters", f"unknown port '{key}' (known: {known})")
        return self._add_port(key, port)

    # Artifact production
    # -------------------

    def with_builder(self, builder: ArtifactBuilder) -> Self:
        return self._add_port("builder", builder)

    def with_scanner(self, name: str, scanner: Scanner) -> Self:
        self._scanners[name] = scanner
        return self

    def with_registry(self, registry: Registry) -> Self:
        return self._add_port("registry", registry)

    def with_archive(self, archive: ArtifactArchive) -> Self:
        return self._add_port("archive", archive)

    # Cluster & infrastructure
    # ------------------------

    def with_cluster(self, cluster: ClusterControl) -> Self:
        return self._add_port("cluster", cluster)

    def with_prober(self, prober: ValidationProber) -> Self:
        return self._add_port("prober", prober)

    def with_provisioner(self, provisioner: InfraProvisioner) -> Self:
        return self._add_port("provisioner", provisioner)

    def with_test_runner(self, test_runner: TestRunner) -> Self:
        return self._add_port("test_runner", test_runner)

    # Outcome handling
    # ----------------

    def with_notifier(self, notifier: Notifier) -> Self:
        return self._add_port("notifier", notifier)

    def with_version_store(self, version_store: VersionStore) -> Self:
        return self._add_port("version_store", version_store)

    def with_rollback_requester(self, requester: RollbackRequester) -> Self:
        return self._add_port("rollback_requester", requester)

    def with_approval_gate(self, gate: ApprovalGate) -> Self:
        return self._add_port("approval_gate", gate)

    def with_observer_manager(self, observer_manager: ObserverManager) -> Self:
        return self._add_port("observer_manager", observer_manager)

    def with_mocks(self, scanners: Iterable[str] = ("dependencies", "container")) -> Self:
        """Fill every port not set yet with its in-memory adapter."""
        from hexdeploy.stdlib.adapters.local import (
            LocalObserverManager,  # lazy: stdlib depends on kernel
        )
        from hexdeploy.stdlib.adapters.mock import (  # lazy: stdlib depends on kernel
            InMemoryVersionStore,
            MockApprovalGate,
            MockArchive,
            MockBuilder,
            MockCluster,
            MockNotifier,
            MockProber,
            MockProvisioner,
            MockRegistry,
            MockRollbackRequester,
            MockScanner,
            MockTestRunner,
        )

        defaults = {
            "builder": MockBuilder,
            "registry": MockRegistry,
            "cluster": MockCluster,
            "prober": MockProber,
            "provisioner": MockProvisioner,
            "test_runner": MockTestRunner,
            "notifier": MockNotifier,
            "version_store": InMemoryVersionStore,
            "rollback_requester": MockRollbackRequester,
            "archive": MockArchive,
            "approval_gate": MockApprovalGate,
            "observer_manager": LocalObserverManager,
        }
        for key, factory in defaults.items():
            if key not in self._ports:
                self._ports[key] = factory()
        for name in scanners:
            self._scanners.setdefault(name, MockScanner())
        return self

    def build(self) -> DeploymentPorts:
        """Create the ``DeploymentPorts``.

        Raises
        ------
        ConfigurationError
            If a required port has no adapter
        """
        missing = [key for key in REQUIRED_PORTS if key not in self._ports]
        if missing:
            raise ConfigurationError("adapters", f"no adapter for port(s): {', '.join(missing)}")
        return DeploymentPorts(scanners=dict(self._scanners), **self._ports)

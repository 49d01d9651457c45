"""In-memory adapters for every port, used by tests and ``--dry-run``."""

from .mock_artifacts import MockArchive, MockBuilder, MockRegistry, MockScanner
from .mock_cluster import MockCluster, MockProber
from .mock_operations import (
    InMemoryVersionStore,
    MockApprovalGate,
    MockNotifier,
    MockProvisioner,
    MockRollbackRequester,
    MockTestRunner,
)

__all__ = [
    "InMemoryVersionStore",
    "MockApprovalGate",
    "MockArchive",
    "MockBuilder",
    "MockCluster",
    "MockNotifier",
    "MockProber",
    "MockProvisioner",
    "MockRegistry",
    "MockRollbackRequester",
    "MockScanner",
    "MockTestRunner",
]

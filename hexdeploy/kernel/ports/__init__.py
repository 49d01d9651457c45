"""Port interfaces for the external collaborators of the deployment engine."""

from hexdeploy.kernel.ports.approval import ApprovalGate, ApprovalRequest
from hexdeploy.kernel.ports.artifacts import (
    ArtifactArchive,
    ArtifactBuilder,
    ArtifactRef,
    Finding,
    FindingSeverity,
    Registry,
    Scanner,
)
from hexdeploy.kernel.ports.cluster import ClusterControl, ValidationProber
from hexdeploy.kernel.ports.notifier import Notifier, Severity
from hexdeploy.kernel.ports.observer_manager import ObserverManager
from hexdeploy.kernel.ports.provisioner import InfraProvisioner
from hexdeploy.kernel.ports.testing import TestReport, TestRunner
from hexdeploy.kernel.ports.versions import RollbackRequester, VersionStore

__all__ = [
    "ApprovalGate",
    "ApprovalRequest",
    "ArtifactArchive",
    "ArtifactBuilder",
    "ArtifactRef",
    "ClusterControl",
    "Finding",
    "FindingSeverity",
    "InfraProvisioner",
    "Notifier",
    "ObserverManager",
    "Registry",
    "RollbackRequester",
    "Scanner",
    "Severity",
    "TestReport",
    "TestRunner",
    "ValidationProber",
    "VersionStore",
]

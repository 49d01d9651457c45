"""Tests for PortsBuilder."""

import pytest

from hexdeploy.kernel.exceptions import ConfigurationError
from hexdeploy.kernel.ports_builder import REQUIRED_PORTS, PortsBuilder
from hexdeploy.stdlib.adapters.local import LocalObserverManager
from hexdeploy.stdlib.adapters.mock import MockCluster, MockNotifier, MockScanner


def test_with_mocks_fills_every_port():
    ports = PortsBuilder().with_mocks().build()
    for key in REQUIRED_PORTS:
        assert getattr(ports, key) is not None
    assert set(ports.scanners) == {"dependencies", "container"}
    assert isinstance(ports.observer_manager, LocalObserverManager)


def test_explicit_ports_win_over_mocks():
    cluster = MockCluster()
    scanner = MockScanner()
    ports = (
        PortsBuilder()
        .with_cluster(cluster)
        .with_port("scanner.container", scanner)
        .with_mocks(scanners=["container", "licenses"])
        .build()
    )
    assert ports.cluster is cluster
    assert ports.scanners["container"] is scanner
    assert set(ports.scanners) == {"container", "licenses"}


def test_missing_ports_are_reported():
    with pytest.raises(ConfigurationError, match="builder"):
        PortsBuilder().with_notifier(MockNotifier()).build()


def test_unknown_port_key():
    with pytest.raises(ConfigurationError, match="unknown port 'llm'"):
        PortsBuilder().with_port("llm", object())

"""Shared fixtures for the hexdeploy test suite.

- fast_policy: strategy policy with millisecond-scale waits
- config: default configuration using ``fast_policy`` and a short approval wait
- make_ports: builds ``DeploymentPorts`` from in-memory adapters plus overrides
- make_ctx: builds a ``RunContext`` for a given environment
"""

from __future__ import annotations

from typing import Any

import pytest

from hexdeploy.kernel.config import ApplicationConfig, HexDeployConfig, StrategyPolicy
from hexdeploy.kernel.context import RunContext
from hexdeploy.kernel.domain import Environment
from hexdeploy.kernel.ports_builder import DeploymentPorts, PortsBuilder


@pytest.fixture
def fast_policy() -> StrategyPolicy:
    return StrategyPolicy(
        canary_traffic_percent=10,
        canary_window_seconds=0.08,
        canary_poll_interval_seconds=0.02,
        canary_max_error_rate=0.05,
        bluegreen_settle_seconds=0.0,
        rollout_timeout_seconds=0.2,
        rollout_poll_interval_seconds=0.01,
    )


@pytest.fixture
def config(fast_policy: StrategyPolicy) -> HexDeployConfig:
    return HexDeployConfig(
        application=ApplicationConfig(name="app", image_repository="registry.local/app"),
        strategy=fast_policy,
        approval_max_wait_seconds=0.2,
    )


@pytest.fixture
def make_ports(config: HexDeployConfig):
    """Factory: ``make_ports(cluster=MockCluster(...), ...)``."""

    def _make(**overrides: Any) -> DeploymentPorts:
        builder = PortsBuilder()
        for key, port in overrides.items():
            builder.with_port(key.replace("__", "."), port)
        return builder.with_mocks(config.application.scanners).build()

    return _make


@pytest.fixture
def make_ctx(config: HexDeployConfig):
    """Factory: ``make_ctx("staging", requested_version="41-abc1234")``."""

    def _make(environment: str = "dev", **kwargs: Any) -> RunContext:
        env = Environment.parse(environment)
        kwargs.setdefault("build_version", "7-abcdef1")
        kwargs.setdefault("source_revision", "abcdef1234")
        return RunContext(
            application=config.application.name,
            environment=env,
            settings=config.settings_for(env),
            **kwargs,
        )

    return _make

"""Deployment strategies and per-environment selection."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hexdeploy.kernel.domain.environment import Environment, StrategyKind, strategy_kind_for
from hexdeploy.stdlib.strategies.base import DeploymentStrategy, StrategyRun
from hexdeploy.stdlib.strategies.blue_green import BlueGreenStrategy
from hexdeploy.stdlib.strategies.canary import CanaryStrategy
from hexdeploy.stdlib.strategies.direct import DirectStrategy

if TYPE_CHECKING:
    from hexdeploy.kernel.config.models import StrategyPolicy
    from hexdeploy.kernel.ports.cluster import ClusterControl, ValidationProber
    from hexdeploy.kernel.ports.observer_manager import ObserverManager


def select_strategy(
    environment: Environment | str,
    cluster: ClusterControl,
    prober: ValidationProber,
    policy: StrategyPolicy | None = None,
    observer_manager: ObserverManager | None = None,
) -> DeploymentStrategy:
    """Pick the strategy variant for ``environment``.

    ``prod`` gets blue-green, ``staging`` gets canary, everything else direct.

    Examples
    --------
    >>> from hexdeploy.stdlib.adapters.mock import MockCluster, MockProber
    >>> select_strategy("staging", MockCluster(), MockProber()).name
    'canary'
    """
    kind = strategy_kind_for(Environment.parse(environment))
    if kind is StrategyKind.BLUE_GREEN:
        return BlueGreenStrategy(cluster, prober, policy, observer_manager)
    if kind is StrategyKind.CANARY:
        return CanaryStrategy(cluster, policy, observer_manager)
    return DirectStrategy(cluster, policy, observer_manager)


__all__ = [
    "BlueGreenStrategy",
    "CanaryStrategy",
    "DeploymentStrategy",
    "DirectStrategy",
    "StrategyRun",
    "select_strategy",
]

"""Tests for per-environment strategy selection."""

import pytest

from hexdeploy.kernel.config import StrategyPolicy
from hexdeploy.kernel.domain import Environment
from hexdeploy.kernel.exceptions import ValidationError
from hexdeploy.stdlib.adapters.mock import MockCluster, MockProber
from hexdeploy.stdlib.strategies import (
    BlueGreenStrategy,
    CanaryStrategy,
    DirectStrategy,
    select_strategy,
)


@pytest.mark.parametrize(
    ("env", "cls"),
    [
        ("dev", DirectStrategy),
        ("test", DirectStrategy),
        ("staging", CanaryStrategy),
        (Environment.PROD, BlueGreenStrategy),
    ],
)
def test_environment_picks_strategy(env, cls):
    assert type(select_strategy(env, MockCluster(), MockProber())) is cls


def test_policy_is_passed_through():
    policy = StrategyPolicy(canary_traffic_percent=25)
    strategy = select_strategy("staging", MockCluster(), MockProber(), policy)
    assert strategy.policy is policy


def test_blue_green_gets_the_prober():
    prober = MockProber()
    strategy = select_strategy("prod", MockCluster(), prober)
    assert strategy.prober is prober


def test_unknown_environment():
    with pytest.raises(ValidationError):
        select_strategy("qa", MockCluster(), MockProber())

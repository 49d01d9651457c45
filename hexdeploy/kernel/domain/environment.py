"""Target environments and the per-environment policy derived from them."""

from __future__ import annotations

from enum import StrEnum

from hexdeploy.kernel.exceptions import ValidationError


class Environment(StrEnum):
    """Named deployment environments, ordered from least to most critical."""

    DEV = "dev"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"

    @classmethod
    def parse(cls, value: str | Environment) -> Environment:
        """Parse an environment name, case-insensitively.

        Raises
        ------
        ValidationError
            If the name is not one of the four known environments
        """
        if isinstance(value, Environment):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = "|".join(e.value for e in cls)
            raise ValidationError("environment", f"must be one of {allowed}", value) from None

    @property
    def is_production(self) -> bool:
        return self is Environment.PROD


class StrategyKind(StrEnum):
    """Deployment strategy variants."""

    DIRECT = "direct"
    CANARY = "canary"
    BLUE_GREEN = "blue_green"


def strategy_kind_for(environment: Environment) -> StrategyKind:
    """Map an environment to its deployment strategy (prod→blue-green, staging→canary)."""
    if environment is Environment.PROD:
        return StrategyKind.BLUE_GREEN
    if environment is Environment.STAGING:
        return StrategyKind.CANARY
    return StrategyKind.DIRECT

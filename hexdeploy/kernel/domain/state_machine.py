"""Declarative state machines for deployment strategies.

Each strategy owns a private ``StateMachine`` built from a
``StateMachineConfig``; every step transition is validated and recorded.

Example::

    config = StateMachineConfig(
        name="direct",
        states={"submitting", "waiting_rollout", "succeeded", "failed"},
        initial_state="submitting",
        transitions={
            "submitting": {"waiting_rollout", "failed"},
            "waiting_rollout": {"succeeded", "failed"},
        },
        terminal_states={"succeeded", "failed"},
    )
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from hexdeploy.kernel.exceptions import InvalidTransitionError, ValidationError


@dataclass(slots=True)
class StateMachineConfig:
    """Defines the allowed states and transitions for a strategy."""

    name: str
    states: set[str]
    initial_state: str
    transitions: dict[str, set[str]]
    terminal_states: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValidationError(
                "initial_state",
                f"not in states: {self.states}",
                self.initial_state,
            )
        for from_state, to_states in self.transitions.items():
            if from_state not in self.states:
                raise ValidationError(
                    "transitions",
                    f"source {from_state!r} not in states: {self.states}",
                    from_state,
                )
            invalid = to_states - self.states
            if invalid:
                raise ValidationError(
                    "transitions",
                    f"targets {invalid} not in states: {self.states}",
                    invalid,
                )
        unknown_terminal = self.terminal_states - self.states
        if unknown_terminal:
            raise ValidationError("terminal_states", "not in states", unknown_terminal)

    def is_valid_transition(self, from_state: str, to_state: str) -> bool:
        """Check if a transition is allowed by this config."""
        allowed = self.transitions.get(from_state, set())
        return to_state in allowed


@dataclass(slots=True)
class StateTransition:
    """Record of a single state change."""

    machine: str
    from_state: str | None
    to_state: str
    timestamp: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)


class StateMachine:
    """A running instance of a ``StateMachineConfig`` with audit history."""

    def __init__(self, config: StateMachineConfig) -> None:
        self._config = config
        self._state = config.initial_state
        self._history: list[StateTransition] = [
            StateTransition(machine=config.name, from_state=None, to_state=config.initial_state)
        ]

    @property
    def state(self) -> str:
        return self._state

    @property
    def history(self) -> tuple[StateTransition, ...]:
        return tuple(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in self._config.terminal_states

    def transition(self, to_state: str, reason: str | None = None) -> None:
        """Move to ``to_state``.

        Raises
        ------
        InvalidTransitionError
            If the transition is not allowed from the current state
        """
        if not self._config.is_valid_transition(self._state, to_state):
            msg = f"{self._config.name}: cannot transition from {self._state!r} to {to_state!r}"
            raise InvalidTransitionError(msg)
        metadata: dict[str, Any] = {}
        if reason:
            metadata["reason"] = reason
        self._history.append(
            StateTransition(
                machine=self._config.name,
                from_state=self._state,
                to_state=to_state,
                metadata=metadata,
            )
        )
        self._state = to_state

    def visited(self, state: str) -> bool:
        return any(t.to_state == state for t in self._history)

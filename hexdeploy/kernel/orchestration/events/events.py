"""Simple event data classes for the hexdeploy event system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class Event:
    """Base class for all events - provides timestamp."""

    timestamp: datetime = field(default_factory=datetime.now, init=False)

    def log_message(self) -> str:
        """Get a formatted log message for this event."""
        return f"{self.__class__.__name__} at {self.timestamp.isoformat()}"


# Stage events
@dataclass(slots=True)
class StageStarted(Event):
    """A stage (or parallel member) has started."""

    name: str
    parallel: bool = False
    group: str | None = None

    def log_message(self) -> str:
        where = f" in group '{self.group}'" if self.group else ""
        kind = "parallel stage" if self.parallel else "stage"
        return f"🚀 {kind.capitalize()} '{self.name}' started{where}"


@dataclass(slots=True)
class StageCompleted(Event):
    """A stage finished successfully."""

    name: str
    duration_ms: float
    outputs: dict[str, str] = field(default_factory=dict)

    def log_message(self) -> str:
        return f"✅ Stage '{self.name}' completed in {self.duration_ms / 1000:.2f}s"


@dataclass(slots=True)
class StageFailed(Event):
    """A stage failed."""

    name: str
    kind: str
    message: str
    duration_ms: float = 0.0

    def log_message(self) -> str:
        return f"❌ Stage '{self.name}' failed ({self.kind}): {self.message}"


@dataclass(slots=True)
class StageSkipped(Event):
    """A stage was not executed (guard false or an upstream failure)."""

    name: str
    reason: str

    def log_message(self) -> str:
        return f"⏭️ Stage '{self.name}' skipped: {self.reason}"


# Strategy events
@dataclass(slots=True)
class StrategyTransitioned(Event):
    """A deployment strategy moved between states."""

    strategy: str
    from_state: str | None
    to_state: str

    def log_message(self) -> str:
        return f"🔀 {self.strategy}: {self.from_state} → {self.to_state}"


# Pipeline events
@dataclass(slots=True)
class PipelineStarted(Event):
    """Pipeline execution has started."""

    run_id: str
    application: str
    environment: str
    total_stages: int

    def log_message(self) -> str:
        return (
            f"🎬 Deployment of '{self.application}' to {self.environment} started "
            f"({self.total_stages} stages, run {self.run_id})"
        )


@dataclass(slots=True)
class PipelineCompleted(Event):
    """Pipeline has reached its terminal state."""

    run_id: str
    status: str
    duration_ms: float
    error_kind: str | None = None

    def log_message(self) -> str:
        if self.status == "success":
            return f"🎉 Run {self.run_id} succeeded in {self.duration_ms / 1000:.2f}s"
        return (
            f"🛑 Run {self.run_id} failed after {self.duration_ms / 1000:.2f}s "
            f"({self.error_kind or 'unknown'})"
        )

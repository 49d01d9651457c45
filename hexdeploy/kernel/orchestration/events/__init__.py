"""Pipeline, stage and strategy events."""

from hexdeploy.kernel.orchestration.events.events import (
    Event,
    PipelineCompleted,
    PipelineStarted,
    StageCompleted,
    StageFailed,
    StageSkipped,
    StageStarted,
    StrategyTransitioned,
)

__all__ = [
    "Event",
    "PipelineCompleted",
    "PipelineStarted",
    "StageCompleted",
    "StageFailed",
    "StageSkipped",
    "StageStarted",
    "StrategyTransitioned",
]

"""Run context for pipeline execution."""

from hexdeploy.kernel.context.run_context import RunContext, StageScope

__all__ = ["RunContext", "StageScope"]

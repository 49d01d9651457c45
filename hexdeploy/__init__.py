"""hexdeploy - Deployment Orchestration Engine.

Sequences build, scan, publish, approval, provisioning, deployment, test and
release stages for a versioned artifact, picks a deployment strategy per
environment (direct, canary, blue-green) and requests automatic rollback on
failure.
"""

# Version is defined in pyproject.toml and read dynamically
try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("hexdeploy")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for source checkouts

from hexdeploy.kernel.config import HexDeployConfig, load_config
from hexdeploy.kernel.context import RunContext
from hexdeploy.kernel.domain import Environment, PipelineOutcome, StageSpec
from hexdeploy.kernel.exceptions import HexDeployError
from hexdeploy.kernel.orchestration.dispatcher import OutcomeDispatcher
from hexdeploy.kernel.orchestration.stage_executor import StageExecutor
from hexdeploy.kernel.pipeline_runner import DeploymentPipelineRunner, RunResult
from hexdeploy.kernel.ports_builder import DeploymentPorts, PortsBuilder
from hexdeploy.kernel.resolver import DeploymentRequest

__all__ = [
    "DeploymentPipelineRunner",
    "DeploymentPorts",
    "DeploymentRequest",
    "Environment",
    "HexDeployConfig",
    "HexDeployError",
    "OutcomeDispatcher",
    "PipelineOutcome",
    "PortsBuilder",
    "RunContext",
    "RunResult",
    "StageExecutor",
    "StageSpec",
    "__version__",
    "load_config",
]

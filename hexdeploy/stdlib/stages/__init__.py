"""Standard deployment stages."""

from hexdeploy.stdlib.stages.deployment import DeploymentStages, build_deployment_stages

__all__ = ["DeploymentStages", "build_deployment_stages"]

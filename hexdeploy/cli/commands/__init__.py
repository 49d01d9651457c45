"""CLI command modules."""

from . import config_cmd, deploy_cmd, plan_cmd

__all__ = ["config_cmd", "deploy_cmd", "plan_cmd"]

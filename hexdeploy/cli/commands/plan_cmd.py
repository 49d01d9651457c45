"""Plan command for hexdeploy CLI - shows guard decisions without running anything."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from hexdeploy.kernel.config import load_config
from hexdeploy.kernel.domain.environment import strategy_kind_for
from hexdeploy.kernel.exceptions import HexDeployError
from hexdeploy.kernel.pipeline_runner import DeploymentPipelineRunner
from hexdeploy.kernel.resolver import DeploymentRequest, resolve_ports

console = Console()


def plan(
    env: Annotated[
        str,
        typer.Option("--env", "-e", help="Target environment: dev|test|staging|prod"),
    ],
    revision: Annotated[
        str,
        typer.Option("--revision", "-r", help="Source commit", envvar="HEXDEPLOY_REVISION"),
    ] = "0000000",
    version: Annotated[
        str | None,
        typer.Option("--version", help="Deploy an existing version instead of building"),
    ] = None,
    run_tests: Annotated[
        bool,
        typer.Option("--run-tests/--skip-tests", help="Run the post-deploy test suites"),
    ] = True,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to a kind: Config YAML or TOML file"),
    ] = None,
) -> None:
    """Show which stages a deployment would run and which strategy it would use.

    Examples
    --------
    hexdeploy plan --env prod
    hexdeploy plan --env staging --version 41-3f9c2ab --skip-tests
    """
    try:
        config = load_config(config_path)
        request = DeploymentRequest.create(
            environment=env, source_revision=revision, version=version, run_tests=run_tests
        )
        runner = DeploymentPipelineRunner(config, resolve_ports(config, dry_run=True))
        ctx, planned = runner.plan(request)
    except HexDeployError as e:
        console.print(f"[red]✗ Error:[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(
        title=f"Plan: {ctx.application} {ctx.version_label} → {ctx.environment}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Stage", style="white")
    table.add_column("Runs")
    table.add_column("Members", style="dim")

    for stage in planned:
        table.add_row(
            stage.name,
            "[green]yes[/green]" if stage.runs else "[dim]skipped (guard)[/dim]",
            ", ".join(stage.members),
        )

    console.print()
    console.print(table)
    console.print(f"\nStrategy: [bold]{strategy_kind_for(ctx.environment)}[/bold]")
    console.print(f"Namespace: {ctx.settings.namespace}  Replicas: {ctx.settings.replicas}")

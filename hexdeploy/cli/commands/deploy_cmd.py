"""Deploy command for hexdeploy CLI."""

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table

from hexdeploy.kernel.config import load_config
from hexdeploy.kernel.domain.stage import StageErrorKind, StageOutcome
from hexdeploy.kernel.exceptions import HexDeployError, PipelineBusyError
from hexdeploy.kernel.pipeline_runner import DeploymentPipelineRunner
from hexdeploy.kernel.resolver import FEATURE_FLAG, DeploymentRequest, resolve_ports

if TYPE_CHECKING:
    from hexdeploy.kernel.domain.stage import StageResult
    from hexdeploy.kernel.pipeline_runner import RunResult

console = Console()

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_APPROVAL_DENIED = 3
EXIT_BUSY = 4

# Compresses strategy waits so a dry run over in-memory adapters finishes quickly
DRY_RUN_TIME_SCALE = 0.001

# Run lock files live here unless the config or --state-dir says otherwise
DEFAULT_STATE_DIR = ".hexdeploy"

_OUTCOME_STYLE = {
    StageOutcome.SUCCESS: "[green]✓ success[/green]",
    StageOutcome.FAILURE: "[red]✗ failure[/red]",
    StageOutcome.SKIPPED: "[dim]- skipped[/dim]",
}


def exit_code_for(result: "RunResult") -> int:
    """Process exit code for a finished run."""
    if result.succeeded:
        return EXIT_SUCCESS
    if result.error_kind is StageErrorKind.APPROVAL_DENIED:
        return EXIT_APPROVAL_DENIED
    return EXIT_FAILURE


def deploy(
    env: Annotated[
        str,
        typer.Option("--env", "-e", help="Target environment: dev|test|staging|prod"),
    ],
    revision: Annotated[
        str,
        typer.Option(
            "--revision",
            "-r",
            help="Source commit the build is made from",
            envvar=["HEXDEPLOY_REVISION", "GIT_COMMIT"],
        ),
    ],
    version: Annotated[
        str | None,
        typer.Option("--version", help="Deploy an existing version instead of building"),
    ] = None,
    run_tests: Annotated[
        bool,
        typer.Option("--run-tests/--skip-tests", help="Run the post-deploy test suites"),
    ] = True,
    enable_feature: Annotated[
        bool,
        typer.Option(
            "--enable-feature/--disable-feature", help=f"Set the '{FEATURE_FLAG}' feature flag"
        ),
    ] = False,
    notes: Annotated[
        str,
        typer.Option("--notes", help="Release notes attached to approval and tickets"),
    ] = "",
    build_number: Annotated[
        int,
        typer.Option("--build-number", help="CI build counter", envvar="BUILD_NUMBER", min=0),
    ] = 0,
    application: Annotated[
        str | None,
        typer.Option("--app", help="Application name (defaults to the configured one)"),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to a kind: Config YAML or TOML file"),
    ] = None,
    state_dir: Annotated[
        Path | None,
        typer.Option(
            "--state-dir",
            help="Directory of the run lock files shared by concurrent invocations "
            f"(default: config state_dir, then {DEFAULT_STATE_DIR})",
            envvar="HEXDEPLOY_STATE_DIR",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Run against in-memory adapters with compressed waits"),
    ] = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the run outcome as JSON"),
    ] = False,
) -> None:
    """Run the deployment pipeline.

    Exit codes: 0 success, 1 failure, 3 approval denied or timed out,
    4 another run for the application is in flight.

    Examples
    --------
    hexdeploy deploy --env dev --revision 3f9c2ab71d
    hexdeploy deploy --env prod --revision 3f9c2ab71d --notes "Q3 release"
    hexdeploy deploy --env staging --revision 3f9c2ab71d --version 41-3f9c2ab --skip-tests
    """
    try:
        config = load_config(config_path)
        config.state_dir = str(state_dir or config.state_dir or DEFAULT_STATE_DIR)
        if dry_run:
            config.strategy = config.strategy.scaled(DRY_RUN_TIME_SCALE)
        ports = resolve_ports(config, dry_run=dry_run)
        request = DeploymentRequest.create(
            environment=env,
            source_revision=revision,
            build_number=build_number,
            version=version,
            application=application,
            run_tests=run_tests,
            feature_flags={FEATURE_FLAG: enable_feature},
            release_notes=notes,
        )
        runner = DeploymentPipelineRunner(config, ports)
        result = asyncio.run(runner.run(request))
    except PipelineBusyError as e:
        console.print(f"[yellow]⏳ {e}[/yellow]")
        raise typer.Exit(EXIT_BUSY) from e
    except HexDeployError as e:
        console.print(f"[red]✗ Error:[/red] {e}")
        raise typer.Exit(EXIT_FAILURE) from e

    if as_json:
        console.print_json(
            data={
                "application": result.ctx.application,
                "environment": result.ctx.environment.value,
                "version": result.ctx.deploy_version,
                "outcome": result.outcome.to_dict(),
                "dispatch": result.dispatch.model_dump(mode="json"),
            }
        )
    else:
        _print_result(result)

    raise typer.Exit(exit_code_for(result))


def _print_result(result: "RunResult") -> None:
    ctx = result.ctx
    table = Table(
        title=f"{ctx.application} {ctx.version_label} → {ctx.environment}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Stage", style="white")
    table.add_column("Outcome")
    table.add_column("Duration", justify="right", style="dim")
    table.add_column("Detail", style="dim")

    for stage in result.outcome.results:
        _add_row(table, stage)
        for member in stage.members:
            _add_row(table, member, indent="  ")

    console.print()
    console.print(table)

    report = result.dispatch
    console.print(f"\n[bold]Dispatch:[/bold] {', '.join(report.plan.actions())}")
    if report.ticket_id:
        console.print(f"  Ticket: [cyan]{report.ticket_id}[/cyan]")
    if report.rollback_version:
        console.print(f"  Rollback requested to [cyan]{report.rollback_version}[/cyan]")
    if report.rollback_error:
        console.print(f"  [red]Rollback failed:[/red] {report.rollback_error}")
    for error in report.errors:
        console.print(f"  [yellow]⚠[/yellow] {error}")

    if result.succeeded:
        console.print(f"\n[green]✓ Deployed {ctx.deploy_version} to {ctx.environment}[/green]")
    else:
        console.print(f"\n[red]✗ {report.plan.message}[/red]")


def _add_row(table: Table, stage: "StageResult", indent: str = "") -> None:
    detail = ""
    if stage.error is not None:
        detail = f"{stage.error.kind}: {stage.error.message}"
    elif stage.skip_reason is not None:
        detail = str(stage.skip_reason)
    table.add_row(
        f"{indent}{stage.name}",
        _OUTCOME_STYLE[stage.outcome],
        f"{stage.duration_ms:.0f} ms",
        detail,
    )

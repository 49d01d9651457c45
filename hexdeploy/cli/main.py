"""hexdeploy CLI - Main entrypoint."""

import typer
from rich.console import Console

from hexdeploy.cli.commands import config_cmd, deploy_cmd, plan_cmd
from hexdeploy.kernel.logging import configure_logging

app = typer.Typer(
    name="hexdeploy",
    help="hexdeploy - deployment orchestration: stages, strategies and rollback.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=False,
)

console = Console()

app.command("deploy", help="Run the deployment pipeline for one environment")(deploy_cmd.deploy)
app.command("plan", help="Show which stages would run, without running them")(plan_cmd.plan)
app.add_typer(config_cmd.app, name="config", help="Configuration inspection")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@app.callback(invoke_without_command=True)
def callback(
    ctx: typer.Context,
    *,
    log_level: str = typer.Option(
        "INFO", "--log-level", help="Log level: debug|info|warning|error|critical"
    ),
    log_format: str = typer.Option(
        "rich", "--log-format", help="Log format: console|json|structured|rich"
    ),
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
) -> None:
    """hexdeploy - build, scan, approve, deploy, test and release.

    Global flags are parsed here and stored on `ctx.obj` for subcommands.
    """
    if ctx.obj is None:
        ctx.obj = {}

    level = log_level.upper()
    if level == "WARN":
        level = "WARNING"
    if level not in LOG_LEVELS:
        console.print(f"[red]Error: unknown log level '{log_level}'[/red]")
        raise typer.Exit(2)
    if log_format not in ("console", "json", "structured", "rich"):
        console.print(f"[red]Error: unknown log format '{log_format}'[/red]")
        raise typer.Exit(2)

    configure_logging(
        level=level,  # type: ignore[arg-type]
        format=log_format,  # type: ignore[arg-type]
        force_reconfigure=True,
    )
    ctx.obj.update({"log_level": level, "log_format": log_format})

    if version:
        from hexdeploy import __version__

        console.print(f"[bold blue]hexdeploy[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(2)


def main() -> None:
    """Main CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()

"""Configuration inspection commands."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml
from rich.console import Console
from rich.syntax import Syntax

from hexdeploy.kernel.config import load_config
from hexdeploy.kernel.exceptions import HexDeployError

app = typer.Typer(help="Configuration inspection commands", no_args_is_help=True)
console = Console()


@app.command("show")
def show_config(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to a kind: Config YAML or TOML file"),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print as JSON instead of YAML"),
    ] = False,
) -> None:
    """Show the resolved configuration, defaults and env overrides included."""
    try:
        config = load_config(config_path)
    except HexDeployError as e:
        console.print(f"[red]✗ Error:[/red] {e}")
        raise typer.Exit(1) from e

    data = config_to_dict(config)
    if as_json:
        console.print_json(data=data)
        return
    console.print(Syntax(yaml.safe_dump(data, sort_keys=False), "yaml"))


def config_to_dict(config: Any) -> dict[str, Any]:
    """Plain-data view of a config (enum keys and tuples become strings and lists)."""
    return json.loads(json.dumps(asdict(config), default=str))

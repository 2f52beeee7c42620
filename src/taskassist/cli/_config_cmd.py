"""taskassist config — inspect and initialise the configuration file."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

console = Console()


@click.group("config")
def config_group() -> None:
    """Configuration commands."""


@config_group.command("show")
@click.option("--config", "config_file", default=None, help="Path to config.toml")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def config_show(config_file: str | None, as_json: bool) -> None:
    """Print the effective configuration. Secrets are masked."""
    from taskassist.core.config import load_config
    from taskassist.core.exceptions import ConfigError, ConfigNotFoundError

    try:
        config = load_config(config_file)
    except ConfigNotFoundError as exc:
        console.print(f"[red]Not configured.[/red] {exc}")
        raise SystemExit(1) from None
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        raise SystemExit(1) from exc

    # SecretStr serialises as "**********" in json mode
    data = config.model_dump(mode="json")
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    console.print(f"[bold]Config file:[/bold] {config.config_path}")
    for section, values in data.items():
        header = escape(f"[{section}]")
        console.print(f"\n[bold cyan]{header}[/bold cyan]")
        for key, value in values.items():
            console.print(escape(f"  {key} = {value!r}"))


@config_group.command("init")
@click.option("--config", "config_file", default=None, help="Path to write config.toml")
@click.option("--endpoint", required=True, help="Base URL of the code generation service")
@click.option("--api-key", default="", help="API key sent as a bearer token")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file")
def config_init(config_file: str | None, endpoint: str, api_key: str, force: bool) -> None:
    """Write a starter configuration file."""
    from taskassist.core.config import TaskAssistConfig, _config_file_path, save_config
    from taskassist.core.exceptions import ConfigError

    path = Path(config_file) if config_file else _config_file_path()
    if path.exists() and not force:
        console.print(f"[yellow]Config already exists:[/yellow] {path} (use --force)")
        raise SystemExit(1)

    remote: dict[str, str] = {"endpoint": endpoint}
    if api_key:
        remote["api_key"] = api_key

    try:
        TaskAssistConfig.model_validate({"remote": remote})
    except ValueError as exc:
        console.print(f"[red]Invalid value:[/red] {exc}")
        raise SystemExit(1) from exc

    try:
        written = save_config({"remote": remote}, path)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        raise SystemExit(1) from exc
    console.print(f"[green]Config written:[/green] {written}")

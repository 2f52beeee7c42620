"""
taskassist CLI entry point.

Commands:
  taskassist generate WORKSPACE MESSAGE  — upload a workspace and ask for code changes
  taskassist config show                 — print the effective configuration
  taskassist config init                 — write a starter configuration file
  taskassist version                     — show version
"""

from __future__ import annotations

import click
from rich.console import Console

from taskassist import __version__

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="taskassist %(version)s")
@click.option(
    "--log-level", default=None, hidden=True, help="Log level, overrides [logging] level."
)
@click.option("--log-json", is_flag=True, default=False, hidden=True, help="Emit JSON log lines.")
def cli(log_level: str | None, log_json: bool) -> None:
    """taskassist — conversational code generation against a remote agent."""
    from taskassist.core.config import LoggingConfig
    from taskassist.core.logging import configure_from_config

    # Commands that load a config file reconfigure from its [logging] section.
    configure_from_config(LoggingConfig(), level=log_level, json_output=log_json or None)


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
def version() -> None:
    """Show the taskassist version."""
    console.print(f"taskassist {__version__}")


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------

from taskassist.cli._generate import generate_cmd  # noqa: E402

cli.add_command(generate_cmd)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------

from taskassist.cli._config_cmd import config_group  # noqa: E402

cli.add_command(config_group)

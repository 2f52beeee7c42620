"""taskassist generate — one round of code generation against a local workspace."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from taskassist.clients.base import RemoteAgentClient
from taskassist.session.models import CodeGenerationResult, Interaction
from taskassist.session.session import Session

console = Console()


@click.command("generate")
@click.argument("workspace", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("message")
@click.option("--task", default="", help="Overall task description (defaults to MESSAGE).")
@click.option("--config", "config_file", default=None, help="Path to config.toml")
@click.option(
    "--apply", "apply_changes", is_flag=True, default=False, help="Write the changes to WORKSPACE."
)
def generate_cmd(
    workspace: Path,
    message: str,
    task: str,
    config_file: str | None,
    apply_changes: bool,
) -> None:
    """Upload WORKSPACE and ask the code generation service to act on MESSAGE.

    \b
    Examples:
      taskassist generate . "Add a /health endpoint"
      taskassist generate src "Use FastAPI" --task "Add a /health endpoint" --apply
    """
    from taskassist.clients.http import HttpRemoteAgentClient
    from taskassist.core.config import load_config
    from taskassist.core.exceptions import ConfigError, ConfigNotFoundError, TaskAssistError
    from taskassist.core.logging import configure_from_config
    from taskassist.workspace.packager import ZipWorkspacePackager

    try:
        config = load_config(config_file)
    except ConfigNotFoundError:
        console.print("[red]Not configured.[/red] Run [cyan]taskassist config init[/cyan] first.")
        raise SystemExit(1) from None
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        raise SystemExit(1) from exc

    flags = click.get_current_context().find_root().params
    configure_from_config(
        config.logging, level=flags.get("log_level"), json_output=flags.get("log_json") or None
    )

    if not config.remote.endpoint:
        console.print(
            "[red]No endpoint configured.[/red]\n"
            "Set one with:\n"
            "  [cyan]taskassist config init --endpoint https://...[/cyan]\n"
            "  [cyan]TASKASSIST_ENDPOINT=https://...[/cyan]"
        )
        raise SystemExit(1)

    api_key = config.remote.api_key.get_secret_value() if config.remote.api_key else ""
    client = HttpRemoteAgentClient(
        config.remote.endpoint, api_key, timeout=config.remote.timeout_seconds
    )
    packager = ZipWorkspacePackager(workspace, max_size_bytes=config.codegen.max_project_size_bytes)
    session = Session(
        "cli",
        client,
        packager,
        retry_limit=config.codegen.retry_limit,
        poll_interval_s=config.codegen.poll_interval_seconds,
        poll_timeout_s=config.codegen.poll_timeout_seconds,
    )

    console.print(f"[bold]taskassist[/bold] — {workspace}")
    try:
        interaction = asyncio.run(
            _run(session, client, task or message, message, workspace if apply_changes else None)
        )
    except KeyboardInterrupt:
        console.print("\n[dim]Cancelled.[/dim]")
        raise SystemExit(130) from None
    except TaskAssistError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc

    if not interaction.interaction_succeeded:
        raise SystemExit(1)


async def _run(
    session: Session,
    client: RemoteAgentClient,
    task: str,
    message: str,
    apply_to: Path | None,
) -> Interaction:
    try:
        await session.preloader(task)
        interaction = await session.generate(message)
        _print_interaction(interaction)

        result = session.latest_result
        if interaction.interaction_succeeded and result is not None:
            _print_change_set(result)
            if apply_to is not None:
                _apply(session, result, apply_to)
        return interaction
    finally:
        await session.close()
        await client.close()


def _print_interaction(interaction: Interaction) -> None:
    if interaction.interaction_succeeded:
        console.print(escape(interaction.content or "") or "[dim]Submitted.[/dim]")
        return
    console.print(f"[red]{interaction.failure}:[/red] {escape(interaction.content or '')}")


def _print_change_set(result: CodeGenerationResult) -> None:
    if not result.new_files and not result.deleted_files:
        return

    table = Table(title="Proposed changes")
    table.add_column("Change", style="bold")
    table.add_column("Path")
    table.add_column("Lines", justify="right")

    for new_file in result.new_files:
        lines = len(new_file.file_content.splitlines())
        table.add_row("[green]write[/green]", escape(new_file.zip_file_path), str(lines))
    for deleted in result.deleted_files:
        table.add_row("[red]delete[/red]", escape(deleted.zip_file_path), "")

    console.print(table)
    for ref in result.references:
        console.print(
            f"[dim]Reference:[/dim] {ref.repository or '?'} "
            f"({ref.license_name or 'unknown license'}) {ref.url or ''}"
        )


def _apply(session: Session, result: CodeGenerationResult, root: Path) -> None:
    from taskassist.workspace.apply import apply_change_set

    applied = apply_change_set(root, result)
    for path in applied:
        session.record_review(path, accepted=True)
    console.print(f"[green]Applied {len(applied)} change(s) to {root}[/green]")

"""
CLI entry point for ado_contrib_sync.

Provides the command-line interface for replaying Azure DevOps commits
into a local contributions repository.
"""

import asyncio
import logging
from pathlib import Path

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .azure_client import AzureDevOpsClient
from .config import (
    SavedConfig,
    config_path_for,
    contributions_path_for,
    load_saved_config,
    parse_emails,
)
from .exceptions import RemoteError, ReplayError
from .git_ops import ReplayRepository
from .syncer import DEFAULT_LOOKBACK_DAYS, ContributionSyncer

console = Console()
logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Route log records through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def create_client(organization: str, token: str) -> AzureDevOpsClient:
    """Build the API client for a run."""
    return AzureDevOpsClient(organization, token)


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise click.BadParameter("Value cannot be empty")
    return value


def _not_blank_option(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    """Option callback: leave an omitted value alone, reject a blank one."""
    if value is None:
        return None
    return _not_blank(value)


async def run_sync(
    organization: str,
    token: str,
    emails: list[str],
    contributions_root: Path | None,
    lookback_days: int | None,
    save: bool,
) -> int:
    """Run a sync and return the process exit code."""
    async with create_client(organization, token) as client:
        console.print("[dim]Testing connection to Azure DevOps...[/dim]")
        try:
            await client.list_projects()
        except (RemoteError, httpx.HTTPError) as e:
            console.print(f"[red]Failed to connect to Azure DevOps: {e}[/red]")
            return 1
        console.print("[green]Successfully connected to Azure DevOps[/green]")

        if save:
            SavedConfig(organization=organization, token=token, emails=emails).save(
                config_path_for(organization)
            )
            logger.debug("Saved config for %s", organization)

        console.print(f"[green]Searching for commits by: {', '.join(emails)}[/green]")

        store = ReplayRepository(contributions_path_for(organization, contributions_root))
        syncer = ContributionSyncer(client, store, emails, lookback_days=lookback_days)

        try:
            await syncer.sync()
        except ReplayError as e:
            console.print(f"[red]Failed to prepare git repository: {e}[/red]")
            return 1
        except (RemoteError, httpx.HTTPError) as e:
            console.print(f"[red]Failed to fetch projects: {e}[/red]")
            return 1

    console.print("\n[bold green]Contribution sync completed.[/bold green]")
    console.print(f"[blue]Your contributions have been synced to: {store.path}[/blue]")
    return 0


@click.group()
@click.version_option(package_name="ado-contrib-sync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """Azure DevOps contribution sync - replay your commits into a local repo."""
    configure_logging(verbose)


@cli.command()
@click.option(
    "--organization",
    "-o",
    callback=_not_blank_option,
    help="Azure DevOps organization name (prompted if omitted)",
)
@click.option(
    "--token",
    "-t",
    envvar="AZURE_DEVOPS_PAT",
    help="Personal access token (or set AZURE_DEVOPS_PAT env var)",
)
@click.option(
    "--email",
    "-e",
    "emails",
    multiple=True,
    help="Author email to search for (repeatable, or comma-separated)",
)
@click.option(
    "--contributions-dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Root directory for contribution repos (defaults to ./contributions)",
)
@click.option(
    "--lookback-days",
    type=click.IntRange(min=1),
    default=None,
    help=f"Also ignore commits older than this many days (e.g. {DEFAULT_LOOKBACK_DAYS})",
)
@click.option(
    "--save/--no-save",
    default=True,
    show_default=True,
    help="Save organization, token and emails for the next run",
)
def sync(
    organization: str | None,
    token: str | None,
    emails: tuple[str, ...],
    contributions_dir: Path | None,
    lookback_days: int | None,
    save: bool,
):
    """Fetch commits from Azure DevOps and replay them locally."""
    console.print("\n[bold blue]Azure DevOps Contribution Sync[/bold blue]\n")

    if organization is None:
        organization = click.prompt("Enter your Azure DevOps organization name", value_proc=_not_blank)

    saved = load_saved_config(organization)
    if saved:
        console.print(f"[dim]Loaded saved config for {organization}[/dim]")

    if not token and saved:
        token = saved.token
    if not token:
        token = click.prompt(
            "Enter your Azure DevOps Personal Access Token (PAT)",
            hide_input=True,
            value_proc=_not_blank,
        )

    email_list = parse_emails(emails)
    if not email_list and saved:
        email_list = saved.emails
    while not email_list:
        entered = click.prompt(
            "Enter email address(es) to search for (comma-separated for multiple)"
        )
        email_list = parse_emails([entered])

    exit_code = asyncio.run(
        run_sync(
            organization=organization,
            token=token,
            emails=email_list,
            contributions_root=contributions_dir,
            lookback_days=lookback_days,
            save=save,
        )
    )
    if exit_code:
        raise SystemExit(exit_code)


@cli.command()
@click.option(
    "--organization",
    "-o",
    required=True,
    callback=_not_blank_option,
    help="Azure DevOps organization name",
)
@click.option(
    "--contributions-dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Root directory for contribution repos (defaults to ./contributions)",
)
def status(organization: str, contributions_dir: Path | None):
    """Show the state of an organization's contributions repository."""
    store = ReplayRepository(contributions_path_for(organization, contributions_dir))
    saved = load_saved_config(organization)

    table = Table(title=f"Contribution Sync: {organization}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Repository", str(store.path))
    if store.is_initialized():
        last = store.last_replayed_date()
        table.add_row("Replayed commits", str(store.commit_count()))
        table.add_row("Last replayed", last.isoformat() if last else "Never")
    else:
        table.add_row("Replayed commits", "[yellow]not initialized[/yellow]")

    if saved:
        table.add_row("Saved emails", ", ".join(saved.emails) or "-")
    else:
        table.add_row("Saved config", "[dim]none[/dim]")

    console.print(table)


if __name__ == "__main__":
    cli()

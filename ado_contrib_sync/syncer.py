"""
Main syncer logic for replaying Azure DevOps activity.

This module discovers commits by the configured authors across every
project and repository of an organization, orders them by date and
replays them into the local contributions repository. Failures for a
single repository or a single commit are reported and skipped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import httpx
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from .azure_client import AzureDevOpsClient, CommitRecord
from .exceptions import RemoteError, ReplayError
from .git_ops import ReplayRepository

logger = logging.getLogger(__name__)
console = Console()

# The alternate lookback used by earlier versions of the tool
DEFAULT_LOOKBACK_DAYS = 366


@dataclass(frozen=True)
class DiscoveredCommit:
    """A remote commit tagged with where it was found."""

    commit: CommitRecord
    project: str
    repository: str

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.commit.commit_id, self.project, self.repository)

    def replay_message(self) -> str:
        """Commit message for the synthetic commit."""
        return (
            f"fake commit (original: {self.commit.commit_id[:8]} "
            f"from {self.project}/{self.repository})"
        )

    def replay_content(self) -> str:
        """Sentinel file body for the synthetic commit."""
        c = self.commit
        return (
            f"Commit made on {c.author_date.isoformat()}\n"
            f"Original commit: {c.commit_id}\n"
            f"Project: {self.project}\n"
            f"Repository: {self.repository}\n"
            f"Author: {c.author_name} <{c.author_email}>\n"
            f"Message: {c.message}"
        )


@dataclass
class SyncResult:
    """Result of a sync run."""

    discovered: int = 0
    replayed: int = 0
    failed_fetches: int = 0
    failed_replays: int = 0
    cutoff: datetime | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def resolve_cutoff(
    last_replayed: datetime | None,
    lookback_days: int | None = None,
    now: datetime | None = None,
) -> datetime | None:
    """
    Decide the lower bound for fetching and replaying commits.

    Without a lookback window the replay marker alone is the cutoff. With
    one, the later of the marker and ``now - lookback_days`` wins.
    """
    if lookback_days is None:
        return last_replayed

    now = now or datetime.now(timezone.utc)
    window_start = now - timedelta(days=lookback_days)
    if last_replayed is None:
        return window_start
    return max(last_replayed, window_start)


def sort_commits(commits: list[DiscoveredCommit]) -> list[DiscoveredCommit]:
    """Order commits oldest first; equal dates keep discovery order."""
    return sorted(commits, key=lambda d: d.commit.author_date)


class ContributionSyncer:
    """Replays one organization's commits into a contributions repository."""

    def __init__(
        self,
        client: AzureDevOpsClient,
        store: ReplayRepository,
        emails: list[str],
        lookback_days: int | None = None,
    ):
        self.client = client
        self.store = store
        self.emails = emails
        self.lookback_days = lookback_days

    def get_cutoff(self) -> datetime | None:
        """Get the cutoff from the store's history and the lookback policy."""
        last_replayed = self.store.last_replayed_date()
        if last_replayed:
            console.print(
                f"[yellow]Last replayed commit: {last_replayed.isoformat()}[/yellow]"
            )
            console.print("[yellow]Only processing commits after this date.[/yellow]")
        return resolve_cutoff(last_replayed, self.lookback_days)

    async def discover(
        self, cutoff: datetime | None, result: SyncResult
    ) -> list[DiscoveredCommit]:
        """
        Collect commits by every email across all projects and repositories.

        RemoteError from listing projects propagates. Failures listing one
        project's repositories or one repository's commits are recorded in
        ``result`` and skipped.
        """
        projects = await self.client.list_projects()
        console.print(f"[dim]Found {len(projects)} projects[/dim]")

        seen: set[tuple[str, str, str]] = set()
        discovered: list[DiscoveredCommit] = []

        for project in projects:
            try:
                repositories = await self.client.list_repositories(project.id)
            except (RemoteError, httpx.HTTPError) as e:
                error_msg = f"Failed to fetch repositories for project {project.name}: {e}"
                logger.error(error_msg)
                result.errors.append(error_msg)
                result.failed_fetches += 1
                continue

            for repository in repositories:
                for email in self.emails:
                    try:
                        commits = await self.client.list_commits(
                            project.id, repository.id, email, since=cutoff
                        )
                    except (RemoteError, httpx.HTTPError) as e:
                        error_msg = (
                            f"Error fetching commits for {email} in "
                            f"{project.name}/{repository.name}: {e}"
                        )
                        logger.error(error_msg)
                        result.errors.append(error_msg)
                        result.failed_fetches += 1
                        continue

                    for commit in commits:
                        # fromDate is inclusive on the server side
                        if cutoff is not None and commit.author_date <= cutoff:
                            continue
                        found = DiscoveredCommit(commit, project.name, repository.name)
                        if found.key in seen:
                            continue
                        seen.add(found.key)
                        discovered.append(found)

                    if commits:
                        logger.info(
                            "Found %d commits by %s in %s/%s",
                            len(commits),
                            email,
                            project.name,
                            repository.name,
                        )

        return sort_commits(discovered)

    def replay_all(self, commits: list[DiscoveredCommit], result: SyncResult) -> None:
        """Replay commits in order, skipping any that fail."""
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Replaying commits...", total=len(commits))

            for index, found in enumerate(commits, start=1):
                progress.update(
                    task, description=f"Replaying commits ({index}/{len(commits)})"
                )
                try:
                    self.store.replay(
                        found.commit.author_date,
                        found.replay_message(),
                        found.replay_content(),
                    )
                    result.replayed += 1
                except ReplayError as e:
                    error_msg = f"Error processing commit {found.commit.commit_id}: {e}"
                    logger.error(error_msg)
                    result.errors.append(error_msg)
                    result.failed_replays += 1

                progress.advance(task)

    async def sync(self) -> SyncResult:
        """
        Run one full sync.

        Raises:
            ReplayError: if the contributions repository cannot be prepared
            RemoteError: if the project list cannot be fetched
        """
        self.store.ensure_initialized()

        result = SyncResult()
        result.cutoff = self.get_cutoff()

        commits = await self.discover(result.cutoff, result)
        result.discovered = len(commits)

        console.print(
            f"\n[blue]Found a total of {len(commits)} commits across all repositories[/blue]"
        )
        if not commits:
            console.print("[yellow]No new commits found for the specified email addresses.[/yellow]")
            return result

        self.replay_all(commits, result)
        self._print_summary(result)
        return result

    def _print_summary(self, result: SyncResult) -> None:
        """Print sync summary."""
        console.print("\n[bold]Sync Summary:[/bold]")
        console.print(f"  Discovered: {result.discovered}")
        console.print(f"  [green]✓ Replayed: {result.replayed}[/green]")

        if result.failed_fetches:
            console.print(f"  [yellow]Failed fetches: {result.failed_fetches}[/yellow]")
        if result.failed_replays:
            console.print(f"  [red]Failed replays: {result.failed_replays}[/red]")

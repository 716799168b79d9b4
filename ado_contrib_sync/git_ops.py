"""
Git operations for the contributions repository.

Provides a wrapper around GitPython that replays commits into a local
repository with their original dates, using a single sentinel file whose
history records every synthetic contribution.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .exceptions import ReplayError

logger = logging.getLogger(__name__)

SENTINEL_FILE = "foo.txt"


def _git_output(error: GitCommandError) -> str:
    """Extract git's diagnostic output from a failed command."""
    output = error.stderr or error.stdout or ""
    if isinstance(output, bytes):
        output = output.decode(errors="replace")
    return output.strip()


def format_git_date(date: datetime) -> str:
    """Format a datetime for git's --date option (naive values are UTC)."""
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return date.strftime("%Y-%m-%dT%H:%M:%S%z")


class ReplayRepository:
    """Local git repository that synthetic commits are replayed into."""

    def __init__(self, path: Path, sentinel: str = SENTINEL_FILE):
        self.path = Path(path).resolve()
        self.sentinel = sentinel
        self._repo: Repo | None = None

    @property
    def sentinel_path(self) -> Path:
        return self.path / self.sentinel

    @property
    def repo(self) -> Repo:
        """Open the repository lazily."""
        if self._repo is None:
            try:
                self._repo = Repo(self.path)
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                raise ReplayError(f"Not a valid git repository: {self.path}") from e
        return self._repo

    def is_initialized(self) -> bool:
        return (self.path / ".git").exists()

    def ensure_initialized(self) -> None:
        """Create the directory and run git init unless a repository exists."""
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ReplayError(f"Failed to create {self.path}", str(e)) from e

        if self.is_initialized():
            return

        try:
            self._repo = Repo.init(self.path)
        except GitCommandError as e:
            raise ReplayError("Failed to initialize git repository", _git_output(e)) from e
        logger.info("Initialized contributions repository at %s", self.path)

    def last_replayed_date(self) -> datetime | None:
        """
        Get the date of the most recent commit touching the sentinel file.

        Returns None if the file is missing, was never committed, or the
        history cannot be read.
        """
        if not self.sentinel_path.exists():
            return None

        try:
            output = self.repo.git.log("-1", "--format=%aI", "--", self.sentinel)
        except (GitCommandError, ReplayError) as e:
            logger.debug("No replay history for %s: %s", self.sentinel, e)
            return None

        output = output.strip()
        if not output:
            return None

        try:
            return datetime.fromisoformat(output)
        except ValueError:
            logger.warning("Unparseable commit date in history: %r", output)
            return None

    def commit_count(self) -> int:
        """Count commits reachable from HEAD (0 for an empty repository)."""
        try:
            return int(self.repo.git.rev_list("--count", "HEAD"))
        except (GitCommandError, ReplayError):
            return 0

    def replay(self, date: datetime, message: str, content: str) -> str:
        """
        Overwrite the sentinel file and commit it dated at ``date``.

        Both author and committer dates are set so the history reflects the
        original activity date rather than the time of replay.

        Returns:
            The new commit hash
        """
        self.sentinel_path.write_text(content)

        try:
            self.repo.git.add(".")
        except GitCommandError as e:
            raise ReplayError("Failed to add files to git", _git_output(e)) from e

        git_date = format_git_date(date)
        try:
            self.repo.git.commit(
                "--quiet",
                "--date",
                git_date,
                "-m",
                message,
                env={"GIT_COMMITTER_DATE": git_date},
            )
        except GitCommandError as e:
            raise ReplayError("Failed to commit changes", _git_output(e)) from e

        return self.repo.head.commit.hexsha

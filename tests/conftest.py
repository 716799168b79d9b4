"""Pytest configuration and fixtures for ado_contrib_sync tests."""

import json
import tempfile
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from ado_contrib_sync.azure_client import AzureDevOpsClient
from ado_contrib_sync.git_ops import ReplayRepository


@pytest.fixture(autouse=True)
def git_identity(monkeypatch: pytest.MonkeyPatch):
    """Give git a committer identity regardless of the host's config."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_dir: Path):
    """An initialized contributions repository."""
    replay_store = ReplayRepository(temp_dir / "contributions" / "my-org")
    replay_store.ensure_initialized()
    yield replay_store


def commit_json(commit_id: str, date: str, email: str = "user@example.com") -> dict:
    """Build a GitCommitRef payload as returned by the commits endpoint."""
    return {
        "commitId": commit_id,
        "author": {"name": "Some User", "email": email, "date": date},
        "comment": f"Change {commit_id}",
    }


class FakeAzureDevOps:
    """
    In-memory stand-in for the Azure DevOps REST API.

    ``projects`` maps project name to a list of repository names;
    ``commits`` maps repository name to GitCommitRef payloads. Commit
    listings honour $top/$skip, author and fromDate, and advertise further
    pages with a Link header.
    """

    def __init__(
        self,
        projects: dict[str, list[str]],
        commits: dict[str, list[dict]],
        failing_repos: set[str] | None = None,
    ):
        self.projects = projects
        self.commits = commits
        self.failing_repos = failing_repos or set()
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")
        params = request.url.params

        # /{org}/_apis/projects
        if parts[1:] == ["_apis", "projects"]:
            value = [{"id": f"p-{name}", "name": name} for name in self.projects]
            return httpx.Response(200, json={"count": len(value), "value": value})

        project = parts[1].removeprefix("p-")

        # /{org}/{project}/_apis/git/repositories
        if parts[2:] == ["_apis", "git", "repositories"]:
            value = [{"id": f"r-{name}", "name": name} for name in self.projects[project]]
            return httpx.Response(200, json={"count": len(value), "value": value})

        # /{org}/{project}/_apis/git/repositories/{repo}/commits
        if parts[2:4] == ["_apis", "git"] and parts[-1] == "commits":
            repo = parts[5].removeprefix("r-")
            if repo in self.failing_repos:
                return httpx.Response(500, text="internal failure")

            author = params.get("searchCriteria.author")
            matching = [c for c in self.commits.get(repo, []) if c["author"]["email"] == author]
            from_date = params.get("searchCriteria.fromDate")
            if from_date:
                matching = [c for c in matching if c["author"]["date"] >= from_date[:19]]

            top = int(params["searchCriteria.$top"])
            skip = int(params["searchCriteria.$skip"])
            page = matching[skip : skip + top]
            headers = {}
            if skip + top < len(matching):
                headers["link"] = f'<{request.url}>; rel="next"'
            return httpx.Response(
                200, json={"count": len(page), "value": page}, headers=headers
            )

        return httpx.Response(404, text="not found")


@pytest.fixture
def make_client() -> Callable[..., AzureDevOpsClient]:
    """Factory for a client wired to a fake API."""

    def _make(
        fake: FakeAzureDevOps, page_size: int = 100, token: str = "secret-pat"
    ) -> AzureDevOpsClient:
        return AzureDevOpsClient(
            "my-org",
            token,
            transport=httpx.MockTransport(fake.handler),
            page_size=page_size,
        )

    return _make


@pytest.fixture
def saved_config_file(temp_dir: Path):
    """Write a saved config for my-org under temp_dir."""
    path = temp_dir / ".ado-contrib-sync" / "my-org.json"
    path.parent.mkdir(parents=True)
    path.write_text(
        json.dumps(
            {"organization": "my-org", "token": "saved-pat", "emails": ["user@example.com"]}
        )
    )
    yield path

"""
Azure DevOps REST client.

Read-only access to the three endpoints the sync needs: projects,
repositories in a project, and commits by author in a repository.
Commit listings are paginated and collected transparently.
"""

import base64
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

from .exceptions import RemoteError

logger = logging.getLogger(__name__)

API_VERSION = "7.0"
BASE_URL = "https://dev.azure.com"
PAGE_SIZE = 100


@dataclass(frozen=True)
class Project:
    """An Azure DevOps project."""

    id: str
    name: str


@dataclass(frozen=True)
class Repository:
    """A git repository inside a project."""

    id: str
    name: str


@dataclass(frozen=True)
class CommitRecord:
    """A commit as reported by the Azure DevOps commits endpoint."""

    commit_id: str
    author_name: str
    author_email: str
    author_date: datetime
    message: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "CommitRecord":
        """Create a CommitRecord from a GitCommitRef JSON object."""
        author = data.get("author") or {}
        return cls(
            commit_id=data["commitId"],
            author_name=author.get("name", ""),
            author_email=author.get("email", ""),
            author_date=parse_api_date(author["date"]),
            message=data.get("comment", ""),
        )


@dataclass
class Page:
    """One page of a paginated listing."""

    records: list[Any]
    next_cursor: int | None = None


def parse_api_date(value: str) -> datetime:
    """Parse an ISO-8601 timestamp from the API into an aware datetime."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def basic_auth_header(token: str) -> str:
    """Build the Basic auth header value for a PAT (empty username)."""
    encoded = base64.b64encode(f":{token}".encode()).decode("ascii")
    return f"Basic {encoded}"


def has_next_page(response: httpx.Response) -> bool:
    """Check the Link header for a rel="next" relation."""
    return "next" in response.links


def _build_all(
    items: Any, build: Callable[[dict[str, Any]], Any], response: httpx.Response
) -> list[Any]:
    """Map a response's value array through build, raising RemoteError on a bad shape."""
    try:
        return [build(item) for item in items]
    except (KeyError, TypeError, ValueError) as e:
        raise RemoteError(
            response.status_code, f"Unexpected response shape ({e!r}): {response.text}"
        ) from e


async def collect_pages(fetch_page: Callable[[int], Awaitable[Page]]) -> list[Any]:
    """
    Follow a paginated listing until it runs out and return all records.

    Starts at cursor 0 and keeps calling fetch_page with the cursor of the
    previous page. Stops when a page has no next cursor, when a page comes
    back empty, or when the cursor stops advancing.
    """
    records: list[Any] = []
    cursor: int | None = 0
    while cursor is not None:
        page = await fetch_page(cursor)
        if not page.records:
            break
        records.extend(page.records)
        if page.next_cursor is not None and page.next_cursor <= cursor:
            logger.warning("Pagination cursor did not advance (%s), stopping", cursor)
            break
        cursor = page.next_cursor
    return records


class AzureDevOpsClient:
    """Async client for one Azure DevOps organization."""

    def __init__(
        self,
        organization: str,
        token: str,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        page_size: int = PAGE_SIZE,
    ):
        """Initialize the client. An injected http_client is not closed by us."""
        self.organization = organization
        self.base_url = f"{BASE_URL}/{organization}"
        self.page_size = page_size
        self._headers = {
            "Authorization": basic_auth_header(token),
            "Content-Type": "application/json",
        }
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(transport=transport)

    async def __aenter__(self) -> "AzureDevOpsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def _get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> tuple[dict[str, Any], httpx.Response]:
        """
        Issue an authenticated GET and return the decoded JSON document.

        Raises RemoteError on a non-2xx status, on 203 (the sign-in page
        served for a rejected PAT) and on a body that is not a JSON object.
        """
        query = {"api-version": API_VERSION}
        if params:
            query.update(params)

        url = f"{self.base_url}/{path}"
        logger.debug("GET %s %s", url, query)
        response = await self._client.get(url, params=query, headers=self._headers)

        if not response.is_success or response.status_code == 203:
            raise RemoteError(response.status_code, response.text)
        try:
            document = response.json()
        except ValueError as e:
            raise RemoteError(response.status_code, response.text) from e
        if not isinstance(document, dict):
            raise RemoteError(response.status_code, response.text)
        return document, response

    async def list_projects(self) -> list[Project]:
        """List all projects in the organization."""
        document, response = await self._get("_apis/projects")
        return _build_all(
            document.get("value"), lambda p: Project(id=p["id"], name=p["name"]), response
        )

    async def list_repositories(self, project_id: str) -> list[Repository]:
        """List git repositories in a project."""
        document, response = await self._get(f"{project_id}/_apis/git/repositories")
        return _build_all(
            document.get("value"), lambda r: Repository(id=r["id"], name=r["name"]), response
        )

    async def fetch_commit_page(
        self,
        project_id: str,
        repository_id: str,
        author_email: str,
        since: datetime | None,
        skip: int,
    ) -> Page:
        """Fetch one page of commits by an author, starting at offset skip."""
        params: dict[str, Any] = {
            "searchCriteria.author": author_email,
            "searchCriteria.$top": self.page_size,
            "searchCriteria.$skip": skip,
        }
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            params["searchCriteria.fromDate"] = since.astimezone(timezone.utc).isoformat()

        document, response = await self._get(
            f"{project_id}/_apis/git/repositories/{repository_id}/commits",
            params,
        )
        records = _build_all(document.get("value", []), CommitRecord.from_api, response)

        next_cursor = None
        if records and has_next_page(response):
            next_cursor = skip + len(records)
        return Page(records=records, next_cursor=next_cursor)

    async def list_commits(
        self,
        project_id: str,
        repository_id: str,
        author_email: str,
        since: datetime | None = None,
    ) -> list[CommitRecord]:
        """List all commits by an author in a repository, following every page."""

        async def fetch_page(skip: int) -> Page:
            return await self.fetch_commit_page(
                project_id, repository_id, author_email, since, skip
            )

        return await collect_pages(fetch_page)

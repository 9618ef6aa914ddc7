"""GitHub REST API client with pagination and retries.

Provides the per-repository endpoints the collectors need, following Link
headers for pagination and stopping early once an item limit is reached.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, cast

from gh_project_summary.github.http import (
    GitHubClient,
    GitHubHTTPError,
    GitHubResponse,
    NotFoundError,
)

if TYPE_CHECKING:
    from gh_project_summary.github.backoff import RetryPolicy

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100
LINK_PATTERN = re.compile(r'<([^>]+)>;\s*rel="([^"]+)"')


def parse_link_header(link_header: str | None) -> dict[str, str]:
    """Parse a Link header into a ``{rel: url}`` mapping.

    Args:
        link_header: Link header value from response.

    Returns:
        Dict mapping rel type to URL (e.g., {"next": "url", "last": "url"}).
    """
    if not link_header:
        return {}

    links = {}
    for part in link_header.split(","):
        match = LINK_PATTERN.match(part.strip())
        if match:
            url, rel = match.groups()
            links[rel] = url
    return links


def _check_response(response: GitHubResponse, path: str) -> GitHubResponse:
    if response.status_code == 404:
        msg = f"Not found: {path}"
        raise NotFoundError(msg, status_code=404, url=response.url)
    if not response.is_success:
        message = ""
        if isinstance(response.data, dict):
            message = response.data.get("message", "")
        msg = f"GET {path} failed with status {response.status_code}"
        if message:
            msg = f"{msg}: {message}"
        raise GitHubHTTPError(msg, status_code=response.status_code, url=response.url)
    return response


class RestClient:
    """GitHub REST API client.

    Args:
        http_client: Transport for requests.
        retry: Retry policy applied to every request except ``/rate_limit``.
            Without one, each request is attempted once.
    """

    def __init__(
        self,
        http_client: GitHubClient,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._http = http_client
        self._retry = retry

    @property
    def requests_made(self) -> int:
        """Requests issued through the underlying transport."""
        return self._http.requests_made

    def use_retry_policy(self, retry: RetryPolicy) -> None:
        """Attach a retry policy after construction.

        The budget service needs this client before the policy can exist.
        """
        self._retry = retry

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> GitHubResponse:
        async def fetch() -> GitHubResponse:
            response = await self._http.get(path, params=params)
            return _check_response(response, path)

        if self._retry is None:
            return await fetch()
        return await self._retry.call(fetch, description=f"GET {path}")

    async def _paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield pages of items following Link headers.

        Args:
            path: API endpoint path.
            params: Query parameters for the first page.
            limit: Stop once this many items were yielded. None for no limit.

        Yields:
            Lists of items, the last one truncated to honor ``limit``.

        Raises:
            NotFoundError: On 404.
            GitHubHTTPError: On any other unsuccessful response.
        """
        if limit is not None and limit <= 0:
            return

        current_path = path
        first_params = dict(params or {})
        first_params["per_page"] = MAX_PER_PAGE if limit is None else min(MAX_PER_PAGE, limit)
        current_params: dict[str, Any] | None = first_params

        yielded = 0
        page_num = 1
        while True:
            response = await self._get(current_path, current_params)
            data = response.data
            if not isinstance(data, list):
                data = [data] if data else []

            if limit is not None and yielded + len(data) >= limit:
                yield data[: limit - yielded]
                return

            yielded += len(data)
            yield data

            links = parse_link_header(response.headers.get("link"))
            if "next" not in links or not data:
                return

            # The next link is absolute and already carries the query string
            current_path = links["next"]
            current_params = None
            page_num += 1
            logger.debug("Following pagination to page %d of %s", page_num, path)

    async def _collect(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        async for page in self._paginate(path, params, limit):
            items.extend(page)
        return items

    async def get_rate_limit(self) -> dict[str, Any]:
        """Get the current rate limit status.

        Not retried and not counted against the core budget by GitHub.

        Returns:
            The ``/rate_limit`` payload.

        Raises:
            GitHubHTTPError: If the request fails.
        """
        response = _check_response(await self._http.get("/rate_limit"), "/rate_limit")
        if not isinstance(response.data, dict):
            msg = "Unexpected /rate_limit payload"
            raise GitHubHTTPError(msg, status_code=response.status_code)
        return cast("dict[str, Any]", response.data)

    async def get_repo(self, owner: str, repo: str) -> dict[str, Any]:
        """Get single repository details.

        Raises:
            NotFoundError: If the repository does not exist or is not visible.
        """
        response = await self._get(f"/repos/{owner}/{repo}")
        if not isinstance(response.data, dict):
            msg = f"Unexpected payload for repository {owner}/{repo}"
            raise GitHubHTTPError(msg, status_code=response.status_code)
        return cast("dict[str, Any]", response.data)

    async def list_issues(
        self,
        owner: str,
        repo: str,
        since: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """List issues (and, as GitHub does, pull requests) of a repository.

        Args:
            owner: Repository owner.
            repo: Repository name.
            since: ISO 8601 timestamp; only items updated after it.
            limit: Maximum number of items.
        """
        params: dict[str, Any] = {"state": "all", "sort": "created", "direction": "desc"}
        if since:
            params["since"] = since
        logger.debug("Fetching issues for %s/%s (since=%s)", owner, repo, since or "none")
        return await self._collect(f"/repos/{owner}/{repo}/issues", params, limit)

    async def list_issue_comments(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """List comments on an issue."""
        path = f"/repos/{owner}/{repo}/issues/{issue_number}/comments"
        return await self._collect(path, None, limit)

    async def list_pulls(
        self,
        owner: str,
        repo: str,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """List pull requests of a repository, most recently updated first.

        GitHub has no ``since`` filter for pull requests; callers filter
        client-side.
        """
        params = {"state": "all", "sort": "updated", "direction": "desc"}
        logger.debug("Fetching pull requests for %s/%s", owner, repo)
        return await self._collect(f"/repos/{owner}/{repo}/pulls", params, limit)

    async def list_reviews(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """List reviews for a pull request."""
        path = f"/repos/{owner}/{repo}/pulls/{pull_number}/reviews"
        return await self._collect(path, None, limit)

    async def list_review_comments(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """List review comments for a pull request."""
        path = f"/repos/{owner}/{repo}/pulls/{pull_number}/comments"
        return await self._collect(path, None, limit)

    async def list_commits(
        self,
        owner: str,
        repo: str,
        since: str | None = None,
        until: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """List commits on the default branch.

        Args:
            owner: Repository owner.
            repo: Repository name.
            since: ISO 8601 timestamp, inclusive lower bound.
            until: ISO 8601 timestamp, inclusive upper bound.
            limit: Maximum number of commits.
        """
        params: dict[str, Any] = {}
        if since:
            params["since"] = since
        if until:
            params["until"] = until
        logger.debug(
            "Fetching commits for %s/%s (since=%s, until=%s)",
            owner,
            repo,
            since or "none",
            until or "none",
        )
        return await self._collect(f"/repos/{owner}/{repo}/commits", params, limit)

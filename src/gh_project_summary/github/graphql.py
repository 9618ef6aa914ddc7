"""GitHub GraphQL API client.

Used to resolve a Projects v2 board into the repositories its items live
in. Collection itself runs on the REST API.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, cast

from gh_project_summary.github.http import GitHubClient, GitHubHTTPError, RateLimitExceeded

if TYPE_CHECKING:
    from gh_project_summary.github.backoff import RetryPolicy

logger = logging.getLogger(__name__)

GRAPHQL_ENDPOINT = "/graphql"

PROJECT_ITEMS_QUERY = """
query($id: ID!, $after: String, $first: Int = 100) {
  node(id: $id) {
    ... on ProjectV2 {
      title
      items(first: $first, after: $after) {
        pageInfo {
          hasNextPage
          endCursor
        }
        nodes {
          content {
            __typename
            ... on Issue {
              repository { nameWithOwner }
            }
            ... on PullRequest {
              repository { nameWithOwner }
            }
          }
        }
      }
    }
  }
}
"""


class GraphQLError(GitHubHTTPError):
    """Raised when a GraphQL query returns errors."""

    def __init__(self, errors: list[dict[str, Any]], status_code: int | None = None) -> None:
        self.errors = errors
        messages = [err.get("message", "Unknown error") for err in errors]
        super().__init__(f"GraphQL errors: {'; '.join(messages)}", status_code=status_code)


class GraphQLClient:
    """GitHub GraphQL API client.

    Args:
        http_client: Transport for requests.
        retry: Retry policy for GraphQL calls.
    """

    def __init__(
        self,
        http_client: GitHubClient,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._http = http_client
        self._retry = retry

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._http.post(GRAPHQL_ENDPOINT, json=payload)

        if not response.is_success:
            logger.error("GraphQL request failed: status=%d", response.status_code)
            raise GraphQLError(
                [{"message": f"HTTP {response.status_code}"}],
                status_code=response.status_code,
            )
        if not isinstance(response.data, dict):
            raise GraphQLError([{"message": "Invalid GraphQL response format"}])

        errors = response.data.get("errors")
        if errors:
            if any(err.get("type") == "RATE_LIMITED" for err in errors):
                raise RateLimitExceeded(status_code=response.status_code, url=response.url)
            logger.error("GraphQL errors: %s", errors)
            raise GraphQLError(errors)

        data = response.data.get("data")
        if data is None:
            raise GraphQLError([{"message": "Missing data in GraphQL response"}])
        return cast("dict[str, Any]", data)

    async def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute a GraphQL query.

        Args:
            query: GraphQL query string.
            variables: Optional query variables.

        Returns:
            GraphQL response data payload.

        Raises:
            GraphQLError: If response contains GraphQL errors.
            RateLimitExceeded: If GitHub reports the query as rate limited.
        """
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        if self._retry is None:
            return await self._post(payload)
        return await self._retry.call(lambda: self._post(payload), description="GraphQL query")

    async def paginate(
        self,
        query: str,
        variables: dict[str, Any],
        path_to_connection: list[str],
        page_size: int = 100,
    ) -> AsyncIterator[dict[str, Any]]:
        """Iterate the nodes of a paginated connection.

        Args:
            query: GraphQL query with $after and $first variables.
            variables: Base variables (without after/first).
            path_to_connection: Keys leading to the connection object.
            page_size: Number of items per page.

        Yields:
            Individual nodes.
        """
        has_next_page = True
        after_cursor: str | None = None

        while has_next_page:
            data = await self.execute(query, {**variables, "after": after_cursor, "first": page_size})

            connection: Any = data
            for key in path_to_connection:
                connection = (connection or {}).get(key)
            if not connection:
                return

            nodes = connection.get("nodes")
            if nodes is None:
                nodes = [edge.get("node") for edge in connection.get("edges", [])]
            for node in nodes:
                if node:
                    yield node

            page_info = connection.get("pageInfo", {})
            has_next_page = bool(page_info.get("hasNextPage"))
            after_cursor = page_info.get("endCursor")

    async def list_project_repositories(self, project_id: str) -> list[str]:
        """List the repositories a Projects v2 board's items belong to.

        Args:
            project_id: Project node id (``PVT_...``).

        Returns:
            Unique ``owner/repo`` names in first-seen order. Draft items
            without a repository are ignored.
        """
        repositories: dict[str, None] = {}
        async for item in self.paginate(PROJECT_ITEMS_QUERY, {"id": project_id}, ["node", "items"]):
            content = item.get("content") or {}
            repository = (content.get("repository") or {}).get("nameWithOwner")
            if repository:
                repositories.setdefault(repository, None)

        logger.info("Project %s spans %d repositories", project_id, len(repositories))
        return list(repositories)

"""Resolve a project id into the repositories to collect."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gh_project_summary.config import REPOSITORY_PATTERN
from gh_project_summary.errors import RepositoryNotFoundError
from gh_project_summary.github.http import GitHubHTTPError

if TYPE_CHECKING:
    from gh_project_summary.github.graphql import GraphQLClient

logger = logging.getLogger(__name__)

PROJECT_NODE_PREFIX = "PVT_"


class ProjectResolver:
    """Turn a project id into a list of ``owner/repo`` names.

    Accepted project ids:
        - a Projects v2 node id (``PVT_...``), resolved over GraphQL;
        - one or more ``owner/repo`` names separated by commas.

    Args:
        graphql_client: Needed only for Projects v2 ids.
        repositories: Fixed repository list that overrides the project id.
    """

    def __init__(
        self,
        graphql_client: GraphQLClient | None = None,
        repositories: list[str] | None = None,
    ) -> None:
        self._graphql = graphql_client
        self._repositories = list(repositories or [])

    async def list_repositories(self, project_id: str) -> list[str]:
        """Resolve ``project_id``.

        Returns:
            Unique repository names in first-seen order.

        Raises:
            RepositoryNotFoundError: If nothing resolves to a repository.
        """
        if self._repositories:
            return list(dict.fromkeys(self._repositories))

        if project_id.startswith(PROJECT_NODE_PREFIX):
            return await self._from_project_board(project_id)

        names = [name.strip() for name in project_id.split(",") if name.strip()]
        invalid = [name for name in names if not REPOSITORY_PATTERN.match(name)]
        if not names or invalid:
            detail = f"invalid repository names {invalid}" if invalid else "empty project id"
            raise RepositoryNotFoundError(project_id, detail)
        return list(dict.fromkeys(names))

    async def _from_project_board(self, project_id: str) -> list[str]:
        if self._graphql is None:
            msg = "a GraphQL client is required for Projects v2 ids"
            raise RepositoryNotFoundError(project_id, msg)
        try:
            repositories = await self._graphql.list_project_repositories(project_id)
        except GitHubHTTPError as e:
            raise RepositoryNotFoundError(project_id, str(e)) from e
        if not repositories:
            raise RepositoryNotFoundError(project_id, "project has no repository-backed items")
        return repositories

"""Commit collection for one repository."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from gh_project_summary.collect.models import CommitItem
from gh_project_summary.collect.repos import split_full_name
from gh_project_summary.errors import ResourceCollectionError
from gh_project_summary.github.http import GitHubHTTPError

if TYPE_CHECKING:
    from gh_project_summary.config import CollectionOptions
    from gh_project_summary.github.rest import RestClient

logger = logging.getLogger(__name__)

# GitHub answers 409 Conflict for the commits of an empty repository
EMPTY_REPOSITORY_STATUS = 409


class CommitCollectionError(ResourceCollectionError):
    """Raised when commit collection fails."""


async def collect_commits(
    rest_client: RestClient,
    full_name: str,
    options: CollectionOptions,
) -> list[CommitItem]:
    """Collect commits of the default branch inside the time window.

    Args:
        rest_client: REST API client.
        full_name: Repository as ``owner/repo``.
        options: Toggles, limits and time window.

    Returns:
        Commits tagged with ``repository_name``; empty when commits are
        disabled or the repository has no commits.

    Raises:
        CommitCollectionError: On transport failures or malformed payloads.
    """
    if not options.include_commits:
        return []

    owner, repo = split_full_name(full_name)
    window = options.time_filter

    try:
        payloads = await rest_client.list_commits(
            owner,
            repo,
            since=window.since.isoformat() if window.since else None,
            until=window.until.isoformat() if window.until else None,
            limit=options.limits.max_commits_per_repo,
        )
        commits = [
            CommitItem.model_validate({**payload, "repository_name": full_name})
            for payload in payloads
        ]
    except GitHubHTTPError as e:
        if e.status_code == EMPTY_REPOSITORY_STATUS:
            logger.debug("%s is empty, no commits", full_name)
            return []
        raise CommitCollectionError(full_name, "commits", options, e) from e
    except ValidationError as e:
        raise CommitCollectionError(full_name, "commits", options, e) from e

    logger.debug("%s: %d commits", full_name, len(commits))
    return commits

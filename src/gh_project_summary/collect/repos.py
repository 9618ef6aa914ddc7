"""Repository metadata collection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from gh_project_summary.collect.models import RepositoryItem
from gh_project_summary.errors import ResourceCollectionError
from gh_project_summary.github.http import GitHubHTTPError

if TYPE_CHECKING:
    from gh_project_summary.config import CollectionOptions
    from gh_project_summary.github.rest import RestClient

logger = logging.getLogger(__name__)


class RepositoryMetadataError(ResourceCollectionError):
    """Raised when repository metadata cannot be fetched."""


def split_full_name(full_name: str) -> tuple[str, str]:
    """Split ``owner/repo`` into its parts.

    Raises:
        ValueError: If the name is not of the form ``owner/repo``.
    """
    parts = full_name.split("/")
    if len(parts) != 2 or not all(parts):
        msg = f"Invalid repository name format: {full_name!r}"
        raise ValueError(msg)
    return parts[0], parts[1]


async def collect_repository(
    rest_client: RestClient,
    full_name: str,
    options: CollectionOptions | None = None,
) -> RepositoryItem:
    """Fetch metadata for one repository.

    Args:
        rest_client: REST API client.
        full_name: Repository as ``owner/repo``.
        options: Options in effect, recorded on failure.

    Returns:
        The repository record tagged with ``repository_name``.

    Raises:
        RepositoryMetadataError: If the repository cannot be fetched or its
            payload is malformed.
    """
    owner, repo = split_full_name(full_name)
    try:
        payload = await rest_client.get_repo(owner, repo)
        repository = RepositoryItem.model_validate({**payload, "repository_name": full_name})
    except (GitHubHTTPError, ValidationError) as e:
        raise RepositoryMetadataError(full_name, "repository", options, e) from e

    logger.debug("Fetched metadata for %s", full_name)
    return repository

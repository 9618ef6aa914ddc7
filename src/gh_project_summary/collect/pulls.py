"""Pull request, review and review comment collection for one repository."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import ValidationError

from gh_project_summary.collect.models import PullRequestItem, ReviewCommentItem, ReviewItem
from gh_project_summary.collect.repos import split_full_name
from gh_project_summary.errors import ResourceCollectionError
from gh_project_summary.github.http import GitHubHTTPError

if TYPE_CHECKING:
    from gh_project_summary.config import CollectionOptions
    from gh_project_summary.github.rest import RestClient

logger = logging.getLogger(__name__)


class PullRequestCollectionError(ResourceCollectionError):
    """Raised when pull requests or their reviews cannot be collected."""


@dataclass
class PullRequestCollection:
    """Pull requests of one repository with their reviews."""

    pull_requests: list[PullRequestItem] = field(default_factory=list)
    reviews: list[ReviewItem] = field(default_factory=list)
    review_comments: list[ReviewCommentItem] = field(default_factory=list)


async def collect_pull_requests_with_reviews(
    rest_client: RestClient,
    full_name: str,
    options: CollectionOptions,
) -> PullRequestCollection:
    """Collect pull requests, reviews and review comments for one repository.

    Reviews and review comments are fetched for every kept pull request when
    reviews are enabled, one request after another.

    Args:
        rest_client: REST API client.
        full_name: Repository as ``owner/repo``.
        options: Toggles, limits and time window.

    Returns:
        Tagged pull requests, reviews and review comments. Empty when pull
        requests are disabled.

    Raises:
        PullRequestCollectionError: On transport failures or malformed payloads.
    """
    if not options.include_pull_requests:
        return PullRequestCollection()

    owner, repo = split_full_name(full_name)
    limits = options.limits

    try:
        payloads = await rest_client.list_pulls(owner, repo, limit=limits.max_prs_per_repo)
        pulls = [
            PullRequestItem.model_validate({**payload, "repository_name": full_name})
            for payload in payloads
        ]
    except (GitHubHTTPError, ValidationError) as e:
        raise PullRequestCollectionError(full_name, "pull_requests", options, e) from e

    result = PullRequestCollection(
        pull_requests=[
            pr for pr in pulls if options.time_filter.overlaps(pr.created_at, pr.updated_at)
        ]
    )
    logger.debug("%s: %d pull requests in window", full_name, len(result.pull_requests))

    if not options.include_reviews:
        return result

    for pr in result.pull_requests:
        tags = {"repository_name": full_name, "pull_request_id": pr.pull_request_id}
        try:
            review_payloads = await rest_client.list_reviews(
                owner, repo, pr.number, limit=limits.max_reviews_per_pr
            )
            result.reviews.extend(
                ReviewItem.model_validate({**payload, **tags}) for payload in review_payloads
            )
        except (GitHubHTTPError, ValidationError) as e:
            raise PullRequestCollectionError(full_name, "pr_reviews", options, e) from e

        try:
            comment_payloads = await rest_client.list_review_comments(
                owner, repo, pr.number, limit=limits.max_review_comments_per_pr
            )
            result.review_comments.extend(
                ReviewCommentItem.model_validate({**payload, **tags})
                for payload in comment_payloads
            )
        except (GitHubHTTPError, ValidationError) as e:
            raise PullRequestCollectionError(full_name, "pr_review_comments", options, e) from e

    logger.debug(
        "%s: %d reviews, %d review comments",
        full_name,
        len(result.reviews),
        len(result.review_comments),
    )
    return result

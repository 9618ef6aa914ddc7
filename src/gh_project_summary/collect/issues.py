"""Issue and issue comment collection for one repository.

GitHub's issues endpoint also returns pull requests; those are dropped here
and collected by ``gh_project_summary.collect.pulls``. Comments are only
requested for issues that report at least one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import ValidationError

from gh_project_summary.collect.models import IssueCommentItem, IssueItem
from gh_project_summary.collect.repos import split_full_name
from gh_project_summary.errors import ResourceCollectionError
from gh_project_summary.github.http import GitHubHTTPError

if TYPE_CHECKING:
    from gh_project_summary.config import CollectionOptions
    from gh_project_summary.github.rest import RestClient

logger = logging.getLogger(__name__)


class IssueCollectionError(ResourceCollectionError):
    """Raised when issues or their comments cannot be collected."""


@dataclass
class IssueCollection:
    """Issues of one repository and their comments."""

    issues: list[IssueItem] = field(default_factory=list)
    comments: list[IssueCommentItem] = field(default_factory=list)


async def collect_issues_with_comments(
    rest_client: RestClient,
    full_name: str,
    options: CollectionOptions,
) -> IssueCollection:
    """Collect issues and their comments for one repository.

    Args:
        rest_client: REST API client.
        full_name: Repository as ``owner/repo``.
        options: Toggles, limits and time window.

    Returns:
        Issues tagged with ``repository_name`` and comments tagged with their
        ``issue_id``. Empty when issues are disabled.

    Raises:
        IssueCollectionError: On transport failures or malformed payloads.
    """
    if not options.include_issues:
        return IssueCollection()

    owner, repo = split_full_name(full_name)
    window = options.time_filter
    limits = options.limits

    try:
        payloads = await rest_client.list_issues(
            owner,
            repo,
            since=window.since.isoformat() if window.since else None,
            limit=limits.max_issues_per_repo,
        )
        candidates = [
            IssueItem.model_validate({**payload, "repository_name": full_name})
            for payload in payloads
        ]
    except (GitHubHTTPError, ValidationError) as e:
        raise IssueCollectionError(full_name, "issues", options, e) from e

    issues = [
        issue
        for issue in candidates
        if not issue.is_pull_request and window.overlaps(issue.created_at)
    ]
    logger.debug(
        "%s: %d issues kept of %d returned by the issues endpoint",
        full_name,
        len(issues),
        len(candidates),
    )

    result = IssueCollection(issues=issues)
    if not options.include_comments:
        return result

    for issue in issues:
        if issue.comments <= 0:
            continue
        try:
            comment_payloads = await rest_client.list_issue_comments(
                owner,
                repo,
                issue.number,
                limit=limits.max_comments_per_issue,
            )
            result.comments.extend(
                IssueCommentItem.model_validate(
                    {**payload, "repository_name": full_name, "issue_id": issue.issue_id}
                )
                for payload in comment_payloads
            )
        except (GitHubHTTPError, ValidationError) as e:
            raise IssueCollectionError(full_name, "issue_comments", options, e) from e

    logger.debug("%s: %d issue comments", full_name, len(result.comments))
    return result

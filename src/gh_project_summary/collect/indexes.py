"""Cross-reference indexes over the flat arrays.

Indexes hold array positions, never copies. Each array is walked once in
order, so every bucket lists positions in first-seen order.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from gh_project_summary.collect.models import (
    IssueId,
    ItemReference,
    PullRequestId,
    RawData,
)

UNKNOWN_AUTHOR = "unknown"


@dataclass
class OptimalIndexes:
    """Lookup tables from keys to positions in the flat arrays."""

    issues_by_repo: dict[str, list[int]] = field(default_factory=lambda: defaultdict(list))
    prs_by_repo: dict[str, list[int]] = field(default_factory=lambda: defaultdict(list))
    commits_by_repo: dict[str, list[int]] = field(default_factory=lambda: defaultdict(list))
    items_by_author: dict[str, list[ItemReference]] = field(
        default_factory=lambda: defaultdict(list)
    )
    items_by_label: dict[str, list[int]] = field(default_factory=lambda: defaultdict(list))
    comments_by_issue: dict[IssueId, list[int]] = field(default_factory=lambda: defaultdict(list))
    reviews_by_pr: dict[PullRequestId, list[int]] = field(default_factory=lambda: defaultdict(list))
    review_comments_by_pr: dict[PullRequestId, list[int]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``indexes`` JSON layout (object keys become strings)."""
        return {
            "issues_by_repo": {key: list(v) for key, v in self.issues_by_repo.items()},
            "prs_by_repo": {key: list(v) for key, v in self.prs_by_repo.items()},
            "commits_by_repo": {key: list(v) for key, v in self.commits_by_repo.items()},
            "items_by_author": {
                key: [ref.to_dict() for ref in refs] for key, refs in self.items_by_author.items()
            },
            "items_by_label": {key: list(v) for key, v in self.items_by_label.items()},
            "comments_by_issue": {str(key): list(v) for key, v in self.comments_by_issue.items()},
            "reviews_by_pr": {str(key): list(v) for key, v in self.reviews_by_pr.items()},
            "review_comments_by_pr": {
                str(key): list(v) for key, v in self.review_comments_by_pr.items()
            },
        }


def build_indexes(raw: RawData) -> OptimalIndexes:
    """Build every index in one pass per flat array.

    Args:
        raw: Flattened, repository-tagged arrays.

    Returns:
        Indexes. Issues and pull requests are keyed by author login, commits
        by git author name; missing repository tags and authors bucket under
        ``unknown``.
    """
    indexes = OptimalIndexes()

    for index, issue in enumerate(raw.issues):
        repository = issue.repository_key
        indexes.issues_by_repo[repository].append(index)
        indexes.items_by_author[issue.author_login or UNKNOWN_AUTHOR].append(
            ItemReference(index, repository, issue.item_type)
        )
        # A label listed twice on one issue still indexes the issue once
        for name in dict.fromkeys(label.name for label in issue.labels):
            indexes.items_by_label[name].append(index)

    for index, pr in enumerate(raw.pull_requests):
        repository = pr.repository_key
        indexes.prs_by_repo[repository].append(index)
        indexes.items_by_author[pr.author_login or UNKNOWN_AUTHOR].append(
            ItemReference(index, repository, pr.item_type)
        )

    for index, commit in enumerate(raw.commits):
        repository = commit.repository_key
        indexes.commits_by_repo[repository].append(index)
        indexes.items_by_author[commit.author_name].append(
            ItemReference(index, repository, commit.item_type)
        )

    for index, comment in enumerate(raw.issue_comments):
        indexes.comments_by_issue[comment.issue_id].append(index)

    for index, review in enumerate(raw.pr_reviews):
        indexes.reviews_by_pr[review.pull_request_id].append(index)

    for index, review_comment in enumerate(raw.pr_review_comments):
        indexes.review_comments_by_pr[review_comment.pull_request_id].append(index)

    return indexes

"""Validated records for collected GitHub items.

Every record keeps the GitHub payload as-is (unknown fields are preserved)
and validates the handful of fields the indexes and metrics rely on. The
collector appends ``repository_name`` and, for child items, the id of the
owning issue or pull request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, NewType

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

IssueId = NewType("IssueId", int)
PullRequestId = NewType("PullRequestId", int)

UNKNOWN_REPOSITORY = "unknown"


def _ensure_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


# GitHub timestamps are UTC; naive values are read as UTC
UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class ItemType(str, Enum):
    """Kinds of collected items."""

    REPOSITORY = "repository"
    ISSUE = "issue"
    PULL_REQUEST = "pull_request"
    COMMIT = "commit"
    ISSUE_COMMENT = "issue_comment"
    REVIEW = "review"
    REVIEW_COMMENT = "review_comment"


class DanglingReferenceError(ValueError):
    """Raised when a child item points at a parent that was not collected."""


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class UserRef(_Payload):
    """GitHub account reference."""

    login: str


class LabelRef(_Payload):
    """Issue label."""

    name: str


class GitAuthor(_Payload):
    """Git-level author of a commit (not necessarily a GitHub account)."""

    name: str | None = None
    email: str | None = None
    date: UtcDatetime | None = None


class CommitDetail(_Payload):
    """The ``commit`` object nested in a commit payload."""

    author: GitAuthor | None = None
    message: str = ""


class RawItem(_Payload):
    """Base for collected items."""

    item_type: ClassVar[ItemType]

    repository_name: str | None = None

    @property
    def repository_key(self) -> str:
        """Repository tag, or ``unknown`` when missing."""
        return self.repository_name or UNKNOWN_REPOSITORY

    def to_dict(self) -> dict[str, Any]:
        """Convert to the GitHub-shaped JSON dictionary plus tags."""
        return self.model_dump(mode="json", exclude_unset=True)


class RepositoryItem(RawItem):
    """Repository metadata."""

    item_type: ClassVar[ItemType] = ItemType.REPOSITORY

    id: int
    name: str
    full_name: str
    language: str | None = None
    stargazers_count: int = 0
    forks_count: int = 0
    watchers_count: int = 0
    open_issues_count: int = 0
    created_at: UtcDatetime | None = None
    pushed_at: UtcDatetime | None = None


class IssueItem(RawItem):
    """Issue. GitHub's issues endpoint also returns pull requests."""

    item_type: ClassVar[ItemType] = ItemType.ISSUE

    id: int
    number: int
    state: str = "open"
    user: UserRef | None = None
    labels: list[LabelRef] = Field(default_factory=list)
    comments: int = 0
    created_at: UtcDatetime | None = None
    closed_at: UtcDatetime | None = None
    pull_request: dict[str, Any] | None = None

    @property
    def issue_id(self) -> IssueId:
        """Typed id for comment references."""
        return IssueId(self.id)

    @property
    def is_pull_request(self) -> bool:
        """True when the issues endpoint returned a pull request."""
        return self.pull_request is not None

    @property
    def author_login(self) -> str | None:
        """Login of the author, if known."""
        return self.user.login if self.user else None


class PullRequestItem(RawItem):
    """Pull request."""

    item_type: ClassVar[ItemType] = ItemType.PULL_REQUEST

    id: int
    number: int
    state: str = "open"
    user: UserRef | None = None
    created_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None
    closed_at: UtcDatetime | None = None
    merged_at: UtcDatetime | None = None

    @property
    def pull_request_id(self) -> PullRequestId:
        """Typed id for review references."""
        return PullRequestId(self.id)

    @property
    def author_login(self) -> str | None:
        """Login of the author, if known."""
        return self.user.login if self.user else None


class CommitItem(RawItem):
    """Commit."""

    item_type: ClassVar[ItemType] = ItemType.COMMIT

    sha: str
    commit: CommitDetail = Field(default_factory=CommitDetail)
    author: UserRef | None = None

    @property
    def author_name(self) -> str:
        """Git author name; commits are indexed by name, not login."""
        if self.commit.author and self.commit.author.name:
            return self.commit.author.name
        return "unknown"

    @property
    def authored_at(self) -> datetime | None:
        """Git author date."""
        return self.commit.author.date if self.commit.author else None


class IssueCommentItem(RawItem):
    """Comment on an issue."""

    item_type: ClassVar[ItemType] = ItemType.ISSUE_COMMENT

    id: int
    issue_id: IssueId
    user: UserRef | None = None
    created_at: UtcDatetime | None = None


class ReviewItem(RawItem):
    """Pull request review."""

    item_type: ClassVar[ItemType] = ItemType.REVIEW

    id: int
    pull_request_id: PullRequestId
    user: UserRef | None = None
    state: str | None = None
    submitted_at: UtcDatetime | None = None


class ReviewCommentItem(RawItem):
    """Inline review comment on a pull request."""

    item_type: ClassVar[ItemType] = ItemType.REVIEW_COMMENT

    id: int
    pull_request_id: PullRequestId
    user: UserRef | None = None
    created_at: UtcDatetime | None = None


@dataclass(frozen=True)
class ItemReference:
    """Pointer into one of the flat arrays."""

    index: int
    repository_name: str
    type: ItemType

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {"index": self.index, "repository_name": self.repository_name, "type": self.type.value}


@dataclass
class RepositoryCollection:
    """Everything collected for one repository."""

    repository: RepositoryItem
    issues: list[IssueItem] = field(default_factory=list)
    issue_comments: list[IssueCommentItem] = field(default_factory=list)
    pull_requests: list[PullRequestItem] = field(default_factory=list)
    pr_reviews: list[ReviewItem] = field(default_factory=list)
    pr_review_comments: list[ReviewCommentItem] = field(default_factory=list)
    commits: list[CommitItem] = field(default_factory=list)


@dataclass
class RawData:
    """Project-wide flat arrays, tagged by repository."""

    repositories: list[RepositoryItem] = field(default_factory=list)
    issues: list[IssueItem] = field(default_factory=list)
    pull_requests: list[PullRequestItem] = field(default_factory=list)
    commits: list[CommitItem] = field(default_factory=list)
    issue_comments: list[IssueCommentItem] = field(default_factory=list)
    pr_reviews: list[ReviewItem] = field(default_factory=list)
    pr_review_comments: list[ReviewCommentItem] = field(default_factory=list)

    @classmethod
    def flatten(cls, collections: list[RepositoryCollection]) -> RawData:
        """Concatenate per-repository collections, keeping their order."""
        raw = cls()
        for collection in collections:
            raw.repositories.append(collection.repository)
            raw.issues.extend(collection.issues)
            raw.pull_requests.extend(collection.pull_requests)
            raw.commits.extend(collection.commits)
            raw.issue_comments.extend(collection.issue_comments)
            raw.pr_reviews.extend(collection.pr_reviews)
            raw.pr_review_comments.extend(collection.pr_review_comments)
        return raw

    def validate_references(self) -> None:
        """Check every child item points at a collected parent.

        Raises:
            DanglingReferenceError: On the first reference without a parent.
        """
        issue_ids = {issue.issue_id for issue in self.issues}
        for comment in self.issue_comments:
            if comment.issue_id not in issue_ids:
                msg = f"Comment {comment.id} references unknown issue {comment.issue_id}"
                raise DanglingReferenceError(msg)

        pr_ids = {pr.pull_request_id for pr in self.pull_requests}
        for child in (*self.pr_reviews, *self.pr_review_comments):
            if child.pull_request_id not in pr_ids:
                msg = (
                    f"{child.item_type.value} {child.id} references unknown "
                    f"pull request {child.pull_request_id}"
                )
                raise DanglingReferenceError(msg)

    def item_counts(self) -> dict[str, int]:
        """Number of items per resource."""
        return {
            "commits": len(self.commits),
            "issue_comments": len(self.issue_comments),
            "issues": len(self.issues),
            "pr_review_comments": len(self.pr_review_comments),
            "pr_reviews": len(self.pr_reviews),
            "pull_requests": len(self.pull_requests),
        }

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """Convert to the ``raw`` JSON layout."""
        return {
            "repositories": [item.to_dict() for item in self.repositories],
            "issues": [item.to_dict() for item in self.issues],
            "pull_requests": [item.to_dict() for item in self.pull_requests],
            "commits": [item.to_dict() for item in self.commits],
            "issue_comments": [item.to_dict() for item in self.issue_comments],
            "pr_reviews": [item.to_dict() for item in self.pr_reviews],
            "pr_review_comments": [item.to_dict() for item in self.pr_review_comments],
        }

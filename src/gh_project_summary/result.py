"""Aggregate result of one collection run.

Built once by the orchestrator and never mutated afterwards. ``to_dict``
gives the JSON-compatible layout consumed downstream:

    raw       flat arrays of GitHub-shaped items
    indexes   positions into the flat arrays
    metrics   project, repository, contributor and timeline metrics
    metadata  collection, execution and api_usage records
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from gh_project_summary import __version__
from gh_project_summary.merge import HintScope, QueryHint

if TYPE_CHECKING:
    from gh_project_summary.collect.indexes import OptimalIndexes
    from gh_project_summary.collect.models import RawData


class CollectionMetadata(BaseModel):
    """What was collected and what was skipped."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    collection_started_at: datetime
    collection_completed_at: datetime
    collection_options: dict[str, Any]
    repositories_requested: list[str] = Field(default_factory=list)
    repositories_processed: list[str] = Field(default_factory=list)
    repositories_skipped: list[str] = Field(default_factory=list)
    errors_encountered: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)
    items_collected: dict[str, int] = Field(default_factory=dict)


class ExecutionMetadata(BaseModel):
    """How the run was invoked."""

    model_config = ConfigDict(frozen=True)

    command: str = "collect"
    arguments: dict[str, Any] = Field(default_factory=dict)
    execution_time_ms: int = 0
    generated_at: datetime
    version: str = __version__


class ApiUsageMetadata(BaseModel):
    """Rate budget before and after the run."""

    model_config = ConfigDict(frozen=True)

    initial: dict[str, Any] | None = None
    final: dict[str, Any] | None = None
    calls_made: int = 0
    retries: int = 0
    estimate: dict[str, Any] | None = None


class ResultMetadata(BaseModel):
    """The ``metadata`` section."""

    model_config = ConfigDict(frozen=True)

    collection: CollectionMetadata
    execution: ExecutionMetadata
    api_usage: ApiUsageMetadata


_PROJECT_HINTS = (
    QueryHint(
        query='.raw.repositories[] | select(.name == "repo-name")',
        description="Find specific repository",
        scope=HintScope.ALL_ITEMS,
    ),
    QueryHint(
        query=".raw.repositories | map(.language) | unique",
        description="List all programming languages",
        scope=HintScope.PARENT_LEVEL,
    ),
    QueryHint(
        query='.raw.issues[] | select(.repository_name == "owner/repo")',
        description="Issues for specific repository",
        scope=HintScope.ALL_ITEMS,
    ),
    QueryHint(
        query='.raw.issues | map(select(.state == "open")) | length',
        description="Count open issues",
        scope=HintScope.PARENT_LEVEL,
    ),
    QueryHint(
        query=".raw.pull_requests | map(select(.merged_at != null)) | length",
        description="Count merged pull requests",
        scope=HintScope.PARENT_LEVEL,
    ),
    QueryHint(
        query=(
            ".raw.commits | group_by(.commit.author.email)"
            " | map({author: .[0].commit.author.email, count: length})"
        ),
        description="Commits per author",
        scope=HintScope.PARENT_LEVEL,
    ),
    QueryHint(
        query=".indexes.issues_by_repo",
        description="Issue positions grouped by repository",
        scope=HintScope.PARENT_LEVEL,
    ),
    QueryHint(
        query=".indexes.items_by_author",
        description="All items grouped by author",
        scope=HintScope.PARENT_LEVEL,
    ),
    QueryHint(
        query=".indexes.items_by_label",
        description="Issue positions grouped by label",
        scope=HintScope.PARENT_LEVEL,
    ),
    QueryHint(
        query=".metrics.project_summary",
        description="Project totals and averages",
        scope=HintScope.PARENT_LEVEL,
    ),
    QueryHint(
        query=".metadata.collection.errors",
        description="Repositories skipped during collection",
        scope=HintScope.PARENT_LEVEL,
    ),
)


@dataclass(frozen=True)
class AggregateResult:
    """Everything one collection run produced."""

    raw: RawData
    indexes: OptimalIndexes
    metrics: dict[str, Any]
    metadata: ResultMetadata

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON-compatible result layout."""
        return {
            "raw": self.raw.to_dict(),
            "indexes": self.indexes.to_dict(),
            "metrics": self.metrics,
            "metadata": self.metadata.model_dump(mode="json"),
        }

    def query_hints(self) -> list[QueryHint]:
        """Useful jq queries against ``to_dict()`` output."""
        return list(_PROJECT_HINTS)

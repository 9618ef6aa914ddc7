"""Per-repository collectors, indexes and the collection orchestrator."""

from gh_project_summary.collect.indexes import OptimalIndexes, build_indexes
from gh_project_summary.collect.models import (
    IssueId,
    ItemReference,
    ItemType,
    PullRequestId,
    RawData,
    RepositoryCollection,
)
from gh_project_summary.collect.orchestrator import (
    CollectionFailure,
    CollectionOrchestrator,
    CollectionState,
    build_orchestrator,
)
from gh_project_summary.collect.projects import ProjectResolver

__all__ = [
    "CollectionFailure",
    "CollectionOrchestrator",
    "CollectionState",
    "IssueId",
    "ItemReference",
    "ItemType",
    "OptimalIndexes",
    "ProjectResolver",
    "PullRequestId",
    "RawData",
    "RepositoryCollection",
    "build_indexes",
    "build_orchestrator",
]

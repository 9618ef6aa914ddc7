"""Collection orchestrator.

Drives one collection run end to end:

    ESTIMATING -> FEASIBILITY_CHECKED -> COLLECTING -> FLATTENING
        -> INDEXING -> METRICS_COMPUTED -> COMPLETE

Any state may move to FAILED. Repositories are collected with bounded
concurrency; a repository whose collection fails is skipped and recorded,
and the run only fails when every repository fails.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from gh_project_summary.collect.commits import collect_commits
from gh_project_summary.collect.indexes import build_indexes
from gh_project_summary.collect.issues import collect_issues_with_comments
from gh_project_summary.collect.models import RawData, RepositoryCollection
from gh_project_summary.collect.projects import ProjectResolver
from gh_project_summary.collect.pulls import collect_pull_requests_with_reviews
from gh_project_summary.collect.repos import collect_repository
from gh_project_summary.config import RateLimitConfig
from gh_project_summary.errors import (
    AllRepositoriesFailedError,
    BudgetInfeasibleError,
    ResourceCollectionError,
)
from gh_project_summary.github.backoff import RetriesExhaustedError, RetryPolicy
from gh_project_summary.github.graphql import GraphQLClient
from gh_project_summary.github.http import GitHubHTTPError
from gh_project_summary.github.ratelimit import APIType, RateBudgetService
from gh_project_summary.github.rest import RestClient
from gh_project_summary.metrics.project import compute_metrics
from gh_project_summary.result import (
    AggregateResult,
    ApiUsageMetadata,
    CollectionMetadata,
    ExecutionMetadata,
    ResultMetadata,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from gh_project_summary.config import CollectionOptions, Config
    from gh_project_summary.github.http import GitHubClient

logger = logging.getLogger(__name__)


class CollectionState(str, Enum):
    """Stages of a collection run, in order."""

    ESTIMATING = "estimating"
    FEASIBILITY_CHECKED = "feasibility_checked"
    COLLECTING = "collecting"
    FLATTENING = "flattening"
    INDEXING = "indexing"
    METRICS_COMPUTED = "metrics_computed"
    COMPLETE = "complete"
    FAILED = "failed"


_ORDER = list(CollectionState)


class InvalidStateTransitionError(RuntimeError):
    """Raised when the orchestrator would move backwards."""


@dataclass(frozen=True)
class CollectionFailure:
    """One skipped repository."""

    repository: str
    resource: str
    error: str
    options: dict[str, Any] | None = None

    @classmethod
    def from_error(cls, repository: str, error: Exception) -> CollectionFailure:
        """Record ``error`` as the reason ``repository`` was skipped."""
        if isinstance(error, ResourceCollectionError):
            return cls(
                repository=repository,
                resource=error.resource,
                error=str(error),
                options=error.context.get("options"),
            )
        return cls(repository=repository, resource="unknown", error=str(error))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a ``metadata.collection.errors`` entry."""
        return {
            "repository": self.repository,
            "resource": self.resource,
            "error": self.error,
            "options": self.options,
        }


class CollectionOrchestrator:
    """Collect a project into an ``AggregateResult``.

    Args:
        rest_client: REST client shared by every collector.
        budget: Rate budget service for estimates and monitoring.
        resolver: Turns project ids into repository names.
        config: Concurrency and warning thresholds.
        retry: Retry policy attached to ``rest_client``, for retry counts.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        rest_client: RestClient,
        budget: RateBudgetService,
        resolver: ProjectResolver,
        config: RateLimitConfig | None = None,
        retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._rest = rest_client
        self._budget = budget
        self._resolver = resolver
        self._config = config or RateLimitConfig()
        self._retry = retry
        self._clock = clock
        self.history: list[CollectionState] = []

    @property
    def state(self) -> CollectionState | None:
        """Current state, None before the first run."""
        return self.history[-1] if self.history else None

    def _transition(self, new_state: CollectionState) -> None:
        current = self.state
        if (
            current is not None
            and new_state != CollectionState.FAILED
            and _ORDER.index(new_state) <= _ORDER.index(current)
        ):
            msg = f"Cannot move from {current.value} to {new_state.value}"
            raise InvalidStateTransitionError(msg)
        logger.debug("Collection state: %s", new_state.value)
        self.history.append(new_state)

    async def collect(
        self,
        project_id: str,
        options: CollectionOptions,
        arguments: dict[str, Any] | None = None,
    ) -> AggregateResult:
        """Collect every repository of ``project_id``.

        Args:
            project_id: Projects v2 node id or ``owner/repo`` list.
            options: What to collect; frozen for the whole run.
            arguments: Invocation arguments recorded in the metadata.

        Returns:
            The aggregate result.

        Raises:
            RepositoryNotFoundError: If the project has no repositories.
            BudgetInfeasibleError: If the estimate exceeds the remaining budget,
                or the budget cannot be queried.
            AllRepositoriesFailedError: If no repository could be collected.
        """
        self.history = []
        started_at = self._clock()
        start = time.perf_counter()
        calls_before = self._rest.requests_made
        retries_before = self._retry.retries if self._retry else 0
        self._transition(CollectionState.ESTIMATING)

        try:
            repositories = await self._resolver.list_repositories(project_id)
            logger.info("Project %s: %d repositories", project_id, len(repositories))

            try:
                estimate = await self._budget.estimate_required_calls(repositories, options)
            except GitHubHTTPError as e:
                reason = f"Cannot query the rate budget: {e}"
                raise BudgetInfeasibleError(0, 0, repositories, reason=reason) from e
            initial = self._budget.last_snapshot

            if not await self._budget.validate_collection_feasible(estimate):
                snapshot = self._budget.last_snapshot
                remaining = snapshot.rest.remaining if snapshot else 0
                raise BudgetInfeasibleError(estimate.estimated_calls, remaining, repositories)
            self._transition(CollectionState.FEASIBILITY_CHECKED)

            self._transition(CollectionState.COLLECTING)
            collections, failures = await self._collect_all(repositories, options, calls_before)
            if not collections:
                raise AllRepositoriesFailedError([f.to_dict() for f in failures])

            self._transition(CollectionState.FLATTENING)
            raw = RawData.flatten(collections)
            raw.validate_references()

            self._transition(CollectionState.INDEXING)
            indexes = build_indexes(raw)

            metrics = compute_metrics(raw, indexes, self._clock())
            self._transition(CollectionState.METRICS_COMPUTED)

            calls_made = self._rest.requests_made - calls_before
            final = await self._budget.monitor_usage(calls_made)
            completed_at = self._clock()

            metadata = ResultMetadata(
                collection=CollectionMetadata(
                    project_id=project_id,
                    collection_started_at=started_at,
                    collection_completed_at=completed_at,
                    collection_options=options.model_dump(mode="json"),
                    repositories_requested=repositories,
                    repositories_processed=[c.repository.repository_key for c in collections],
                    repositories_skipped=[f.repository for f in failures],
                    errors_encountered=len(failures),
                    errors=[f.to_dict() for f in failures],
                    items_collected={"repositories": len(raw.repositories), **raw.item_counts()},
                ),
                execution=ExecutionMetadata(
                    arguments=arguments or {"project_id": project_id},
                    execution_time_ms=int((time.perf_counter() - start) * 1000),
                    generated_at=completed_at,
                ),
                api_usage=ApiUsageMetadata(
                    initial=initial.to_dict() if initial else None,
                    final=final.to_dict() if final else None,
                    calls_made=calls_made,
                    retries=(self._retry.retries - retries_before) if self._retry else 0,
                    estimate=estimate.to_dict(),
                ),
            )
            result = AggregateResult(raw=raw, indexes=indexes, metrics=metrics, metadata=metadata)
        except Exception:
            self._transition(CollectionState.FAILED)
            raise

        self._transition(CollectionState.COMPLETE)
        logger.info(
            "Collection complete: %d repositories, %d skipped, %d calls",
            len(collections),
            len(failures),
            calls_made,
        )
        return result

    async def _collect_all(
        self,
        repositories: list[str],
        options: CollectionOptions,
        calls_before: int,
    ) -> tuple[list[RepositoryCollection], list[CollectionFailure]]:
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def run(name: str) -> RepositoryCollection | CollectionFailure:
            async with semaphore:
                outcome = await self._collect_repository(name, options)
                await self._budget.monitor_usage(self._rest.requests_made - calls_before)
                return outcome

        outcomes = await asyncio.gather(*(run(name) for name in repositories))

        collections = [o for o in outcomes if isinstance(o, RepositoryCollection)]
        failures = [o for o in outcomes if isinstance(o, CollectionFailure)]
        return collections, failures

    async def _collect_repository(
        self,
        full_name: str,
        options: CollectionOptions,
    ) -> RepositoryCollection | CollectionFailure:
        try:
            repository = await collect_repository(self._rest, full_name, options)
            issues = await collect_issues_with_comments(self._rest, full_name, options)
            pulls = await collect_pull_requests_with_reviews(self._rest, full_name, options)
            commits = await collect_commits(self._rest, full_name, options)
        except (ResourceCollectionError, RetriesExhaustedError) as e:
            logger.warning("Skipping %s: %s", full_name, e)
            return CollectionFailure.from_error(full_name, e)

        logger.info(
            "Collected %s: %d issues, %d pull requests, %d commits",
            full_name,
            len(issues.issues),
            len(pulls.pull_requests),
            len(commits),
        )
        return RepositoryCollection(
            repository=repository,
            issues=issues.issues,
            issue_comments=issues.comments,
            pull_requests=pulls.pull_requests,
            pr_reviews=pulls.reviews,
            pr_review_comments=pulls.review_comments,
            commits=commits,
        )


def build_orchestrator(
    http_client: GitHubClient,
    config: Config,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> CollectionOrchestrator:
    """Wire clients, budget service and retry policy around ``http_client``.

    Args:
        http_client: Authenticated transport.
        config: Loaded configuration.
        sleep: Coroutine used for backoff waits.

    Returns:
        A ready orchestrator.
    """
    rest = RestClient(http_client)
    budget = RateBudgetService(rest, config.rate_limit, sleep=sleep)
    retry = RetryPolicy(budget, config.rate_limit.max_attempts)
    rest.use_retry_policy(retry)
    graphql = GraphQLClient(http_client, retry.for_api(APIType.GRAPHQL))
    resolver = ProjectResolver(graphql, config.project.repositories)
    return CollectionOrchestrator(rest, budget, resolver, config.rate_limit, retry=retry)

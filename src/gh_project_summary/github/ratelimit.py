"""Rate budget service.

Reports what is left of the GitHub API budget for the call-counted REST API
and the point-counted GraphQL API, estimates what a planned collection will
cost, decides whether it fits, and implements the waiting half of backoff.

Nothing here keeps a local counter of the budget: every answer comes from
re-querying ``/rate_limit``, so the service is safe to share between
concurrent collectors.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from gh_project_summary.config import CollectionOptions, RateLimitConfig
from gh_project_summary.github.http import GitHubHTTPError, RateLimitExceeded

if TYPE_CHECKING:
    from gh_project_summary.github.rest import RestClient

logger = logging.getLogger(__name__)

# Heuristic call costs per repository. Deliberately pessimistic: pagination
# depth is unknown until the data is fetched.
CALLS_REPOSITORY_METADATA = 1
CALLS_ISSUES = 3
CALLS_ISSUE_COMMENTS = 2
CALLS_PULL_REQUESTS = 2
CALLS_REVIEWS = 10
CALLS_REVIEW_COMMENTS = 10
CALLS_COMMITS = 5
# Safety margin applied to the total, as a fraction (6/5 == +20%)
SAFETY_MARGIN = (6, 5)
CALLS_PER_MINUTE = 60

GRAPHQL_DEFAULT_LIMIT = 5000


class APIType(str, Enum):
    """GitHub API endpoint families with separate budgets."""

    REST = "rest"
    GRAPHQL = "graphql"


@dataclass(frozen=True)
class RateLimitUsage:
    """Snapshot of one endpoint family's budget."""

    limit: int
    remaining: int
    reset_time: datetime
    calls_made: int

    @property
    def remaining_percent(self) -> float:
        """Percentage of the budget still available."""
        if self.limit == 0:
            return 0.0
        return (self.remaining / self.limit) * 100

    def is_exhausted(self) -> bool:
        """Check if no calls remain."""
        return self.remaining <= 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_time": self.reset_time.isoformat(),
            "calls_made": self.calls_made,
        }


@dataclass(frozen=True)
class BudgetSnapshot:
    """Budget of both endpoint families at one moment."""

    rest: RateLimitUsage
    graphql: RateLimitUsage
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def usage(self, api_type: APIType) -> RateLimitUsage:
        """Get the usage for one endpoint family."""
        return self.rest if api_type == APIType.REST else self.graphql

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``api_usage`` JSON layout."""
        return {
            "github_rest_api": self.rest.to_dict(),
            "github_graphql_api": self.graphql.to_dict(),
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass(frozen=True)
class CallEstimate:
    """Conservative cost estimate of a planned collection.

    The numbers are a heuristic, not a count: they assume a fixed number of
    pages per resource and add a 20% margin on top.
    """

    estimated_calls: int
    estimated_duration: timedelta
    feasible: bool
    recommended_batch_size: int
    repository_count: int
    estimated_graphql_points: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "estimated_calls": self.estimated_calls,
            "estimated_duration_minutes": int(self.estimated_duration.total_seconds() // 60),
            "estimated_graphql_points": self.estimated_graphql_points,
            "feasible": self.feasible,
            "recommended_batch_size": self.recommended_batch_size,
            "repository_count": self.repository_count,
        }


class BackoffReason(str, Enum):
    """Why a backoff wait was chosen."""

    TRANSIENT_ERROR = "transient_error"
    SECONDARY_LIMIT = "secondary_limit"
    BUDGET_EXHAUSTED = "budget_exhausted"
    RESET_UNKNOWN = "reset_unknown"


@dataclass(frozen=True)
class BackoffDecision:
    """How long to wait before retrying, and why."""

    wait_seconds: float
    reason: BackoffReason

    @property
    def rate_limited(self) -> bool:
        """True when the wait was caused by rate limiting."""
        return self.reason != BackoffReason.TRANSIENT_ERROR


def is_rate_limit_error(error: BaseException) -> bool:
    """Classify an error as rate limiting.

    Args:
        error: Any exception raised by a remote call.

    Returns:
        True for ``RateLimitExceeded``, HTTP 429, and errors whose message
        mentions a rate limit.
    """
    if isinstance(error, RateLimitExceeded):
        return True
    if isinstance(error, GitHubHTTPError) and error.status_code == 429:
        return True
    message = str(error).lower()
    return "rate limit" in message


def _parse_usage(resource: dict[str, Any]) -> RateLimitUsage:
    return RateLimitUsage(
        limit=int(resource.get("limit", 0)),
        remaining=int(resource.get("remaining", 0)),
        reset_time=datetime.fromtimestamp(int(resource.get("reset", 0)), tz=UTC),
        calls_made=int(resource.get("used", 0)),
    )


class RateBudgetService:
    """Query, estimate and wait on the GitHub rate budget.

    Args:
        rest_client: Client used for ``GET /rate_limit``.
        config: Backoff delays and warning thresholds.
        sleep: Coroutine used to wait; replaced by a fake in tests.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        rest_client: RestClient,
        config: RateLimitConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._rest = rest_client
        self._config = config or RateLimitConfig()
        self._sleep = sleep
        self._clock = clock
        self._gate = asyncio.Lock()
        self.last_snapshot: BudgetSnapshot | None = None

    @property
    def config(self) -> RateLimitConfig:
        """Backoff and warning configuration."""
        return self._config

    async def check_current_limits(self) -> BudgetSnapshot:
        """Query the current budget of both endpoint families.

        Returns:
            Fresh snapshot. The GraphQL section falls back to a full
            default budget resetting in one hour when GitHub omits it.

        Raises:
            GitHubHTTPError: If the rate limit endpoint cannot be queried.
        """
        data = await self._rest.get_rate_limit()
        resources = data.get("resources", {}) if isinstance(data, dict) else {}
        core = resources.get("core") or (data.get("rate") if isinstance(data, dict) else None)
        if not core:
            msg = "Rate limit response has no core section"
            raise GitHubHTTPError(msg)

        rest = _parse_usage(core)
        if resources.get("graphql"):
            graphql = _parse_usage(resources["graphql"])
        else:
            graphql = RateLimitUsage(
                limit=GRAPHQL_DEFAULT_LIMIT,
                remaining=GRAPHQL_DEFAULT_LIMIT,
                reset_time=self._clock() + timedelta(hours=1),
                calls_made=0,
            )

        snapshot = BudgetSnapshot(rest=rest, graphql=graphql, checked_at=self._clock())
        self.last_snapshot = snapshot
        logger.debug(
            "Rate budget: REST %d/%d, GraphQL %d/%d",
            rest.remaining,
            rest.limit,
            graphql.remaining,
            graphql.limit,
        )
        return snapshot

    async def estimate_required_calls(
        self,
        repositories: list[str],
        options: CollectionOptions,
    ) -> CallEstimate:
        """Estimate the REST calls a collection will need.

        One call per repository for metadata, plus per repository: 3 for
        issues (and 2 for their comments), 2 for pull requests (and 10 each
        for reviews and review comments), 5 for commits. The total gets a
        20% margin and is rounded up.

        Args:
            repositories: Repositories to collect, as ``owner/repo``.
            options: Collection options in effect.

        Returns:
            The estimate, with ``feasible`` judged against current REST budget.

        Raises:
            GitHubHTTPError: If the current budget cannot be queried.
        """
        count = len(repositories)
        per_repo = CALLS_REPOSITORY_METADATA
        if options.include_issues:
            per_repo += CALLS_ISSUES
            if options.include_comments:
                per_repo += CALLS_ISSUE_COMMENTS
        if options.include_pull_requests:
            per_repo += CALLS_PULL_REQUESTS
            if options.include_reviews:
                per_repo += CALLS_REVIEWS + CALLS_REVIEW_COMMENTS
        if options.include_commits:
            per_repo += CALLS_COMMITS

        numerator, denominator = SAFETY_MARGIN
        estimated_calls = -(-(per_repo * count * numerator) // denominator)
        minutes = -(-estimated_calls // CALLS_PER_MINUTE)

        snapshot = await self.check_current_limits()
        estimate = CallEstimate(
            estimated_calls=estimated_calls,
            estimated_duration=timedelta(minutes=minutes),
            feasible=estimated_calls <= snapshot.rest.remaining,
            recommended_batch_size=max(1, count // 4),
            repository_count=count,
        )
        logger.info(
            "Estimated %d API calls for %d repositories (~%d min, %d remaining)",
            estimated_calls,
            count,
            minutes,
            snapshot.rest.remaining,
        )
        return estimate

    async def validate_collection_feasible(self, estimate: CallEstimate) -> bool:
        """Check an estimate against the budget remaining right now.

        Args:
            estimate: Estimate from ``estimate_required_calls``.

        Returns:
            True when every endpoint family has enough budget left. False
            when it does not, or when the budget cannot be queried.
        """
        try:
            snapshot = await self.check_current_limits()
        except GitHubHTTPError as e:
            logger.error("Cannot validate collection feasibility: %s", e)
            return False

        rest_ok = estimate.estimated_calls <= snapshot.rest.remaining
        graphql_ok = estimate.estimated_graphql_points <= snapshot.graphql.remaining
        if not rest_ok:
            logger.warning(
                "Collection needs %d REST calls but only %d remain",
                estimate.estimated_calls,
                snapshot.rest.remaining,
            )
        if not graphql_ok:
            logger.warning(
                "Collection needs %d GraphQL points but only %d remain",
                estimate.estimated_graphql_points,
                snapshot.graphql.remaining,
            )
        return rest_ok and graphql_ok

    async def plan_backoff(
        self,
        error: BaseException,
        api_type: APIType = APIType.REST,
    ) -> BackoffDecision:
        """Decide how long to wait after a failed remote call.

        Args:
            error: The failure.
            api_type: Endpoint family the failed call belonged to.

        Returns:
            The wait and its reason. Non rate-limit errors get the short
            fixed delay; secondary limits (budget left) the cooldown;
            exhausted budgets wait until reset plus a buffer; an unknown
            reset time gets the fallback delay.
        """
        cfg = self._config
        if not is_rate_limit_error(error):
            return BackoffDecision(cfg.error_delay_seconds, BackoffReason.TRANSIENT_ERROR)

        remaining: int | None = None
        reset_at: datetime | None = None
        retry_after: int | None = None
        if isinstance(error, RateLimitExceeded):
            remaining = error.remaining
            reset_at = error.reset_at
            retry_after = error.retry_after

        if remaining is None or (remaining == 0 and reset_at is None):
            try:
                usage = (await self.check_current_limits()).usage(api_type)
            except GitHubHTTPError as e:
                logger.warning("Rate limit reset time unknown (%s)", e)
                return BackoffDecision(cfg.fallback_delay_seconds, BackoffReason.RESET_UNKNOWN)
            remaining = usage.remaining
            reset_at = usage.reset_time

        if remaining > 0:
            wait = max(cfg.secondary_cooldown_seconds, float(retry_after or 0))
            return BackoffDecision(wait, BackoffReason.SECONDARY_LIMIT)

        if reset_at is None:
            return BackoffDecision(cfg.fallback_delay_seconds, BackoffReason.RESET_UNKNOWN)

        until_reset = max(0.0, (reset_at - self._clock()).total_seconds())
        return BackoffDecision(
            until_reset + cfg.reset_buffer_seconds,
            BackoffReason.BUDGET_EXHAUSTED,
        )

    async def implement_smart_backoff(
        self,
        error: BaseException,
        api_type: APIType = APIType.REST,
        decision: BackoffDecision | None = None,
    ) -> BackoffDecision:
        """Wait until it is safe to retry after ``error``.

        Does not return before the wait is over. The wait holds the backoff
        gate, so every caller of ``wait_until_clear`` stalls with it.

        Args:
            error: The failure that triggered the backoff.
            api_type: Endpoint family the failed call belonged to.
            decision: A decision already made by ``plan_backoff``.

        Returns:
            The decision that was waited out.
        """
        if decision is None:
            decision = await self.plan_backoff(error, api_type)
        async with self._gate:
            logger.warning(
                "Backing off %.1fs (%s) after: %s",
                decision.wait_seconds,
                decision.reason.value,
                error,
            )
            await self._sleep(decision.wait_seconds)
        return decision

    async def wait_until_clear(self) -> None:
        """Block while another caller is backing off."""
        async with self._gate:
            return

    async def monitor_usage(self, calls_made: int) -> BudgetSnapshot | None:
        """Re-check the budget mid-collection and warn when it runs low.

        Args:
            calls_made: Calls issued so far in this run, for logging.

        Returns:
            Fresh snapshot, or None if the budget could not be queried.
        """
        try:
            snapshot = await self.check_current_limits()
        except GitHubHTTPError as e:
            logger.warning("Could not re-check rate budget after %d calls: %s", calls_made, e)
            return None

        if snapshot.rest.remaining < self._config.low_budget_warning:
            logger.warning(
                "Low API budget: %d calls remaining after %d calls this run (resets %s)",
                snapshot.rest.remaining,
                calls_made,
                snapshot.rest.reset_time.isoformat(),
            )
        else:
            logger.debug("%d calls made, %d remaining", calls_made, snapshot.rest.remaining)
        return snapshot

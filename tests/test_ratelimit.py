"""Tests for the rate budget service."""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import NOW, RESET_TIMESTAMP, FakeSleep, rate_limit_payload

from gh_project_summary.config import CollectionOptions, RateLimitConfig
from gh_project_summary.github.http import (
    GitHubHTTPError,
    NotFoundError,
    RateLimitExceeded,
    TransportError,
)
from gh_project_summary.github.ratelimit import (
    APIType,
    BackoffReason,
    CallEstimate,
    RateBudgetService,
    RateLimitUsage,
    is_rate_limit_error,
)

REPOSITORIES = [f"octo/repo{i}" for i in range(10)]
ALL_ENABLED = CollectionOptions()
ISSUES_ONLY = CollectionOptions(
    include_pull_requests=False,
    include_commits=False,
    include_comments=False,
    include_reviews=False,
)


def make_service(rest_client: MagicMock, sleep: FakeSleep | None = None) -> RateBudgetService:
    """Budget service with a fixed clock."""
    return RateBudgetService(
        rest_client,
        RateLimitConfig(),
        sleep=sleep or FakeSleep(),
        clock=lambda: NOW,
    )


class TestRateLimitUsage:
    """Tests for RateLimitUsage snapshots."""

    def test_remaining_percent(self) -> None:
        """Test remaining percentage and exhaustion."""
        usage = RateLimitUsage(limit=5000, remaining=1250, reset_time=NOW, calls_made=3750)
        assert usage.remaining_percent == 25.0
        assert not usage.is_exhausted()

    def test_exhausted(self) -> None:
        """Test a zero budget is exhausted."""
        usage = RateLimitUsage(limit=0, remaining=0, reset_time=NOW, calls_made=0)
        assert usage.is_exhausted()
        assert usage.remaining_percent == 0.0


class TestCheckCurrentLimits:
    """Tests for querying the budget."""

    @pytest.mark.asyncio
    async def test_parses_both_families(self, rest_client: MagicMock) -> None:
        """Test REST and GraphQL sections are read."""
        service = make_service(rest_client)
        snapshot = await service.check_current_limits()

        assert snapshot.rest.remaining == 4900
        assert snapshot.rest.calls_made == 100
        assert snapshot.rest.reset_time == datetime.fromtimestamp(RESET_TIMESTAMP, tz=UTC)
        assert snapshot.graphql.remaining == 4990
        assert snapshot.usage(APIType.GRAPHQL) is snapshot.graphql
        assert service.last_snapshot is snapshot

    @pytest.mark.asyncio
    async def test_graphql_defaults_when_missing(self, rest_client: MagicMock) -> None:
        """Test a full GraphQL budget resetting in one hour is assumed."""
        rest_client.get_rate_limit.return_value = rate_limit_payload(graphql_remaining=None)
        snapshot = await make_service(rest_client).check_current_limits()

        assert snapshot.graphql.limit == 5000
        assert snapshot.graphql.remaining == 5000
        assert snapshot.graphql.reset_time == NOW + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_missing_core_section(self, rest_client: MagicMock) -> None:
        """Test a payload without a core section is an error."""
        rest_client.get_rate_limit.return_value = {"resources": {}}
        with pytest.raises(GitHubHTTPError, match="no core section"):
            await make_service(rest_client).check_current_limits()

    @pytest.mark.asyncio
    async def test_snapshot_to_dict(self, rest_client: MagicMock) -> None:
        """Test the api_usage layout."""
        snapshot = await make_service(rest_client).check_current_limits()
        data = snapshot.to_dict()

        assert data["github_rest_api"]["remaining"] == 4900
        assert data["github_graphql_api"]["limit"] == 5000
        assert data["checked_at"] == NOW.isoformat()


class TestEstimateRequiredCalls:
    """Tests for the call estimate heuristic."""

    @pytest.mark.asyncio
    async def test_everything_enabled(self, rest_client: MagicMock) -> None:
        """Test 33 calls per repository plus a 20% margin."""
        estimate = await make_service(rest_client).estimate_required_calls(
            REPOSITORIES, ALL_ENABLED
        )

        assert estimate.estimated_calls == 396
        assert estimate.estimated_duration == timedelta(minutes=7)
        assert estimate.recommended_batch_size == 2
        assert estimate.repository_count == 10
        assert estimate.feasible

    @pytest.mark.asyncio
    async def test_more_resources_cost_more(self, rest_client: MagicMock) -> None:
        """Test enabling comments, pull requests and reviews raises the estimate."""
        service = make_service(rest_client)
        full = await service.estimate_required_calls(REPOSITORIES, ALL_ENABLED)
        issues_only = await service.estimate_required_calls(REPOSITORIES, ISSUES_ONLY)

        assert issues_only.estimated_calls == 48
        assert full.estimated_calls > issues_only.estimated_calls

    @pytest.mark.asyncio
    async def test_rounds_up(self, rest_client: MagicMock) -> None:
        """Test fractional estimates round up."""
        estimate = await make_service(rest_client).estimate_required_calls(
            ["octo/alpha"], ISSUES_ONLY
        )
        assert estimate.estimated_calls == 5
        assert estimate.recommended_batch_size == 1

    @pytest.mark.asyncio
    async def test_infeasible_when_budget_low(self, rest_client: MagicMock) -> None:
        """Test the estimate is judged against the remaining budget."""
        rest_client.get_rate_limit.return_value = rate_limit_payload(remaining=100)
        estimate = await make_service(rest_client).estimate_required_calls(
            REPOSITORIES, ALL_ENABLED
        )
        assert not estimate.feasible


class TestValidateCollectionFeasible:
    """Tests for feasibility checks."""

    @staticmethod
    def estimate(calls: int, points: int = 0) -> CallEstimate:
        return CallEstimate(
            estimated_calls=calls,
            estimated_duration=timedelta(minutes=1),
            feasible=True,
            recommended_batch_size=1,
            repository_count=1,
            estimated_graphql_points=points,
        )

    @pytest.mark.asyncio
    async def test_fits(self, rest_client: MagicMock) -> None:
        """Test an estimate within both budgets."""
        assert await make_service(rest_client).validate_collection_feasible(self.estimate(4900))

    @pytest.mark.asyncio
    async def test_rest_budget_exceeded(self, rest_client: MagicMock) -> None:
        """Test an estimate above REST remaining."""
        assert not await make_service(rest_client).validate_collection_feasible(
            self.estimate(4901)
        )

    @pytest.mark.asyncio
    async def test_graphql_budget_exceeded(self, rest_client: MagicMock) -> None:
        """Test an estimate above GraphQL remaining."""
        assert not await make_service(rest_client).validate_collection_feasible(
            self.estimate(10, points=5000)
        )

    @pytest.mark.asyncio
    async def test_query_failure_is_infeasible(self, rest_client: MagicMock) -> None:
        """Test an unreachable rate limit endpoint blocks the collection."""
        rest_client.get_rate_limit.side_effect = TransportError("connection reset")
        assert not await make_service(rest_client).validate_collection_feasible(self.estimate(1))


class TestPlanBackoff:
    """Tests for backoff decisions."""

    @pytest.mark.asyncio
    async def test_transient_error(self, rest_client: MagicMock) -> None:
        """Test non rate-limit errors get the short delay."""
        decision = await make_service(rest_client).plan_backoff(TransportError("timeout"))

        assert decision.wait_seconds == 1.0
        assert decision.reason == BackoffReason.TRANSIENT_ERROR
        assert not decision.rate_limited
        rest_client.get_rate_limit.assert_not_called()

    @pytest.mark.asyncio
    async def test_secondary_limit(self, rest_client: MagicMock) -> None:
        """Test a refusal with budget left is a secondary limit."""
        decision = await make_service(rest_client).plan_backoff(RateLimitExceeded(remaining=12))
        assert decision.wait_seconds == 60.0
        assert decision.reason == BackoffReason.SECONDARY_LIMIT

    @pytest.mark.asyncio
    async def test_secondary_limit_honors_retry_after(self, rest_client: MagicMock) -> None:
        """Test a longer Retry-After wins over the cooldown."""
        error = RateLimitExceeded(remaining=12, retry_after=120)
        decision = await make_service(rest_client).plan_backoff(error)
        assert decision.wait_seconds == 120.0

    @pytest.mark.asyncio
    async def test_exhausted_waits_for_reset(self, rest_client: MagicMock) -> None:
        """Test an exhausted budget waits until reset plus the buffer."""
        error = RateLimitExceeded(reset_at=NOW + timedelta(minutes=10), remaining=0)
        decision = await make_service(rest_client).plan_backoff(error)

        assert decision.wait_seconds == 630.0
        assert decision.reason == BackoffReason.BUDGET_EXHAUSTED
        rest_client.get_rate_limit.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_from_fresh_query(self, rest_client: MagicMock) -> None:
        """Test missing details are filled in from /rate_limit."""
        rest_client.get_rate_limit.return_value = rate_limit_payload(remaining=0)
        decision = await make_service(rest_client).plan_backoff(RateLimitExceeded())

        assert decision.wait_seconds == 1830.0
        assert decision.reason == BackoffReason.BUDGET_EXHAUSTED

    @pytest.mark.asyncio
    async def test_reset_unknown(self, rest_client: MagicMock) -> None:
        """Test the fallback delay when the reset time cannot be found."""
        rest_client.get_rate_limit.side_effect = TransportError("down")
        decision = await make_service(rest_client).plan_backoff(RateLimitExceeded())

        assert decision.wait_seconds == 300.0
        assert decision.reason == BackoffReason.RESET_UNKNOWN

    @pytest.mark.asyncio
    async def test_message_classified_as_rate_limit(self, rest_client: MagicMock) -> None:
        """Test errors that mention a rate limit are treated as one."""
        error = GitHubHTTPError("API rate limit exceeded for user", status_code=403)
        decision = await make_service(rest_client).plan_backoff(error)
        assert decision.rate_limited


class TestSmartBackoff:
    """Tests for waiting out a backoff."""

    @pytest.mark.asyncio
    async def test_sleeps_for_decision(self, rest_client: MagicMock, fake_sleep: FakeSleep) -> None:
        """Test the planned wait is slept."""
        service = make_service(rest_client, fake_sleep)
        error = RateLimitExceeded(reset_at=NOW + timedelta(minutes=10), remaining=0)

        decision = await service.implement_smart_backoff(error)

        assert fake_sleep.calls == [630.0]
        assert decision.reason == BackoffReason.BUDGET_EXHAUSTED

    @pytest.mark.asyncio
    async def test_blocks_other_callers(self, rest_client: MagicMock) -> None:
        """Test callers waiting on the gate stall until the backoff ends."""
        release = asyncio.Event()

        async def slow_sleep(seconds: float) -> None:
            await release.wait()

        service = RateBudgetService(rest_client, sleep=slow_sleep, clock=lambda: NOW)
        backoff = asyncio.create_task(service.implement_smart_backoff(TransportError("x")))
        await asyncio.sleep(0)

        waiter = asyncio.create_task(service.wait_until_clear())
        await asyncio.sleep(0)
        assert not waiter.done()

        release.set()
        await asyncio.gather(backoff, waiter)
        assert waiter.done()


class TestMonitorUsage:
    """Tests for mid-run budget checks."""

    @pytest.mark.asyncio
    async def test_warns_when_low(
        self, rest_client: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a warning below the threshold."""
        rest_client.get_rate_limit.return_value = rate_limit_payload(remaining=50)
        with caplog.at_level(logging.WARNING):
            snapshot = await make_service(rest_client).monitor_usage(calls_made=42)

        assert snapshot is not None
        assert "Low API budget" in caplog.text

    @pytest.mark.asyncio
    async def test_query_failure_returns_none(self, rest_client: MagicMock) -> None:
        """Test monitoring never fails the run."""
        rest_client.get_rate_limit = AsyncMock(side_effect=TransportError("down"))
        assert await make_service(rest_client).monitor_usage(calls_made=1) is None


class TestIsRateLimitError:
    """Tests for rate limit classification."""

    def test_classification(self) -> None:
        """Test which errors count as rate limiting."""
        assert is_rate_limit_error(RateLimitExceeded())
        assert is_rate_limit_error(GitHubHTTPError("too many", status_code=429))
        assert is_rate_limit_error(ValueError("secondary rate limit hit"))
        assert not is_rate_limit_error(GitHubHTTPError("Forbidden", status_code=403))
        assert not is_rate_limit_error(TransportError("timeout"))
        assert not is_rate_limit_error(NotFoundError("Not found: /repos/octo/r429", status_code=404))

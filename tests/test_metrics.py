"""Tests for project, repository and contributor metrics."""

from datetime import timedelta
from typing import Any

import pytest
from conftest import (
    NOW,
    comment_payload,
    commit_payload,
    iso,
    issue_payload,
    pr_payload,
    repo_payload,
    review_payload,
)

from gh_project_summary.collect.indexes import build_indexes
from gh_project_summary.collect.models import (
    CommitItem,
    IssueCommentItem,
    IssueItem,
    PullRequestItem,
    RawData,
    RepositoryCollection,
    RepositoryItem,
    ReviewItem,
)
from gh_project_summary.metrics.project import (
    ContributorActivity,
    RepositoryFacts,
    aggregate_repository_facts,
    calculate_cross_repo_metrics,
    calculate_distribution_metrics,
    calculate_growth_trends,
    collect_contributors,
    compute_metrics,
)


def tagged(model: type[Any], payload: dict[str, Any], full_name: str, **extra: Any) -> Any:
    """Validate a payload tagged with its repository."""
    return model.model_validate({**payload, "repository_name": full_name, **extra})


def sample_raw() -> RawData:
    """Two repositories: an active, documented one and a stale one."""
    alpha = RepositoryCollection(
        repository=tagged(RepositoryItem, repo_payload("octo/alpha"), "octo/alpha"),
        issues=[
            tagged(
                IssueItem,
                issue_payload(
                    1,
                    state="closed",
                    comments=1,
                    created_at=NOW - timedelta(days=5),
                    closed_at=NOW - timedelta(days=3),
                ),
                "octo/alpha",
            ),
            tagged(IssueItem, issue_payload(2), "octo/alpha"),
        ],
        issue_comments=[
            tagged(IssueCommentItem, comment_payload(1), "octo/alpha", issue_id=1001)
        ],
        pull_requests=[
            tagged(
                PullRequestItem,
                pr_payload(1, state="closed", merged_at=NOW - timedelta(days=2)),
                "octo/alpha",
            )
        ],
        pr_reviews=[tagged(ReviewItem, review_payload(1), "octo/alpha", pull_request_id=5001)],
        commits=[tagged(CommitItem, commit_payload("a1"), "octo/alpha")],
    )
    beta = RepositoryCollection(
        repository=tagged(
            RepositoryItem,
            repo_payload(
                "octo/beta", description=None, pushed_at=iso(NOW - timedelta(days=100))
            ),
            "octo/beta",
        ),
        pull_requests=[tagged(PullRequestItem, pr_payload(2), "octo/beta")],
    )
    return RawData.flatten([alpha, beta])


class TestAggregateRepositoryFacts:
    """Tests for project totals and averages."""

    def test_totals_and_averages(self) -> None:
        """Test totals, rounded averages and ratios."""
        facts = [
            RepositoryFacts(name="a", issues=5, commits=10, stars=3),
            RepositoryFacts(name="b", issues=8, pull_requests=4),
            RepositoryFacts(name="c", issues=3, commits=2),
        ]

        result = aggregate_repository_facts(facts)

        assert result["total_repositories"] == 3
        assert result["total_issues"] == 16
        assert result["average_issues_per_repo"] == 5.33
        assert result["total_commits"] == 12
        assert result["average_stars_per_repo"] == 1.0
        assert result["commits_to_issues_ratio"] == 0.75
        assert result["issues_to_prs_ratio"] == 4.0

    def test_empty(self) -> None:
        """Test no repositories give zero averages."""
        result = aggregate_repository_facts([])
        assert result["total_repositories"] == 0
        assert result["average_issues_per_repo"] == 0.0
        assert result["commits_to_prs_ratio"] == 0.0


class TestCrossRepoMetrics:
    """Tests for the activity density distribution."""

    def test_inactive_repositories_excluded(self) -> None:
        """Test statistics cover active repositories only."""
        facts = [
            RepositoryFacts(name=name, activity_density=density)
            for name, density in [("a", 1.0), ("b", 3.0), ("c", 0.0), ("d", 2.0)]
        ]

        result = calculate_cross_repo_metrics(facts)

        assert result["repositories_analyzed"] == 4
        assert result["active_repositories"] == 3
        assert result["mean_activity_density"] == 2.0
        assert result["median_activity_density"] == 2.0
        assert result["activity_density_variance"] == 0.67
        assert result["activity_distribution_gini"] == 0.22
        assert result["activity_density_p25"] == 1.5
        assert result["activity_density_p75"] == 2.5
        assert result["activity_density_p90"] == 2.8


class TestDistributionMetrics:
    """Tests for contribution inequality."""

    def test_top_contributor_share(self) -> None:
        """Test the top share and gini over totals."""
        contributors = [
            ContributorActivity(login="alice", commits_authored=3),
            ContributorActivity(login="bob", issues_created=1),
        ]

        result = calculate_distribution_metrics(contributors)

        assert result["contributor_count"] == 2
        assert result["top_contributor_percentage"] == 75.0
        assert result["contribution_gini"] == 0.25
        assert result["top_contributors"] == [
            {"login": "alice", "contributions": 3},
            {"login": "bob", "contributions": 1},
        ]

    def test_no_contributors(self) -> None:
        """Test an empty project."""
        result = calculate_distribution_metrics([])
        assert result["top_contributor_percentage"] == 0.0
        assert result["top_contributors"] == []


class TestGrowthTrends:
    """Tests for 30-day growth."""

    def test_recent_over_previous(self) -> None:
        """Test the last 30 days are compared with the 30 before."""
        raw = RawData(
            commits=[
                CommitItem.model_validate(commit_payload("r1", date=NOW - timedelta(days=1))),
                CommitItem.model_validate(commit_payload("r2", date=NOW - timedelta(days=10))),
                CommitItem.model_validate(commit_payload("p1", date=NOW - timedelta(days=45))),
            ],
            issues=[IssueItem.model_validate(issue_payload(1))],
        )

        trends = calculate_growth_trends(raw, NOW)

        assert trends == {
            "commit_growth_rate_30d": 1.0,
            "issue_growth_rate_30d": 1.0,
            "pr_growth_rate_30d": 0.0,
            "contributor_growth_rate_30d": 1.0,
        }


class TestContributors:
    """Tests for contributor grouping."""

    def test_grouping_and_order(self) -> None:
        """Test every kind of contribution lands on its author."""
        contributors = collect_contributors(sample_raw())

        assert [c.login for c in contributors] == ["alice", "bob", "carol", "dave", "erin"]
        alice = contributors[0].to_dict()
        assert alice["contributions"]["issues_created"] == 2
        assert alice["total_contributions"] == 2
        assert alice["repositories"] == ["octo/alpha"]
        assert alice["activity_timeline"] == {"2025-03": 2}
        assert alice["first_contribution"] == (NOW - timedelta(days=5)).isoformat()

    def test_unlinked_commit_uses_git_name(self) -> None:
        """Test commits without an account count under the git author name."""
        raw = RawData(commits=[CommitItem.model_validate(commit_payload("a", login=None))])
        assert [c.login for c in collect_contributors(raw)] == ["Carol Dev"]


class TestComputeMetrics:
    """Tests for the full metrics section."""

    @pytest.fixture
    def metrics(self) -> dict:
        """Metrics over the sample project."""
        raw = sample_raw()
        return compute_metrics(raw, build_indexes(raw), NOW)

    def test_sections(self, metrics: dict) -> None:
        """Test the four top-level sections."""
        assert set(metrics) == {
            "project_summary",
            "repository_metrics",
            "contributor_metrics",
            "timeline_metrics",
        }

    def test_project_summary(self, metrics: dict) -> None:
        """Test totals, languages and activity."""
        summary = metrics["project_summary"]
        assert summary["total_repositories"] == 2
        assert summary["total_issues"] == 2
        assert summary["total_pull_requests"] == 2
        assert summary["total_contributors"] == 5
        assert summary["languages"] == ["Python"]
        assert summary["primary_language"] == "Python"
        assert summary["activity_summary"] == {
            "active_contributors_last_30_days": 5,
            "commits_last_30_days": 1,
            "issues_opened_last_30_days": 2,
            "prs_opened_last_30_days": 2,
        }

    def test_health_metrics(self, metrics: dict) -> None:
        """Test resolution times and coverage rates."""
        assert metrics["project_summary"]["health_metrics"] == {
            "avg_issue_resolution_days": 2.0,
            "avg_pr_merge_days": 2.0,
            "issue_response_rate": 50.0,
            "pr_review_coverage": 50.0,
        }

    def test_repository_metrics(self, metrics: dict) -> None:
        """Test health and activity scores per repository."""
        alpha, beta = metrics["repository_metrics"]

        assert alpha["full_name"] == "octo/alpha"
        assert alpha["health_score"] == 85
        assert alpha["activity_score"] == 6.0
        assert alpha["contributor_count"] == 3
        assert beta["health_score"] == 0
        assert beta["activity_score"] == 2.0
        assert beta["contributor_count"] == 1

    def test_empty_project(self) -> None:
        """Test metrics over nothing."""
        raw = RawData()
        metrics = compute_metrics(raw, build_indexes(raw), NOW)

        summary = metrics["project_summary"]
        assert summary["primary_language"] == "Unknown"
        assert summary["health_metrics"]["avg_issue_resolution_days"] is None
        assert metrics["repository_metrics"] == []
        assert metrics["contributor_metrics"] == []

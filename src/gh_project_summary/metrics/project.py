"""Project, repository and contributor metrics.

Turns the flat arrays and their indexes into the ``metrics`` section of the
aggregate result. All arithmetic goes through ``metrics.facts``.

Health score (0-100) per repository:
    - 40 points scaled by pull request review coverage
    - 30 points scaled by the share of collected issues that are closed
    - 20 points when pushed within the last 30 days
    - 10 points when the repository has a description
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from gh_project_summary.metrics.facts import (
    days_between,
    find_top_n,
    gini_coefficient,
    growth_rate,
    mean,
    median,
    percentage,
    percentiles,
    ratio,
    variance,
)
from gh_project_summary.metrics.timeline import calculate_timeline_metrics

if TYPE_CHECKING:
    from gh_project_summary.collect.indexes import OptimalIndexes
    from gh_project_summary.collect.models import RawData, RepositoryItem

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=30)
HEALTH_WEIGHTS = {"review_coverage": 40, "issue_closure": 30, "recent_push": 20, "description": 10}
ACTIVITY_WEIGHTS = {"commits": 1.0, "issues": 1.0, "pull_requests": 2.0, "reviews": 1.0}
DENSITY_PERCENTILES = (25, 50, 75, 90)
TOP_CONTRIBUTORS = 5


@dataclass
class RepositoryFacts:
    """Per-repository counts feeding the project aggregates."""

    name: str
    issues: int = 0
    closed_issues: int = 0
    pull_requests: int = 0
    commits: int = 0
    reviews: int = 0
    stars: int = 0
    forks: int = 0
    watchers: int = 0
    contributors: int = 0
    activity_density: float = 0.0


@dataclass
class ContributorActivity:
    """Contributions of one person across the project."""

    login: str
    commits_authored: int = 0
    issues_created: int = 0
    prs_created: int = 0
    comments_posted: int = 0
    reviews_submitted: int = 0
    repositories: set[str] = field(default_factory=set)
    timestamps: list[datetime] = field(default_factory=list)

    @property
    def total(self) -> int:
        """All contributions."""
        return (
            self.commits_authored
            + self.issues_created
            + self.prs_created
            + self.comments_posted
            + self.reviews_submitted
        )

    def record(self, kind: str, repository: str, moment: datetime | None) -> None:
        """Count one contribution."""
        setattr(self, kind, getattr(self, kind) + 1)
        self.repositories.add(repository)
        if moment is not None:
            self.timestamps.append(moment)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a ``contributor_metrics`` entry."""
        ordered = sorted(self.timestamps)
        timeline = Counter(moment.strftime("%Y-%m") for moment in ordered)
        return {
            "login": self.login,
            "contributions": {
                "comments_posted": self.comments_posted,
                "commits_authored": self.commits_authored,
                "issues_created": self.issues_created,
                "prs_created": self.prs_created,
                "reviews_submitted": self.reviews_submitted,
            },
            "total_contributions": self.total,
            "repositories": sorted(self.repositories),
            "first_contribution": ordered[0].isoformat() if ordered else None,
            "last_contribution": ordered[-1].isoformat() if ordered else None,
            "activity_timeline": dict(sorted(timeline.items())),
        }


def aggregate_repository_facts(facts: list[RepositoryFacts]) -> dict[str, Any]:
    """Project totals, per-repository averages and cross ratios.

    Args:
        facts: One entry per collected repository.

    Returns:
        Totals (``total_issues``...), averages (``average_issues_per_repo``...)
        and ratios (``commits_to_issues_ratio``...).
    """
    count = len(facts)
    total_issues = sum(f.issues for f in facts)
    total_prs = sum(f.pull_requests for f in facts)
    total_commits = sum(f.commits for f in facts)
    total_stars = sum(f.stars for f in facts)

    return {
        "total_repositories": count,
        "total_issues": total_issues,
        "total_pull_requests": total_prs,
        "total_commits": total_commits,
        "total_stars": total_stars,
        "total_forks": sum(f.forks for f in facts),
        "total_watchers": sum(f.watchers for f in facts),
        "average_issues_per_repo": ratio(total_issues, count),
        "average_prs_per_repo": ratio(total_prs, count),
        "average_commits_per_repo": ratio(total_commits, count),
        "average_stars_per_repo": ratio(total_stars, count),
        "commits_to_issues_ratio": ratio(total_commits, total_issues),
        "commits_to_prs_ratio": ratio(total_commits, total_prs),
        "issues_to_prs_ratio": ratio(total_issues, total_prs),
    }


def calculate_cross_repo_metrics(facts: list[RepositoryFacts]) -> dict[str, Any]:
    """Distribution of activity density across repositories.

    Repositories without activity are left out of the distribution.
    """
    densities = [f.activity_density for f in facts if f.activity_density > 0]
    result: dict[str, Any] = {
        "repositories_analyzed": len(facts),
        "active_repositories": len(densities),
        "mean_activity_density": mean(densities),
        "median_activity_density": median(densities),
        "activity_density_variance": variance(densities),
        "activity_distribution_gini": gini_coefficient(densities),
    }
    for key, value in percentiles(densities, DENSITY_PERCENTILES).items():
        result[f"activity_density_{key.lower()}"] = value
    return result


def calculate_distribution_metrics(contributors: list[ContributorActivity]) -> dict[str, Any]:
    """How evenly contributions are spread across people."""
    totals = [c.total for c in contributors]
    top = find_top_n({c.login: c.total for c in contributors}, TOP_CONTRIBUTORS)
    return {
        "contributor_count": len(contributors),
        "commit_gini": gini_coefficient([c.commits_authored for c in contributors]),
        "issue_gini": gini_coefficient([c.issues_created for c in contributors]),
        "pull_request_gini": gini_coefficient([c.prs_created for c in contributors]),
        "contribution_gini": gini_coefficient(totals),
        "top_contributor_percentage": percentage(max(totals, default=0), sum(totals)),
        "top_contributors": [{"login": login, "contributions": total} for login, total in top],
    }


def _in_window(moment: datetime | None, start: datetime, end: datetime) -> bool:
    return moment is not None and start <= moment < end


def calculate_growth_trends(raw: RawData, now: datetime) -> dict[str, float]:
    """Growth of the last 30 days over the 30 days before."""
    recent_start = now - RECENT_WINDOW
    previous_start = recent_start - RECENT_WINDOW

    def window_counts(start: datetime, end: datetime) -> dict[str, float]:
        commits = [c for c in raw.commits if _in_window(c.authored_at, start, end)]
        issues = [i for i in raw.issues if _in_window(i.created_at, start, end)]
        prs = [p for p in raw.pull_requests if _in_window(p.created_at, start, end)]
        people = {c.author_name for c in commits}
        people.update(i.author_login for i in issues if i.author_login)
        people.update(p.author_login for p in prs if p.author_login)
        return {
            "commits": len(commits),
            "issues": len(issues),
            "pull_requests": len(prs),
            "contributors": len(people),
        }

    recent = window_counts(recent_start, now)
    previous = window_counts(previous_start, recent_start)
    return {
        "commit_growth_rate_30d": growth_rate(recent["commits"], previous["commits"]),
        "issue_growth_rate_30d": growth_rate(recent["issues"], previous["issues"]),
        "pr_growth_rate_30d": growth_rate(recent["pull_requests"], previous["pull_requests"]),
        "contributor_growth_rate_30d": growth_rate(
            recent["contributors"], previous["contributors"]
        ),
    }


def collect_contributors(raw: RawData) -> list[ContributorActivity]:
    """Group every contribution by person.

    Commits count towards the GitHub login when the commit is linked to an
    account, otherwise towards the git author name.

    Returns:
        Contributors, most active first, ties by login.
    """
    people: dict[str, ContributorActivity] = {}

    def person(login: str) -> ContributorActivity:
        if login not in people:
            people[login] = ContributorActivity(login=login)
        return people[login]

    for commit in raw.commits:
        login = commit.author.login if commit.author else commit.author_name
        person(login).record("commits_authored", commit.repository_key, commit.authored_at)
    for issue in raw.issues:
        if issue.author_login:
            person(issue.author_login).record(
                "issues_created", issue.repository_key, issue.created_at
            )
    for pr in raw.pull_requests:
        if pr.author_login:
            person(pr.author_login).record("prs_created", pr.repository_key, pr.created_at)
    for comment in (*raw.issue_comments, *raw.pr_review_comments):
        if comment.user:
            person(comment.user.login).record(
                "comments_posted", comment.repository_key, comment.created_at
            )
    for review in raw.pr_reviews:
        if review.user:
            person(review.user.login).record(
                "reviews_submitted", review.repository_key, review.submitted_at
            )

    return sorted(people.values(), key=lambda c: (-c.total, c.login))


def _health_score(
    repository: RepositoryItem,
    facts: RepositoryFacts,
    reviewed_prs: int,
    now: datetime,
) -> int:
    score = 0.0
    if facts.pull_requests:
        score += HEALTH_WEIGHTS["review_coverage"] * reviewed_prs / facts.pull_requests
    if facts.issues:
        score += HEALTH_WEIGHTS["issue_closure"] * facts.closed_issues / facts.issues
    if repository.pushed_at and now - repository.pushed_at <= RECENT_WINDOW:
        score += HEALTH_WEIGHTS["recent_push"]
    if (repository.model_extra or {}).get("description"):
        score += HEALTH_WEIGHTS["description"]
    return round(score)


def _activity_density(raw: RawData, indexes: OptimalIndexes, repository: str) -> float:
    moments = [raw.issues[i].created_at for i in indexes.issues_by_repo.get(repository, [])]
    moments += [raw.pull_requests[i].created_at for i in indexes.prs_by_repo.get(repository, [])]
    moments += [raw.commits[i].authored_at for i in indexes.commits_by_repo.get(repository, [])]
    known = [m for m in moments if m is not None]
    if not known:
        return 0.0
    span_days = days_between(min(known), max(known)) + 1
    return ratio(len(known), span_days)


def repository_facts(raw: RawData, indexes: OptimalIndexes) -> list[RepositoryFacts]:
    """Per-repository counts, in repository order."""
    facts = []
    for repository in raw.repositories:
        name = repository.repository_key
        issue_positions = indexes.issues_by_repo.get(name, [])
        pr_positions = indexes.prs_by_repo.get(name, [])
        commit_positions = indexes.commits_by_repo.get(name, [])

        people = {raw.issues[i].author_login for i in issue_positions}
        people.update(raw.pull_requests[i].author_login for i in pr_positions)
        people.update(raw.commits[i].author_name for i in commit_positions)
        people.discard(None)

        facts.append(
            RepositoryFacts(
                name=name,
                issues=len(issue_positions),
                closed_issues=sum(1 for i in issue_positions if raw.issues[i].state == "closed"),
                pull_requests=len(pr_positions),
                commits=len(commit_positions),
                reviews=sum(
                    len(indexes.reviews_by_pr.get(raw.pull_requests[i].pull_request_id, []))
                    for i in pr_positions
                ),
                stars=repository.stargazers_count,
                forks=repository.forks_count,
                watchers=repository.watchers_count,
                contributors=len(people),
                activity_density=_activity_density(raw, indexes, name),
            )
        )
    return facts


def _repository_metrics(
    raw: RawData,
    indexes: OptimalIndexes,
    facts: list[RepositoryFacts],
    now: datetime,
) -> list[dict[str, Any]]:
    metrics = []
    for repository, repo_facts in zip(raw.repositories, facts, strict=True):
        reviewed_prs = sum(
            1
            for i in indexes.prs_by_repo.get(repo_facts.name, [])
            if indexes.reviews_by_pr.get(raw.pull_requests[i].pull_request_id)
        )
        activity = (
            ACTIVITY_WEIGHTS["commits"] * repo_facts.commits
            + ACTIVITY_WEIGHTS["issues"] * repo_facts.issues
            + ACTIVITY_WEIGHTS["pull_requests"] * repo_facts.pull_requests
            + ACTIVITY_WEIGHTS["reviews"] * repo_facts.reviews
        )
        metrics.append(
            {
                "name": repository.name,
                "full_name": repository.full_name,
                "language": repository.language,
                "stars": repository.stargazers_count,
                "forks": repository.forks_count,
                "open_issues": repository.open_issues_count,
                "last_push": repository.pushed_at.isoformat() if repository.pushed_at else None,
                "contributor_count": repo_facts.contributors,
                "activity_score": round(activity, 2),
                "health_score": _health_score(repository, repo_facts, reviewed_prs, now),
            }
        )
    return metrics


def _health_metrics(raw: RawData, indexes: OptimalIndexes) -> dict[str, Any]:
    resolution_days = [
        days_between(issue.created_at, issue.closed_at)
        for issue in raw.issues
        if issue.created_at and issue.closed_at
    ]
    merge_days = [
        days_between(pr.created_at, pr.merged_at)
        for pr in raw.pull_requests
        if pr.created_at and pr.merged_at
    ]
    responded = sum(1 for issue in raw.issues if issue.comments > 0)
    reviewed = sum(1 for pr in raw.pull_requests if indexes.reviews_by_pr.get(pr.pull_request_id))
    return {
        "avg_issue_resolution_days": mean(resolution_days) if resolution_days else None,
        "avg_pr_merge_days": mean(merge_days) if merge_days else None,
        "issue_response_rate": percentage(responded, len(raw.issues)),
        "pr_review_coverage": percentage(reviewed, len(raw.pull_requests)),
    }


def _activity_summary(
    raw: RawData,
    contributors: list[ContributorActivity],
    now: datetime,
) -> dict[str, int]:
    start = now - RECENT_WINDOW
    return {
        "active_contributors_last_30_days": sum(
            1 for c in contributors if any(_in_window(m, start, now) for m in c.timestamps)
        ),
        "commits_last_30_days": sum(1 for c in raw.commits if _in_window(c.authored_at, start, now)),
        "issues_opened_last_30_days": sum(
            1 for i in raw.issues if _in_window(i.created_at, start, now)
        ),
        "prs_opened_last_30_days": sum(
            1 for p in raw.pull_requests if _in_window(p.created_at, start, now)
        ),
    }


def compute_metrics(raw: RawData, indexes: OptimalIndexes, now: datetime) -> dict[str, Any]:
    """Compute the ``metrics`` section.

    Args:
        raw: Flattened collection data.
        indexes: Indexes built over ``raw``.
        now: Reference time for the 30-day windows.

    Returns:
        ``project_summary``, ``repository_metrics``, ``contributor_metrics``
        and ``timeline_metrics``.
    """
    facts = repository_facts(raw, indexes)
    contributors = collect_contributors(raw)
    languages = [r.language for r in raw.repositories if r.language]
    language_counts = Counter(languages)

    project_summary = aggregate_repository_facts(facts)
    project_summary.update(
        {
            "total_contributors": len(contributors),
            "languages": sorted(language_counts),
            "primary_language": (
                language_counts.most_common(1)[0][0] if language_counts else "Unknown"
            ),
            "activity_summary": _activity_summary(raw, contributors, now),
            "health_metrics": _health_metrics(raw, indexes),
            "cross_repo": calculate_cross_repo_metrics(facts),
            "distribution": calculate_distribution_metrics(contributors),
            "growth_trends": calculate_growth_trends(raw, now),
        }
    )
    logger.info(
        "Computed metrics for %d repositories and %d contributors",
        len(facts),
        len(contributors),
    )

    return {
        "project_summary": project_summary,
        "repository_metrics": _repository_metrics(raw, indexes, facts, now),
        "contributor_metrics": [c.to_dict() for c in contributors],
        "timeline_metrics": calculate_timeline_metrics(raw),
    }

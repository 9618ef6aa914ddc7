"""Test fixtures for gh-project-summary.

Provides:
- GitHub-shaped payload builders for repositories, issues, pull requests,
  commits, comments and reviews
- A mocked REST client (``AsyncMock`` endpoints) and a recording fake sleep
- ``/rate_limit`` payloads
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=UTC)
RESET_TIMESTAMP = int((NOW + timedelta(minutes=30)).timestamp())


def iso(moment: datetime) -> str:
    """GitHub-style timestamp."""
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def repo_payload(full_name: str = "octo/alpha", **overrides: Any) -> dict[str, Any]:
    """Repository payload as returned by ``GET /repos/{owner}/{repo}``."""
    owner, name = full_name.split("/")
    payload = {
        "id": sum(map(ord, full_name)),
        "name": name,
        "full_name": full_name,
        "owner": {"login": owner},
        "description": f"The {name} repository",
        "language": "Python",
        "stargazers_count": 10,
        "forks_count": 2,
        "watchers_count": 10,
        "open_issues_count": 1,
        "created_at": "2020-01-01T00:00:00Z",
        "pushed_at": iso(NOW - timedelta(days=2)),
    }
    payload.update(overrides)
    return payload


def issue_payload(
    number: int,
    *,
    issue_id: int | None = None,
    login: str = "alice",
    comments: int = 0,
    labels: list[str] | None = None,
    state: str = "open",
    created_at: datetime | None = None,
    closed_at: datetime | None = None,
    pull_request: bool = False,
) -> dict[str, Any]:
    """Issue payload as returned by ``GET /repos/{owner}/{repo}/issues``."""
    payload: dict[str, Any] = {
        "id": issue_id if issue_id is not None else 1000 + number,
        "number": number,
        "title": f"Issue {number}",
        "state": state,
        "user": {"login": login},
        "labels": [{"name": name} for name in labels or []],
        "comments": comments,
        "created_at": iso(created_at or NOW - timedelta(days=5)),
        "closed_at": iso(closed_at) if closed_at else None,
    }
    if pull_request:
        payload["pull_request"] = {"url": f"https://api.github.com/pulls/{number}"}
    return payload


def pr_payload(
    number: int,
    *,
    pr_id: int | None = None,
    login: str = "bob",
    state: str = "open",
    created_at: datetime | None = None,
    updated_at: datetime | None = None,
    merged_at: datetime | None = None,
) -> dict[str, Any]:
    """Pull request payload as returned by ``GET /repos/{owner}/{repo}/pulls``."""
    created = created_at or NOW - timedelta(days=4)
    return {
        "id": pr_id if pr_id is not None else 5000 + number,
        "number": number,
        "title": f"PR {number}",
        "state": state,
        "user": {"login": login},
        "created_at": iso(created),
        "updated_at": iso(updated_at or created),
        "closed_at": iso(merged_at) if merged_at else None,
        "merged_at": iso(merged_at) if merged_at else None,
    }


def commit_payload(
    sha: str,
    *,
    name: str = "Carol Dev",
    login: str | None = "carol",
    date: datetime | None = None,
) -> dict[str, Any]:
    """Commit payload as returned by ``GET /repos/{owner}/{repo}/commits``."""
    return {
        "sha": sha,
        "commit": {
            "author": {
                "name": name,
                "email": f"{name.split()[0].lower()}@example.com",
                "date": iso(date or NOW - timedelta(days=3)),
            },
            "message": f"Commit {sha}",
        },
        "author": {"login": login} if login else None,
    }


def comment_payload(comment_id: int, login: str = "dave") -> dict[str, Any]:
    """Issue or review comment payload."""
    return {
        "id": comment_id,
        "user": {"login": login},
        "body": "Looks good",
        "created_at": iso(NOW - timedelta(days=1)),
    }


def review_payload(review_id: int, login: str = "erin", state: str = "APPROVED") -> dict[str, Any]:
    """Pull request review payload."""
    return {
        "id": review_id,
        "user": {"login": login},
        "state": state,
        "submitted_at": iso(NOW - timedelta(days=1)),
    }


def rate_limit_payload(
    remaining: int = 4900,
    limit: int = 5000,
    graphql_remaining: int | None = 4990,
    reset: int = RESET_TIMESTAMP,
) -> dict[str, Any]:
    """``GET /rate_limit`` payload."""
    resources: dict[str, Any] = {
        "core": {"limit": limit, "remaining": remaining, "reset": reset, "used": limit - remaining},
    }
    if graphql_remaining is not None:
        resources["graphql"] = {
            "limit": 5000,
            "remaining": graphql_remaining,
            "reset": reset,
            "used": 5000 - graphql_remaining,
        }
    return {"resources": resources, "rate": resources["core"]}


class FakeSleep:
    """Records requested waits instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    """Sleep replacement for backoff tests."""
    return FakeSleep()


@pytest.fixture
def rest_client() -> MagicMock:
    """REST client with every endpoint mocked to return nothing.

    Tests override individual endpoints, e.g.
    ``rest_client.list_issues.return_value = [...]``.
    """
    client = MagicMock()
    client.requests_made = 0
    client.get_rate_limit = AsyncMock(return_value=rate_limit_payload())
    client.get_repo = AsyncMock(side_effect=lambda owner, repo: repo_payload(f"{owner}/{repo}"))
    client.list_issues = AsyncMock(return_value=[])
    client.list_issue_comments = AsyncMock(return_value=[])
    client.list_pulls = AsyncMock(return_value=[])
    client.list_reviews = AsyncMock(return_value=[])
    client.list_review_comments = AsyncMock(return_value=[])
    client.list_commits = AsyncMock(return_value=[])
    return client

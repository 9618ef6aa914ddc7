"""Timeline metrics.

Counts commits, issues and pull requests per calendar month (``YYYY-MM``)
and ISO week (``YYYY-Www``) and labels each series' recent trend.

Output layout (timeline_metrics):
    - monthly_activity: {month: {commits, contributors, issues, pull_requests}}
    - weekly_activity: {week: {commits, issues, pull_requests}}
    - activity_trends: {commits_trend, issues_trend, prs_trend}, each
      "increasing", "decreasing" or "stable"
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal

import pandas as pd

from gh_project_summary.metrics.facts import growth_rate

if TYPE_CHECKING:
    from gh_project_summary.collect.models import RawData

logger = logging.getLogger(__name__)

Trend = Literal["increasing", "decreasing", "stable"]

KINDS = ("commits", "issues", "pull_requests")
# Month-over-month change below this fraction counts as stable
TREND_THRESHOLD = 0.1


def _events(raw: RawData) -> pd.DataFrame:
    records: list[tuple[str, Any, str | None]] = []
    records.extend(
        ("issues", issue.created_at, issue.author_login)
        for issue in raw.issues
        if issue.created_at
    )
    records.extend(
        ("pull_requests", pr.created_at, pr.author_login)
        for pr in raw.pull_requests
        if pr.created_at
    )
    records.extend(
        ("commits", commit.authored_at, commit.author_name)
        for commit in raw.commits
        if commit.authored_at
    )

    df = pd.DataFrame(records, columns=["kind", "timestamp", "actor"])
    if df.empty:
        return df
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df["month"] = df["timestamp"].dt.strftime("%Y-%m")
    iso = df["timestamp"].dt.isocalendar()
    df["week"] = iso["year"].astype(str) + "-W" + iso["week"].astype(str).str.zfill(2)
    return df


def _counts_by(df: pd.DataFrame, period: str) -> pd.DataFrame:
    counts = df.groupby([period, "kind"]).size().unstack(fill_value=0)
    return counts.reindex(columns=list(KINDS), fill_value=0).sort_index()


def classify_trend(previous: float, current: float) -> Trend:
    """Label the change from ``previous`` to ``current``."""
    change = growth_rate(current, previous)
    if change > TREND_THRESHOLD:
        return "increasing"
    if change < -TREND_THRESHOLD:
        return "decreasing"
    return "stable"


def calculate_timeline_metrics(raw: RawData) -> dict[str, Any]:
    """Calculate monthly and weekly activity and trends.

    Trends compare the last two months that have any activity; with fewer
    than two months every trend is ``stable``.

    Args:
        raw: Flattened collection data.

    Returns:
        The ``timeline_metrics`` dictionary.
    """
    df = _events(raw)
    trends: dict[str, Trend] = {
        "commits_trend": "stable",
        "issues_trend": "stable",
        "prs_trend": "stable",
    }
    if df.empty:
        logger.debug("No timestamped activity for timeline metrics")
        return {"activity_trends": trends, "monthly_activity": {}, "weekly_activity": {}}

    monthly = _counts_by(df, "month")
    contributors = df.groupby("month")["actor"].nunique()
    weekly = _counts_by(df, "week")

    monthly_activity = {
        str(month): {
            "commits": int(row["commits"]),
            "contributors": int(contributors.get(month, 0)),
            "issues": int(row["issues"]),
            "pull_requests": int(row["pull_requests"]),
        }
        for month, row in monthly.iterrows()
    }
    weekly_activity = {
        str(week): {kind: int(row[kind]) for kind in KINDS} for week, row in weekly.iterrows()
    }

    if len(monthly) >= 2:
        previous, current = monthly.iloc[-2], monthly.iloc[-1]
        trends = {
            "commits_trend": classify_trend(previous["commits"], current["commits"]),
            "issues_trend": classify_trend(previous["issues"], current["issues"]),
            "prs_trend": classify_trend(previous["pull_requests"], current["pull_requests"]),
        }

    return {
        "activity_trends": trends,
        "monthly_activity": monthly_activity,
        "weekly_activity": weekly_activity,
    }

"""Metrics over collected data."""

from gh_project_summary.metrics.project import compute_metrics
from gh_project_summary.metrics.timeline import calculate_timeline_metrics

__all__ = ["calculate_timeline_metrics", "compute_metrics"]

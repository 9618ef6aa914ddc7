"""Nesting of independently produced results.

A child result is placed into a parent at a dotted merge path
(``repositories.repoA``). The child's query hints are rewritten so they keep
working against the parent:

    single_item   ``.commits_30d`` becomes ``.repositories.repoA.commits_30d``
                  and, for repeated containers, ``.repositories[].commits_30d``
    all_items     copied unchanged
    parent_level  copied unchanged

Hints are deduplicated on their final query text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from gh_project_summary.result import AggregateResult

logger = logging.getLogger(__name__)

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_]")


class HintScope(str, Enum):
    """How a hint is rewritten when its result is nested."""

    SINGLE_ITEM = "single_item"
    ALL_ITEMS = "all_items"
    PARENT_LEVEL = "parent_level"


class QueryHint(BaseModel):
    """A jq query that is useful against a result."""

    model_config = ConfigDict(frozen=True)

    query: str
    description: str
    scope: HintScope = HintScope.SINGLE_ITEM


@dataclass
class NestedResult:
    """Result data plus the hints that apply to it."""

    data: dict[str, Any] = field(default_factory=dict)
    hints: list[QueryHint] = field(default_factory=list)
    merged_keys: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "result": self.data,
            "query_hints": [hint.model_dump(mode="json") for hint in self.hints],
        }


def _split_path(merge_key: str) -> list[str]:
    segments = merge_key.split(".")
    if not all(segments):
        msg = f"Invalid merge key {merge_key!r}"
        raise ValueError(msg)
    return segments


def path_segment(name: str) -> str:
    """Make ``name`` usable as one segment of a merge path and a jq key."""
    return _UNSAFE_SEGMENT.sub("_", name)


class ResultMerger:
    """Nest child results into a parent and rewrite their hints."""

    def merge(
        self,
        parent: NestedResult,
        child: NestedResult,
        merge_key: str,
        repeated: bool | None = None,
    ) -> NestedResult:
        """Place ``child`` at ``merge_key`` inside ``parent``.

        Intermediate segments are created as empty mappings. The leaf is
        replaced, never deep-merged.

        Args:
            parent: Result being assembled; modified in place.
            child: Result to nest.
            merge_key: Dotted path such as ``repositories.repoA``.
            repeated: Whether the container holds many items of one kind.
                None means yes for paths of two or more segments.

        Returns:
            ``parent``.

        Raises:
            ValueError: If the key is malformed or a path segment already
                holds something other than a mapping.
        """
        segments = _split_path(merge_key)
        if repeated is None:
            repeated = len(segments) >= 2

        node = parent.data
        for segment in segments[:-1]:
            existing = node.setdefault(segment, {})
            if not isinstance(existing, dict):
                msg = f"Cannot nest under {segment!r} in {merge_key!r}: not a mapping"
                raise ValueError(msg)
            node = existing

        if merge_key in parent.merged_keys:
            logger.warning("Result at %s merged twice; replacing the earlier value", merge_key)
        node[segments[-1]] = child.data
        parent.merged_keys.add(merge_key)

        seen = {hint.query for hint in parent.hints}
        for hint in self._rewrite_hints(child.hints, segments, repeated=repeated):
            if hint.query not in seen:
                seen.add(hint.query)
                parent.hints.append(hint)
        return parent

    def _rewrite_hints(
        self,
        hints: list[QueryHint],
        segments: list[str],
        *,
        repeated: bool,
    ) -> list[QueryHint]:
        exact_prefix = "." + ".".join(segments)
        container = segments[:-1]
        rewritten = []
        for hint in hints:
            if hint.scope != HintScope.SINGLE_ITEM:
                rewritten.append(hint)
                continue

            suffix = "" if hint.query == "." else hint.query
            rewritten.append(
                QueryHint(
                    query=exact_prefix + suffix,
                    description=f"{hint.description} ({segments[-1]})",
                    scope=HintScope.SINGLE_ITEM,
                )
            )
            if repeated and container:
                rewritten.append(
                    QueryHint(
                        query="." + ".".join(container) + "[]" + suffix,
                        description=f"{hint.description} (every entry of {container[-1]})",
                        scope=HintScope.ALL_ITEMS,
                    )
                )
        return rewritten


REPOSITORY_HINTS = (
    QueryHint(query=".health_score", description="Repository health score (0-100)"),
    QueryHint(query=".activity_score", description="Weighted activity score"),
    QueryHint(query=".contributor_count", description="Distinct contributors"),
    QueryHint(query=".last_push", description="Last push timestamp"),
)


def _nest_repositories(parent: NestedResult, aggregate: AggregateResult) -> NestedResult:
    merger = ResultMerger()
    taken: set[str] = set()
    for entry in aggregate.metrics.get("repository_metrics", []):
        key = path_segment(entry["name"])
        if key in taken:
            key = path_segment(entry["full_name"])
        taken.add(key)
        child = NestedResult(data=entry, hints=list(REPOSITORY_HINTS))
        merger.merge(parent, child, f"repositories.{key}")
    return parent


def build_project_result(aggregate: AggregateResult) -> NestedResult:
    """Nest the per-repository metrics of ``aggregate`` under ``repositories``.

    Repositories are keyed by name; a name already taken by another owner's
    repository falls back to the full ``owner/repo`` name. Both are reduced
    to characters valid in a jq key.

    Returns:
        The project-level result with project and per-repository hints.
    """
    metrics = aggregate.metrics
    parent = NestedResult(
        data={
            "project_summary": metrics.get("project_summary", {}),
            "timeline_metrics": metrics.get("timeline_metrics", {}),
            "metadata": aggregate.metadata.model_dump(mode="json"),
        },
        hints=[
            QueryHint(
                query=".project_summary",
                description="Project totals and averages",
                scope=HintScope.PARENT_LEVEL,
            ),
            QueryHint(
                query=".metadata.collection.errors",
                description="Repositories skipped during collection",
                scope=HintScope.PARENT_LEVEL,
            ),
        ],
    )
    return _nest_repositories(parent, aggregate)


def build_output_result(aggregate: AggregateResult) -> NestedResult:
    """The full aggregate layout plus per-repository entries under ``repositories``.

    ``raw``, ``indexes``, ``metrics`` and ``metadata`` are kept as
    ``AggregateResult.to_dict`` lays them out, so their hints still apply.
    """
    parent = NestedResult(data=aggregate.to_dict(), hints=aggregate.query_hints())
    return _nest_repositories(parent, aggregate)


def format_jq_examples(hints: list[QueryHint], file_path: str) -> list[str]:
    """Render hints as ready-to-run jq command lines."""
    return [f"jq '{hint.query}' {file_path}  # {hint.description}" for hint in hints]

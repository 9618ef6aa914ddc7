"""Collection error taxonomy.

Transport-level failures live in ``gh_project_summary.github.http``; the
classes here describe what went wrong from the collection's point of view
and carry enough context (repository, resource, options) for a caller to
retry a narrower collection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from gh_project_summary.config import CollectionOptions


class CollectionError(Exception):
    """Base class for collection failures.

    Attributes:
        context: Structured debug information about the failure.
        recovery_instructions: Human-readable next steps.
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        recovery_instructions: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.context = context or {}
        self.recovery_instructions = recovery_instructions or []

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a JSON-compatible dictionary."""
        return {
            "error": type(self).__name__,
            "message": str(self),
            "context": self.context,
            "recovery_instructions": self.recovery_instructions,
        }


class BudgetInfeasibleError(CollectionError):
    """Raised before any collection when the estimate exceeds remaining budget."""

    def __init__(
        self,
        estimated_calls: int,
        remaining_calls: int,
        repositories: list[str],
        *,
        reason: str | None = None,
    ) -> None:
        msg = reason or (
            f"Collection needs about {estimated_calls} API calls but only "
            f"{remaining_calls} remain in the current rate limit window"
        )
        super().__init__(
            msg,
            context={
                "estimated_calls": estimated_calls,
                "remaining_calls": remaining_calls,
                "repositories": repositories,
            },
            recovery_instructions=[
                "Wait for the rate limit window to reset and retry",
                "Disable comments or reviews to reduce the number of calls",
                "Lower the per-repository limits or narrow the time window",
                "Collect fewer repositories per run",
            ],
        )
        self.estimated_calls = estimated_calls
        self.remaining_calls = remaining_calls
        self.repositories = repositories


class RepositoryNotFoundError(CollectionError):
    """Raised when a project resolves to no collectable repositories."""

    def __init__(self, project_id: str, detail: str | None = None) -> None:
        msg = f"No repositories found for project {project_id!r}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(
            msg,
            context={"project_id": project_id},
            recovery_instructions=[
                "Check the project id or the owner/repo list",
                "Verify the token can read the project and its repositories",
            ],
        )
        self.project_id = project_id


class ResourceCollectionError(CollectionError):
    """Raised when one resource of one repository cannot be collected."""

    def __init__(
        self,
        repository: str,
        resource: str,
        options: CollectionOptions | None,
        cause: BaseException,
    ) -> None:
        msg = f"Failed to collect {resource} for {repository}: {cause}"
        super().__init__(
            msg,
            context={
                "repository": repository,
                "resource": resource,
                "options": options.model_dump(mode="json") if options else None,
                "cause": type(cause).__name__,
            },
            recovery_instructions=[
                f"Retry collection for {repository} with {resource} disabled",
                "Check repository permissions and network connectivity",
            ],
        )
        self.repository = repository
        self.resource = resource
        self.options = options
        self.cause = cause


class AllRepositoriesFailedError(CollectionError):
    """Raised when no repository in the project yielded any data."""

    def __init__(self, failures: list[dict[str, Any]]) -> None:
        msg = f"All {len(failures)} repositories failed to collect"
        super().__init__(
            msg,
            context={"failures": failures},
            recovery_instructions=[
                "Inspect the per-repository failures for a common cause",
                "Check the token scopes and network connectivity",
            ],
        )
        self.failures = failures

"""GitHub API clients, rate budget and backoff."""

from gh_project_summary.github.auth import AuthenticationError, resolve_token
from gh_project_summary.github.backoff import (
    BackoffState,
    BackoffStateMachine,
    RetriesExhaustedError,
    RetryPolicy,
)
from gh_project_summary.github.graphql import GraphQLClient, GraphQLError
from gh_project_summary.github.http import (
    GitHubClient,
    GitHubHTTPError,
    GitHubResponse,
    NotFoundError,
    RateLimitExceeded,
    RateLimitInfo,
    TransportError,
)
from gh_project_summary.github.ratelimit import (
    APIType,
    BackoffDecision,
    BackoffReason,
    BudgetSnapshot,
    CallEstimate,
    RateBudgetService,
    RateLimitUsage,
)
from gh_project_summary.github.rest import RestClient

__all__ = [
    "APIType",
    "AuthenticationError",
    "BackoffDecision",
    "BackoffReason",
    "BackoffState",
    "BackoffStateMachine",
    "BudgetSnapshot",
    "CallEstimate",
    "GitHubClient",
    "GitHubHTTPError",
    "GitHubResponse",
    "GraphQLClient",
    "GraphQLError",
    "NotFoundError",
    "RateBudgetService",
    "RateLimitExceeded",
    "RateLimitInfo",
    "RateLimitUsage",
    "RetriesExhaustedError",
    "RetryPolicy",
    "RestClient",
    "TransportError",
    "resolve_token",
]

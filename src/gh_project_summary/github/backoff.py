"""Retry with backoff, as an explicit state machine.

``BackoffStateMachine`` holds the bookkeeping for a single remote operation
(attempts made, waits taken, current state); ``RetryPolicy`` drives it and
delegates the actual waiting to ``RateBudgetService.implement_smart_backoff``.

State transitions:
    IDLE -> WAITING      (a retryable failure, attempts left)
    IDLE -> GIVEN_UP     (a retryable failure, no attempts left)
    WAITING -> RETRYING  (the wait finished)
    RETRYING -> WAITING / GIVEN_UP  (the retry failed)
    IDLE / RETRYING -> IDLE  (success)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from gh_project_summary.github.http import GitHubHTTPError, RateLimitExceeded, TransportError
from gh_project_summary.github.ratelimit import APIType, BackoffDecision, is_rate_limit_error

if TYPE_CHECKING:
    from gh_project_summary.github.ratelimit import RateBudgetService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffState(str, Enum):
    """States of one retried operation."""

    IDLE = "idle"
    WAITING = "waiting"
    RETRYING = "retrying"
    GIVEN_UP = "given_up"


class InvalidTransitionError(RuntimeError):
    """Raised on a state transition the machine does not allow."""


class RetriesExhaustedError(GitHubHTTPError):
    """Raised when an operation keeps failing after every allowed attempt."""

    def __init__(self, description: str, attempts: int, last_error: BaseException) -> None:
        msg = f"{description} failed after {attempts} attempts: {last_error}"
        status_code = getattr(last_error, "status_code", None)
        super().__init__(msg, status_code=status_code)
        self.attempts = attempts
        self.last_error = last_error
        self.rate_limited = is_rate_limit_error(last_error)


class BackoffStateMachine:
    """Attempt and wait bookkeeping for one remote operation.

    Args:
        max_attempts: Total attempts allowed, including the first one.
    """

    def __init__(self, max_attempts: int = 3) -> None:
        if max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {max_attempts}"
            raise ValueError(msg)
        self.max_attempts = max_attempts
        self.state = BackoffState.IDLE
        self.attempts = 0
        self.waits: list[float] = []
        self.pending_wait: float | None = None

    def _require(self, *allowed: BackoffState) -> None:
        if self.state not in allowed:
            msg = f"Invalid transition from {self.state.value}"
            raise InvalidTransitionError(msg)

    def on_attempt(self) -> None:
        """Record that an attempt is being made."""
        self._require(BackoffState.IDLE, BackoffState.RETRYING)
        self.attempts += 1

    def on_failure(self, decision: BackoffDecision) -> BackoffState:
        """Record a failed attempt.

        Args:
            decision: The wait the budget service would take.

        Returns:
            WAITING when attempts are left, GIVEN_UP otherwise.
        """
        self._require(BackoffState.IDLE, BackoffState.RETRYING)
        if self.attempts >= self.max_attempts:
            self.state = BackoffState.GIVEN_UP
            self.pending_wait = None
        else:
            self.state = BackoffState.WAITING
            self.pending_wait = decision.wait_seconds
        return self.state

    def on_wait_complete(self, waited: float) -> None:
        """Record that the wait finished and a retry follows."""
        self._require(BackoffState.WAITING)
        self.waits.append(waited)
        self.pending_wait = None
        self.state = BackoffState.RETRYING

    def on_success(self) -> None:
        """Record a successful attempt."""
        self._require(BackoffState.IDLE, BackoffState.RETRYING)
        self.state = BackoffState.IDLE

    @property
    def total_wait(self) -> float:
        """Seconds spent waiting so far."""
        return sum(self.waits)


def is_retryable(error: BaseException) -> bool:
    """Check whether a failed call is worth retrying.

    Rate limits, network failures and 5xx responses are; everything else
    (not found, permission denied, bad payloads) is not.
    """
    if isinstance(error, RateLimitExceeded | TransportError):
        return True
    if isinstance(error, GitHubHTTPError):
        if error.status_code is not None and error.status_code >= 500:
            return True
        return is_rate_limit_error(error)
    return False


class RetryPolicy:
    """Run remote operations with bounded, budget-aware retries.

    Args:
        budget: Service that decides and performs the waits.
        max_attempts: Total attempts per operation.
        api_type: Endpoint family the wrapped operations use.
    """

    def __init__(
        self,
        budget: RateBudgetService,
        max_attempts: int = 3,
        api_type: APIType = APIType.REST,
    ) -> None:
        self._budget = budget
        self._max_attempts = max_attempts
        self._api_type = api_type
        self.retries = 0

    def for_api(self, api_type: APIType) -> RetryPolicy:
        """Same policy for another endpoint family."""
        return RetryPolicy(self._budget, self._max_attempts, api_type)

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "request",
    ) -> T:
        """Run ``operation`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt.
            description: Label for logs and errors.

        Returns:
            The operation's result.

        Raises:
            RetriesExhaustedError: When every attempt failed retryably.
            Exception: Non-retryable errors propagate unchanged.
        """
        machine = BackoffStateMachine(self._max_attempts)
        while True:
            await self._budget.wait_until_clear()
            machine.on_attempt()
            try:
                result = await operation()
            except Exception as e:
                if not is_retryable(e):
                    raise
                decision = await self._budget.plan_backoff(e, self._api_type)
                if machine.on_failure(decision) == BackoffState.GIVEN_UP:
                    logger.error("Giving up on %s after %d attempts", description, machine.attempts)
                    raise RetriesExhaustedError(description, machine.attempts, e) from e
                logger.info(
                    "Retrying %s (attempt %d/%d)",
                    description,
                    machine.attempts + 1,
                    machine.max_attempts,
                )
                await self._budget.implement_smart_backoff(e, self._api_type, decision)
                machine.on_wait_complete(decision.wait_seconds)
                self.retries += 1
                continue
            machine.on_success()
            return result

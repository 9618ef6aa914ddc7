"""GitHub HTTP transport.

Thin async wrapper over ``httpx`` that performs exactly one request per call.
Rate-limited responses and network failures surface as exceptions; waiting
and retrying belong to ``gh_project_summary.github.backoff``.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from gh_project_summary import __version__

logger = logging.getLogger(__name__)


class RateLimitInfo(BaseModel):
    """GitHub API rate limit information from response headers."""

    limit: int
    remaining: int
    reset: datetime
    used: int
    resource: str = "core"

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> Optional["RateLimitInfo"]:
        """Extract rate limit info from response headers.

        Args:
            headers: HTTP response headers.

        Returns:
            RateLimitInfo if headers present, None otherwise.
        """
        if "x-ratelimit-limit" not in headers:
            return None

        reset_timestamp = int(headers.get("x-ratelimit-reset", "0"))
        return cls(
            limit=int(headers.get("x-ratelimit-limit", "0")),
            remaining=int(headers.get("x-ratelimit-remaining", "0")),
            reset=datetime.fromtimestamp(reset_timestamp, tz=UTC),
            used=int(headers.get("x-ratelimit-used", "0")),
            resource=headers.get("x-ratelimit-resource", "core"),
        )


@dataclass
class GitHubResponse:
    """GitHub API response with parsed data and metadata."""

    status_code: int
    data: Any
    headers: httpx.Headers
    rate_limit: RateLimitInfo | None = None
    url: str = ""

    @property
    def is_success(self) -> bool:
        """Check if response was successful (2xx status code)."""
        return 200 <= self.status_code < 300


class GitHubHTTPError(Exception):
    """Base exception for GitHub HTTP errors."""

    def __init__(self, message: str, status_code: int | None = None, url: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class NotFoundError(GitHubHTTPError):
    """Raised when a resource does not exist or is not visible to the token."""


class TransportError(GitHubHTTPError):
    """Raised on timeouts and network-level failures."""


class RateLimitExceeded(GitHubHTTPError):
    """Raised when GitHub refuses a request because of rate limiting.

    Attributes:
        reset_at: When the primary budget resets, if GitHub reported it.
        retry_after: Seconds from a ``Retry-After`` header (secondary limits).
        remaining: Remaining calls reported with the refusal.
    """

    def __init__(
        self,
        reset_at: datetime | None = None,
        retry_after: int | None = None,
        remaining: int | None = None,
        status_code: int | None = 403,
        url: str = "",
    ) -> None:
        self.reset_at = reset_at
        self.retry_after = retry_after
        self.remaining = remaining
        if reset_at is not None:
            msg = f"Rate limit exceeded. Resets at {reset_at.isoformat()}"
        else:
            msg = "Rate limit exceeded"
        super().__init__(msg, status_code=status_code, url=url)


def _looks_rate_limited(response: httpx.Response, rate_limit: RateLimitInfo | None) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    if "retry-after" in response.headers:
        return True
    if rate_limit is not None and rate_limit.remaining == 0:
        return True
    return "rate limit" in response.text.lower()


class GitHubClient:
    """Async HTTP client for the GitHub API.

    Usage:
        async with GitHubClient(token=token) as client:
            response = await client.get("/repos/owner/repo")
    """

    BASE_URL = "https://api.github.com"
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str = BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize GitHub HTTP client.

        Args:
            token: GitHub token. Anonymous requests when None.
            timeout: Request timeout in seconds.
            base_url: Base URL for GitHub API.
            transport: Optional httpx transport, mainly for tests.
        """
        self._token = token
        self._timeout = timeout
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.requests_made = 0
        self.last_rate_limit: RateLimitInfo | None = None

    def _get_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"gh-project-summary/{__version__}",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._get_headers(),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def request(self, method: str, path: str, **kwargs: Any) -> GitHubResponse:
        """Make one HTTP request to the GitHub API.

        Args:
            method: HTTP method (GET, POST, etc.).
            path: API path or absolute URL (pagination links are absolute).
            **kwargs: Additional arguments passed to httpx (params, json, etc.).

        Returns:
            GitHubResponse, including non-2xx responses other than rate limits.

        Raises:
            RateLimitExceeded: If GitHub refused the request for rate limiting.
            TransportError: On timeouts and network failures.
        """
        client = await self._ensure_client()
        logger.debug("%s %s", method, path)

        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            msg = f"Request timeout for {method} {path}: {e}"
            raise TransportError(msg, url=path) from e
        except httpx.TransportError as e:
            msg = f"Network error for {method} {path}: {e}"
            raise TransportError(msg, url=path) from e
        finally:
            self.requests_made += 1

        rate_limit = RateLimitInfo.from_headers(response.headers)
        if rate_limit is not None:
            self.last_rate_limit = rate_limit

        if _looks_rate_limited(response, rate_limit):
            retry_after = response.headers.get("retry-after")
            logger.warning(
                "Rate limited on %s %s (status %d, remaining=%s)",
                method,
                path,
                response.status_code,
                rate_limit.remaining if rate_limit else "unknown",
            )
            raise RateLimitExceeded(
                reset_at=rate_limit.reset if rate_limit else None,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                remaining=rate_limit.remaining if rate_limit else None,
                status_code=response.status_code,
                url=str(response.url),
            )

        data = None
        if response.content:
            try:
                data = response.json()
            except ValueError as e:
                logger.warning("Failed to parse JSON response from %s: %s", path, e)
                data = response.text

        return GitHubResponse(
            status_code=response.status_code,
            data=data,
            headers=response.headers,
            rate_limit=rate_limit,
            url=str(response.url),
        )

    async def get(self, path: str, **kwargs: Any) -> GitHubResponse:
        """Make a GET request."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> GitHubResponse:
        """Make a POST request."""
        return await self.request("POST", path, **kwargs)

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        """Async context manager entry."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

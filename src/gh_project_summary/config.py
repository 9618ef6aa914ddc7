"""Configuration loading and validation."""

import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

REPOSITORY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


class CollectionLimits(BaseModel):
    """Per-resource item caps for a single repository."""

    model_config = ConfigDict(frozen=True)

    max_issues_per_repo: int = Field(default=500, ge=0)
    max_comments_per_issue: int = Field(default=50, ge=0)
    max_prs_per_repo: int = Field(default=200, ge=0)
    max_reviews_per_pr: int = Field(default=20, ge=0)
    max_review_comments_per_pr: int = Field(default=50, ge=0)
    max_commits_per_repo: int = Field(default=1000, ge=0)


class TimeFilter(BaseModel):
    """Optional collection window."""

    model_config = ConfigDict(frozen=True)

    since: datetime | None = None
    until: datetime | None = None

    @field_validator("since", "until")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @model_validator(mode="after")
    def validate_order(self) -> "TimeFilter":
        """Validate that since precedes until."""
        if self.since and self.until and self.since >= self.until:
            msg = f"since ({self.since.isoformat()}) must be before until ({self.until.isoformat()})"
            raise ValueError(msg)
        return self

    def overlaps(self, created_at: datetime | None, updated_at: datetime | None = None) -> bool:
        """Check whether an item active from ``created_at`` to ``updated_at`` touches the window.

        An item is outside when it was last updated before ``since`` or
        created after ``until``. Missing timestamps are kept so that partial
        payloads are not dropped.
        """
        if self.since and updated_at and updated_at < self.since:
            return False
        return not (self.until and created_at and created_at > self.until)


class CollectionOptions(BaseModel):
    """What to collect for each repository. Immutable once a run starts."""

    model_config = ConfigDict(frozen=True)

    include_issues: bool = True
    include_pull_requests: bool = True
    include_commits: bool = True
    include_comments: bool = True
    include_reviews: bool = True
    limits: CollectionLimits = Field(default_factory=CollectionLimits)
    time_filter: TimeFilter = Field(default_factory=TimeFilter)


class GitHubConfig(BaseModel):
    """GitHub API connection settings."""

    token_env: str = "GITHUB_TOKEN"
    api_url: str = "https://api.github.com"
    timeout: float = Field(default=30.0, gt=0)


class ProjectConfig(BaseModel):
    """Which project to collect."""

    id: str | None = None
    repositories: list[str] = Field(default_factory=list)

    @field_validator("repositories")
    @classmethod
    def validate_repositories(cls, v: list[str]) -> list[str]:
        """Validate owner/repo names."""
        for name in v:
            if not REPOSITORY_PATTERN.match(name):
                msg = f"Invalid repository name '{name}', expected owner/repo"
                raise ValueError(msg)
        return v


class RateLimitConfig(BaseModel):
    """Rate budget and backoff configuration."""

    max_concurrency: int = Field(default=2, ge=1, le=8)
    max_attempts: int = Field(default=3, ge=1, le=10)
    error_delay_seconds: float = Field(default=1.0, ge=0)
    secondary_cooldown_seconds: float = Field(default=60.0, ge=0)
    reset_buffer_seconds: float = Field(default=30.0, ge=0)
    fallback_delay_seconds: float = Field(
        default=300.0, ge=0, description="Wait used when the reset time is unknown"
    )
    low_budget_warning: int = Field(default=100, ge=0)


class Config(BaseModel):
    """Root configuration model."""

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    collection: CollectionOptions = Field(default_factory=CollectionOptions)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)


def load_config(path: Path) -> Config:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the file is not a mapping or fails validation.
    """
    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open() as f:
        raw_config: Any = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        msg = f"Config file {path} must contain a mapping, got {type(raw_config).__name__}"
        raise ValueError(msg)

    return Config.model_validate(raw_config)

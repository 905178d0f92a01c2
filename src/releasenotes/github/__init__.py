"""GitHub REST API integration."""

from src.releasenotes.github.client import (
    GitHubAPIError,
    GitHubClient,
    MissingTokenError,
    RateLimitError,
)
from src.releasenotes.github.models import (
    GitHubCommit,
    GitHubPullRequest,
    GitHubRelease,
    GitHubRepository,
)

__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "GitHubCommit",
    "GitHubPullRequest",
    "GitHubRelease",
    "GitHubRepository",
    "MissingTokenError",
    "RateLimitError",
]

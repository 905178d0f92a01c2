"""GitHub API client for release backfill and publishing.

This module provides an async wrapper around the GitHub REST API for:
- Reading repository metadata and releases
- Listing merged pull requests (paginated) and their commits
- Comparing two refs
- Writing generated notes back into a release body

Includes rate limiting and retry logic for API resilience. A client built
without a token raises MissingTokenError on every call instead of issuing
unauthenticated requests.
"""

import asyncio
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from src.releasenotes.github.models import (
    GitHubCommit,
    GitHubPullRequest,
    GitHubRelease,
    GitHubRepository,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class MissingTokenError(GitHubAPIError):
    """Raised when a call is attempted without a configured token."""


class GitHubClient:
    """Async GitHub API client with rate limiting and retry logic.

    - Automatic retry with exponential backoff for transient failures
    - Rate limit handling by respecting X-RateLimit-* headers
    - Support for both github.com and GitHub Enterprise Server

    Repositories are addressed by full name ("owner/repo").

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     prs = await client.list_merged_pull_requests("octo/app", limit=50)
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    # GitHub caps per_page at 100
    MAX_PAGE_SIZE = 100

    def __init__(
        self,
        token: Optional[str],
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token. None disables every call.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "ReleaseNotes-Service/1.0",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(
        self,
        exc_type: Any,
        exc_val: Any,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    def _parse_body(
        self,
        response: httpx.Response,
        parse: Callable[[Any], T],
    ) -> T:
        """Decode a response body into models.

        Raises:
            GitHubAPIError: If the body is not JSON or does not have the
                shape GitHub documents for the endpoint.
        """
        try:
            return parse(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(
                "Unexpected GitHub API response body",
                extra={
                    "url": str(response.request.url),
                    "status_code": response.status_code,
                    "error_type": type(e).__name__,
                },
            )
            raise GitHubAPIError(
                message=f"Unexpected response body from GitHub: {e}",
                status_code=response.status_code,
                response_body=response.text[:500],
                request_url=str(response.request.url),
            ) from e

    def _parse_int_header(
        self,
        headers: httpx.Headers,
        name: str,
    ) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _raise_rate_limit(self, response: httpx.Response) -> None:
        """Raise RateLimitError with the reset information GitHub reported."""
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "reset_at": reset_at,
                "retry_after": retry_after,
                "limit": self._parse_int_header(response.headers, "x-ratelimit-limit"),
                "used": self._parse_int_header(response.headers, "x-ratelimit-used"),
            },
        )

        raise RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, PATCH, ...).
            path: API path (e.g., /repos/owner/repo/pulls).
            json_data: Optional JSON body for the request.
            params: Optional query parameters.

        Returns:
            The HTTP response from GitHub.

        Raises:
            MissingTokenError: If no token is configured.
            GitHubAPIError: If the request fails after all retries.
            RateLimitError: If rate limit is exceeded.
        """
        if not self.token:
            raise MissingTokenError(
                "GitHub token is not configured",
                request_url=f"{self.base_url}{path}",
            )

        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                )

                if response.status_code == 403:
                    remaining = self._parse_int_header(
                        response.headers,
                        "x-ratelimit-remaining",
                    )
                    if remaining == 0:
                        self._raise_rate_limit(response)

                if response.status_code == 429:
                    self._raise_rate_limit(response)

                if response.status_code in self.RETRYABLE_STATUS_CODES:
                    if attempt < self.max_retries:
                        delay = self._calculate_backoff(attempt)
                        logger.warning(
                            "Retryable error from GitHub API",
                            extra={
                                "status_code": response.status_code,
                                "attempt": attempt + 1,
                                "max_retries": self.max_retries,
                                "delay": delay,
                                "path": path,
                            },
                        )
                        await asyncio.sleep(delay)
                        continue

                if response.status_code >= 400:
                    error_body = response.text
                    logger.error(
                        "GitHub API error",
                        extra={
                            "status_code": response.status_code,
                            "path": path,
                            "method": method,
                            "response_body": error_body[:500],
                        },
                    )
                    raise GitHubAPIError(
                        message=f"GitHub API error: {response.status_code}",
                        status_code=response.status_code,
                        response_body=error_body,
                        request_url=str(response.url),
                    )

                return response

            except GitHubAPIError:
                raise
            except httpx.RequestError as e:
                # TimeoutException is a RequestError subclass
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

        logger.error(
            "GitHub API request failed after all retries",
            extra={
                "path": path,
                "method": method,
                "max_retries": self.max_retries,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {self.max_retries} retries: {last_exception}",
            request_url=f"{self.base_url}{path}",
        )

    async def get_repository(self, repository: str) -> GitHubRepository:
        """Get repository metadata.

        Args:
            repository: Full repository name ("owner/repo").

        Raises:
            GitHubAPIError: If the request fails.
        """
        response = await self._request(method="GET", path=f"/repos/{repository}")
        return self._parse_body(response, GitHubRepository.from_github_response)

    async def get_release_by_tag(
        self,
        repository: str,
        tag: str,
    ) -> Optional[GitHubRelease]:
        """Get a release by its tag name.

        Returns:
            The release, or None if GitHub has no release for the tag.

        Raises:
            GitHubAPIError: If the request fails for any other reason.
        """
        try:
            response = await self._request(
                method="GET",
                path=f"/repos/{repository}/releases/tags/{tag}",
            )
        except GitHubAPIError as e:
            if e.status_code == 404:
                logger.debug(
                    "Release not found for tag",
                    extra={"repository": repository, "tag": tag},
                )
                return None
            raise
        return self._parse_body(response, GitHubRelease.from_github_response)

    async def list_merged_pull_requests(
        self,
        repository: str,
        limit: int = 100,
    ) -> List[GitHubPullRequest]:
        """List recently merged pull requests.

        Pages through closed pull requests sorted by most recently updated
        and keeps only the merged ones, until ``limit`` merged pull requests
        are collected or the listing is exhausted.

        Args:
            repository: Full repository name ("owner/repo").
            limit: Maximum number of merged pull requests to return.

        Raises:
            GitHubAPIError: If any page request fails.
        """
        per_page = max(1, min(limit, self.MAX_PAGE_SIZE))
        merged: List[GitHubPullRequest] = []
        page = 1

        while len(merged) < limit:
            response = await self._request(
                method="GET",
                path=f"/repos/{repository}/pulls",
                params={
                    "state": "closed",
                    "sort": "updated",
                    "direction": "desc",
                    "per_page": per_page,
                    "page": page,
                },
            )
            items = self._parse_body(
                response,
                lambda data: [GitHubPullRequest.from_github_response(i) for i in data],
            )
            merged.extend(pr for pr in items if pr.is_merged)

            if len(items) < per_page:
                break
            page += 1

        logger.info(
            "Listed merged pull requests",
            extra={
                "repository": repository,
                "count": min(len(merged), limit),
                "pages": page,
            },
        )
        return merged[:limit]

    async def list_pull_request_commits(
        self,
        repository: str,
        pr_number: int,
    ) -> List[GitHubCommit]:
        """List the commits of a pull request."""
        response = await self._request(
            method="GET",
            path=f"/repos/{repository}/pulls/{pr_number}/commits",
            params={"per_page": self.MAX_PAGE_SIZE},
        )
        return self._parse_body(
            response,
            lambda data: [GitHubCommit.from_github_response(item) for item in data],
        )

    async def compare_commits(
        self,
        repository: str,
        base: str,
        head: str,
    ) -> List[GitHubCommit]:
        """List the commits reachable from head but not from base."""
        response = await self._request(
            method="GET",
            path=f"/repos/{repository}/compare/{base}...{head}",
        )
        return self._parse_body(
            response,
            lambda data: [
                GitHubCommit.from_github_response(item)
                for item in data.get("commits") or []
            ],
        )

    async def update_release_body(
        self,
        repository: str,
        release_id: int,
        body: str,
    ) -> GitHubRelease:
        """Replace the body of a GitHub release.

        Args:
            repository: Full repository name ("owner/repo").
            release_id: GitHub's numeric release id.
            body: New release body, usually rendered markdown.

        Raises:
            GitHubAPIError: If the request fails.
        """
        logger.info(
            "Updating release body",
            extra={
                "repository": repository,
                "github_release_id": release_id,
                "body_length": len(body),
            },
        )
        response = await self._request(
            method="PATCH",
            path=f"/repos/{repository}/releases/{release_id}",
            json_data={"body": body},
        )
        return self._parse_body(response, GitHubRelease.from_github_response)

    async def health_check(self) -> bool:
        """Check if the GitHub API is accessible with the configured token."""
        if not self.token:
            return False
        try:
            response = await self.client.get("/user")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(
                "GitHub API health check failed",
                extra={"error": str(e)},
            )
            return False

"""Store contract for releases, pull requests, commits and categories.

This module defines the ReleaseStore protocol that both the PostgreSQL and
the in-memory implementations fulfill. Every ``insert_*`` method has
insert-or-ignore semantics backed by the entity's natural identity:

- releases: (repository, version)
- pull_requests: (pr_number, release_id)
- commits: hash
- categories: name

An insert that collides with an existing row is not an error; it returns the
existing row (or ``False`` for commits) so that redelivered webhooks and
concurrent deliveries converge on the same store contents.
"""

from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from src.releasenotes.store.models import Category, Commit, PullRequest, Release


class DatabaseError(Exception):
    """Raised when a store operation fails.

    This exception wraps underlying database errors to provide
    a consistent interface for error handling.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


@runtime_checkable
class ReleaseStore(Protocol):
    """Protocol defining the persistence contract of the service."""

    async def get_release(self, release_id: int) -> Optional[Release]:
        """Get a release by id."""
        ...

    async def get_release_by_version(
        self, repository: str, version: str
    ) -> Optional[Release]:
        """Get a release by its natural identity."""
        ...

    async def get_latest_release(self, repository: str) -> Optional[Release]:
        """Get the most recent release of a repository.

        Most recent means the highest release_date; releases sharing the
        same release_date are ordered by id, highest first.
        """
        ...

    async def list_releases(
        self, repository: Optional[str] = None
    ) -> List[Release]:
        """List releases, most recent first."""
        ...

    async def insert_release(self, release: Release) -> Tuple[Release, bool]:
        """Insert a release unless (repository, version) exists.

        Returns:
            The stored release and whether it was created by this call.
        """
        ...

    async def mark_release_published(
        self,
        release_id: int,
        name: Optional[str],
        description: Optional[str],
    ) -> Release:
        """Set name, description and published status on a release."""
        ...

    async def update_generated_notes(self, release_id: int, notes: str) -> None:
        """Replace the generated notes of a release."""
        ...

    async def get_pull_request(
        self, release_id: int, pr_number: int
    ) -> Optional[PullRequest]:
        """Get a pull request by its natural identity."""
        ...

    async def list_pull_requests(self, release_id: int) -> List[PullRequest]:
        """List the pull requests of a release ordered by merge time."""
        ...

    async def insert_pull_request(
        self, pull_request: PullRequest
    ) -> Tuple[PullRequest, bool]:
        """Insert a pull request unless (pr_number, release_id) exists.

        Returns:
            The stored pull request and whether it was created by this call.
        """
        ...

    async def commit_exists(self, commit_hash: str) -> bool:
        """Check whether a commit hash is already stored."""
        ...

    async def insert_commit(self, commit: Commit) -> bool:
        """Insert a commit unless its hash exists.

        Returns:
            True if the commit was created by this call.
        """
        ...

    async def list_commits(self, release_id: int) -> List[Commit]:
        """List the commits of a release ordered by commit time."""
        ...

    async def list_categories(self) -> List[Category]:
        """List categories ordered by display_order."""
        ...

    async def insert_categories(self, categories: Sequence[Category]) -> None:
        """Insert categories whose names are not yet stored."""
        ...

    async def health_check(self) -> bool:
        """Check that the store is reachable."""
        ...

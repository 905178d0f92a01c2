"""Persistence for releases, pull requests, commits and categories.

The ReleaseStore protocol is implemented by PostgresReleaseStore for
production and InMemoryReleaseStore for local development and tests.
"""

from src.releasenotes.store.base import DatabaseError, ReleaseStore
from src.releasenotes.store.memory import InMemoryReleaseStore
from src.releasenotes.store.models import (
    UNRELEASED_VERSION,
    Category,
    Commit,
    PullRequest,
    Release,
    ReleaseStatus,
)
from src.releasenotes.store.postgres import PostgresReleaseStore

__all__ = [
    # Models
    "Category",
    "Commit",
    "PullRequest",
    "Release",
    "ReleaseStatus",
    "UNRELEASED_VERSION",
    # Stores
    "DatabaseError",
    "InMemoryReleaseStore",
    "PostgresReleaseStore",
    "ReleaseStore",
]

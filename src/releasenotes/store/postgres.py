"""PostgreSQL implementation of the ReleaseStore protocol.

This module implements the ReleaseStore protocol using asyncpg for async
PostgreSQL access. It provides:
- Connection pooling for production use
- Insert-or-ignore writes backed by unique constraints
  (INSERT ... ON CONFLICT DO NOTHING), so redelivered or concurrent
  webhooks never race a check-then-insert
- JSON serialization of pull request labels

The store expects the schema from migrations/001_release_notes.sql to be
applied before use.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

import asyncpg

from src.releasenotes.store.base import DatabaseError
from src.releasenotes.store.models import (
    Category,
    Commit,
    PullRequest,
    Release,
    ReleaseStatus,
    utc_now,
)


logger = logging.getLogger(__name__)


RELEASE_COLUMNS = """
    id, repository, version, name, description, release_date,
    published_status, generated_notes, created_at, updated_at
"""

PULL_REQUEST_COLUMNS = """
    id, pr_number, release_id, title, author, description, url,
    merged_at, labels, category_id, created_at
"""

COMMIT_COLUMNS = """
    id, hash, release_id, pull_request_id, message, author,
    author_email, committed_at, created_at
"""


def _utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps returned by the driver."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_release(row: asyncpg.Record) -> Release:
    return Release(
        id=row["id"],
        repository=row["repository"],
        version=row["version"],
        name=row["name"],
        description=row["description"],
        release_date=_utc(row["release_date"]),
        status=ReleaseStatus(row["published_status"]),
        generated_notes=row["generated_notes"],
        created_at=_utc(row["created_at"]),
        updated_at=_utc(row["updated_at"]),
    )


def _row_to_pull_request(row: asyncpg.Record) -> PullRequest:
    labels = json.loads(row["labels"]) if row["labels"] else []
    return PullRequest(
        id=row["id"],
        pr_number=row["pr_number"],
        release_id=row["release_id"],
        title=row["title"],
        author=row["author"],
        body=row["description"],
        url=row["url"],
        merged_at=_utc(row["merged_at"]),
        labels=labels,
        category_id=row["category_id"],
        created_at=_utc(row["created_at"]),
    )


def _row_to_commit(row: asyncpg.Record) -> Commit:
    return Commit(
        id=row["id"],
        hash=row["hash"],
        release_id=row["release_id"],
        pull_request_id=row["pull_request_id"],
        message=row["message"],
        author=row["author"],
        author_email=row["author_email"],
        committed_at=_utc(row["committed_at"]),
        created_at=_utc(row["created_at"]),
    )


class PostgresReleaseStore:
    """PostgreSQL implementation of the ReleaseStore protocol.

    Attributes:
        connection_string: PostgreSQL connection URL.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresReleaseStore("postgresql://...") as store:
        ...     release = await store.get_latest_release("owner/repo")
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not connected.

        Raises:
            DatabaseError: If the pool is not initialized.
        """
        if self._pool is None:
            raise DatabaseError(
                "Database pool not initialized. Call connect() first."
            )
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool.

        Raises:
            DatabaseError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("PostgreSQL connection pool established")
        except Exception as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise DatabaseError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresReleaseStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    async def _fetchrow(self, operation: str, query: str, *args: Any):
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except DatabaseError:
            raise
        except Exception as e:
            logger.error(
                "Database query failed",
                extra={"operation": operation, "error": str(e)},
            )
            raise DatabaseError(f"Failed to {operation}: {e}", original_error=e) from e

    async def _fetch(self, operation: str, query: str, *args: Any):
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except DatabaseError:
            raise
        except Exception as e:
            logger.error(
                "Database query failed",
                extra={"operation": operation, "error": str(e)},
            )
            raise DatabaseError(f"Failed to {operation}: {e}", original_error=e) from e

    # -------------------------------------------------------------------------
    # Releases
    # -------------------------------------------------------------------------
    async def get_release(self, release_id: int) -> Optional[Release]:
        row = await self._fetchrow(
            "get release",
            f"SELECT {RELEASE_COLUMNS} FROM releases WHERE id = $1",
            release_id,
        )
        return _row_to_release(row) if row else None

    async def get_release_by_version(
        self, repository: str, version: str
    ) -> Optional[Release]:
        row = await self._fetchrow(
            "get release by version",
            f"""
            SELECT {RELEASE_COLUMNS} FROM releases
            WHERE repository = $1 AND version = $2
            """,
            repository,
            version,
        )
        return _row_to_release(row) if row else None

    async def get_latest_release(self, repository: str) -> Optional[Release]:
        row = await self._fetchrow(
            "get latest release",
            f"""
            SELECT {RELEASE_COLUMNS} FROM releases
            WHERE repository = $1
            ORDER BY release_date DESC, id DESC
            LIMIT 1
            """,
            repository,
        )
        return _row_to_release(row) if row else None

    async def list_releases(
        self, repository: Optional[str] = None
    ) -> List[Release]:
        if repository is None:
            rows = await self._fetch(
                "list releases",
                f"SELECT {RELEASE_COLUMNS} FROM releases "
                "ORDER BY release_date DESC, id DESC",
            )
        else:
            rows = await self._fetch(
                "list releases",
                f"""
                SELECT {RELEASE_COLUMNS} FROM releases
                WHERE repository = $1
                ORDER BY release_date DESC, id DESC
                """,
                repository,
            )
        return [_row_to_release(row) for row in rows]

    async def insert_release(self, release: Release) -> Tuple[Release, bool]:
        row = await self._fetchrow(
            "insert release",
            f"""
            INSERT INTO releases (
                repository, version, name, description, release_date,
                published_status, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (repository, version) DO NOTHING
            RETURNING {RELEASE_COLUMNS}
            """,
            release.repository,
            release.version,
            release.name,
            release.description,
            release.release_date,
            release.status.value,
            release.created_at,
            release.updated_at,
        )
        if row is not None:
            created = _row_to_release(row)
            logger.info(
                "Inserted release",
                extra={
                    "release_id": created.id,
                    "repository": created.repository,
                    "version": created.version,
                },
            )
            return created, True

        existing = await self.get_release_by_version(
            release.repository, release.version
        )
        if existing is None:
            raise DatabaseError(
                f"Release {release.repository}@{release.version} vanished after conflict"
            )
        return existing, False

    async def mark_release_published(
        self,
        release_id: int,
        name: Optional[str],
        description: Optional[str],
    ) -> Release:
        row = await self._fetchrow(
            "publish release",
            f"""
            UPDATE releases
            SET name = $2, description = $3, published_status = $4, updated_at = $5
            WHERE id = $1
            RETURNING {RELEASE_COLUMNS}
            """,
            release_id,
            name,
            description,
            ReleaseStatus.PUBLISHED.value,
            utc_now(),
        )
        if row is None:
            raise DatabaseError(f"Release {release_id} not found")
        return _row_to_release(row)

    async def update_generated_notes(self, release_id: int, notes: str) -> None:
        await self._fetchrow(
            "update generated notes",
            """
            UPDATE releases SET generated_notes = $2, updated_at = $3
            WHERE id = $1
            """,
            release_id,
            notes,
            utc_now(),
        )

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------
    async def get_pull_request(
        self, release_id: int, pr_number: int
    ) -> Optional[PullRequest]:
        row = await self._fetchrow(
            "get pull request",
            f"""
            SELECT {PULL_REQUEST_COLUMNS} FROM pull_requests
            WHERE pr_number = $1 AND release_id = $2
            """,
            pr_number,
            release_id,
        )
        return _row_to_pull_request(row) if row else None

    async def list_pull_requests(self, release_id: int) -> List[PullRequest]:
        rows = await self._fetch(
            "list pull requests",
            f"""
            SELECT {PULL_REQUEST_COLUMNS} FROM pull_requests
            WHERE release_id = $1
            ORDER BY merged_at ASC, id ASC
            """,
            release_id,
        )
        return [_row_to_pull_request(row) for row in rows]

    async def insert_pull_request(
        self, pull_request: PullRequest
    ) -> Tuple[PullRequest, bool]:
        row = await self._fetchrow(
            "insert pull request",
            f"""
            INSERT INTO pull_requests (
                pr_number, release_id, title, author, description, url,
                merged_at, labels, category_id, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            ON CONFLICT (pr_number, release_id) DO NOTHING
            RETURNING {PULL_REQUEST_COLUMNS}
            """,
            pull_request.pr_number,
            pull_request.release_id,
            pull_request.title,
            pull_request.author,
            pull_request.body,
            pull_request.url,
            pull_request.merged_at,
            json.dumps(pull_request.labels),
            pull_request.category_id,
            pull_request.created_at,
        )
        if row is not None:
            return _row_to_pull_request(row), True

        existing = await self.get_pull_request(
            pull_request.release_id, pull_request.pr_number
        )
        if existing is None:
            raise DatabaseError(
                f"Pull request #{pull_request.pr_number} vanished after conflict"
            )
        return existing, False

    # -------------------------------------------------------------------------
    # Commits
    # -------------------------------------------------------------------------
    async def commit_exists(self, commit_hash: str) -> bool:
        row = await self._fetchrow(
            "check commit",
            "SELECT 1 FROM commits WHERE hash = $1",
            commit_hash,
        )
        return row is not None

    async def insert_commit(self, commit: Commit) -> bool:
        row = await self._fetchrow(
            "insert commit",
            """
            INSERT INTO commits (
                hash, release_id, pull_request_id, message, author,
                author_email, committed_at, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (hash) DO NOTHING
            RETURNING id
            """,
            commit.hash,
            commit.release_id,
            commit.pull_request_id,
            commit.message,
            commit.author,
            commit.author_email,
            commit.committed_at,
            commit.created_at,
        )
        return row is not None

    async def list_commits(self, release_id: int) -> List[Commit]:
        rows = await self._fetch(
            "list commits",
            f"""
            SELECT {COMMIT_COLUMNS} FROM commits
            WHERE release_id = $1
            ORDER BY committed_at ASC, id ASC
            """,
            release_id,
        )
        return [_row_to_commit(row) for row in rows]

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------
    async def list_categories(self) -> List[Category]:
        rows = await self._fetch(
            "list categories",
            """
            SELECT id, name, description, display_order FROM categories
            ORDER BY display_order ASC, id ASC
            """,
        )
        return [
            Category(
                id=row["id"],
                name=row["name"],
                description=row["description"],
                display_order=row["display_order"],
            )
            for row in rows
        ]

    async def insert_categories(self, categories: Sequence[Category]) -> None:
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.executemany(
                        """
                        INSERT INTO categories (name, description, display_order)
                        VALUES ($1, $2, $3)
                        ON CONFLICT (name) DO NOTHING
                        """,
                        [
                            (c.name, c.description, c.display_order)
                            for c in categories
                        ],
                    )
        except Exception as e:
            logger.error(
                "Failed to seed categories",
                extra={"error": str(e)},
            )
            raise DatabaseError(f"Failed to seed categories: {e}", original_error=e) from e

    async def health_check(self) -> bool:
        """Check if the database connection is healthy."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e)},
            )
            return False

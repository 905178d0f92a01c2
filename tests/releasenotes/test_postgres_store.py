"""Unit tests for PostgresReleaseStore with a fake asyncpg pool.

No database is required; the fake connection returns queued rows so the
insert-or-ignore fallback and error wrapping can be checked.
"""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.releasenotes.store.base import DatabaseError
from src.releasenotes.store.models import Commit, PullRequest, Release, ReleaseStatus
from src.releasenotes.store.postgres import PostgresReleaseStore


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


NOW = datetime(2024, 5, 1, 12, 0)


class FakeAcquire:
    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    def acquire(self):
        return FakeAcquire(self.conn)


def _store(conn) -> PostgresReleaseStore:
    store = PostgresReleaseStore("postgresql://test/notes")
    store._pool = FakePool(conn)
    return store


def _release_row(**overrides) -> dict:
    row = {
        "id": 1,
        "repository": "octo/app",
        "version": "v1.0.0",
        "name": None,
        "description": None,
        "release_date": NOW,
        "published_status": "published",
        "generated_notes": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


class TestInsertOrIgnore:
    def test_insert_release_created(self) -> None:
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value=_release_row())

        release, created = run_async(
            _store(conn).insert_release(Release(repository="octo/app", version="v1.0.0"))
        )

        assert created is True
        assert release.id == 1
        assert release.status == ReleaseStatus.PUBLISHED
        assert release.release_date.tzinfo == timezone.utc
        assert "ON CONFLICT (repository, version) DO NOTHING" in conn.fetchrow.await_args.args[0]

    def test_insert_release_conflict_returns_existing(self) -> None:
        conn = MagicMock()
        conn.fetchrow = AsyncMock(side_effect=[None, _release_row(id=7)])

        release, created = run_async(
            _store(conn).insert_release(Release(repository="octo/app", version="v1.0.0"))
        )

        assert created is False
        assert release.id == 7

    def test_insert_pull_request_serializes_labels(self) -> None:
        row = {
            "id": 3,
            "pr_number": 42,
            "release_id": 1,
            "title": "Fix crash",
            "author": "octocat",
            "description": "Details",
            "url": "https://github.com/octo/app/pull/42",
            "merged_at": NOW,
            "labels": json.dumps(["bug", "ui"]),
            "category_id": 2,
            "created_at": NOW,
        }
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value=row)
        pr = PullRequest(
            pr_number=42,
            release_id=1,
            title="Fix crash",
            author="octocat",
            body="Details",
            merged_at=NOW.replace(tzinfo=timezone.utc),
            labels=["bug", "ui"],
            category_id=2,
        )

        stored, created = run_async(_store(conn).insert_pull_request(pr))

        assert created is True
        assert stored.labels == ["bug", "ui"]
        assert stored.body == "Details"
        assert json.loads(conn.fetchrow.await_args.args[8]) == ["bug", "ui"]

    def test_insert_commit_conflict(self) -> None:
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value=None)

        created = run_async(
            _store(conn).insert_commit(
                Commit(hash="abc", message="m", author="a", committed_at=NOW)
            )
        )

        assert created is False


class TestErrors:
    def test_driver_errors_are_wrapped(self) -> None:
        conn = MagicMock()
        conn.fetchrow = AsyncMock(side_effect=OSError("connection reset"))

        with pytest.raises(DatabaseError) as exc_info:
            run_async(_store(conn).get_release(1))

        assert isinstance(exc_info.value.original_error, OSError)

    def test_unconnected_pool_raises(self) -> None:
        store = PostgresReleaseStore("postgresql://test/notes")

        with pytest.raises(DatabaseError):
            run_async(store.get_release(1))

    def test_health_check_reports_failure(self) -> None:
        store = PostgresReleaseStore("postgresql://test/notes")

        assert run_async(store.health_check()) is False

    def test_health_check_ok(self) -> None:
        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=1)

        assert run_async(_store(conn).health_check()) is True

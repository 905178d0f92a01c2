"""In-memory implementation of the ReleaseStore protocol.

Used for local development when no database_url is configured, and by the
test suite. Natural-identity indexes play the role of the unique constraints
of the PostgreSQL schema; each insert checks and writes without awaiting in
between, so concurrent coroutines observe insert-or-ignore semantics.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from src.releasenotes.store.models import (
    Category,
    Commit,
    PullRequest,
    Release,
    ReleaseStatus,
    utc_now,
)


class InMemoryReleaseStore:
    """Dictionary-backed store for releases, pull requests and commits."""

    def __init__(self) -> None:
        self._releases: Dict[int, Release] = {}
        self._release_index: Dict[Tuple[str, str], int] = {}
        self._pull_requests: Dict[int, PullRequest] = {}
        self._pull_request_index: Dict[Tuple[int, int], int] = {}
        self._commits: Dict[str, Commit] = {}
        self._categories: Dict[str, Category] = {}
        self._next_ids: Dict[str, int] = {}

    def _next_id(self, table: str) -> int:
        value = self._next_ids.get(table, 0) + 1
        self._next_ids[table] = value
        return value

    # -------------------------------------------------------------------------
    # Releases
    # -------------------------------------------------------------------------
    async def get_release(self, release_id: int) -> Optional[Release]:
        release = self._releases.get(release_id)
        return release.model_copy() if release else None

    async def get_release_by_version(
        self, repository: str, version: str
    ) -> Optional[Release]:
        release_id = self._release_index.get((repository, version))
        if release_id is None:
            return None
        return await self.get_release(release_id)

    async def get_latest_release(self, repository: str) -> Optional[Release]:
        releases = await self.list_releases(repository)
        return releases[0] if releases else None

    async def list_releases(
        self, repository: Optional[str] = None
    ) -> List[Release]:
        releases = [
            r.model_copy()
            for r in self._releases.values()
            if repository is None or r.repository == repository
        ]
        releases.sort(key=lambda r: (r.release_date, r.id), reverse=True)
        return releases

    async def insert_release(self, release: Release) -> Tuple[Release, bool]:
        key = (release.repository, release.version)
        existing_id = self._release_index.get(key)
        if existing_id is not None:
            return self._releases[existing_id].model_copy(), False

        stored = release.model_copy(update={"id": self._next_id("releases")})
        self._releases[stored.id] = stored
        self._release_index[key] = stored.id
        return stored.model_copy(), True

    async def mark_release_published(
        self,
        release_id: int,
        name: Optional[str],
        description: Optional[str],
    ) -> Release:
        release = self._releases[release_id]
        updated = release.model_copy(
            update={
                "name": name,
                "description": description,
                "status": ReleaseStatus.PUBLISHED,
                "updated_at": utc_now(),
            }
        )
        self._releases[release_id] = updated
        return updated.model_copy()

    async def update_generated_notes(self, release_id: int, notes: str) -> None:
        release = self._releases[release_id]
        self._releases[release_id] = release.model_copy(
            update={"generated_notes": notes, "updated_at": utc_now()}
        )

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------
    async def get_pull_request(
        self, release_id: int, pr_number: int
    ) -> Optional[PullRequest]:
        pr_id = self._pull_request_index.get((pr_number, release_id))
        if pr_id is None:
            return None
        return self._pull_requests[pr_id].model_copy()

    async def list_pull_requests(self, release_id: int) -> List[PullRequest]:
        prs = [
            pr.model_copy()
            for pr in self._pull_requests.values()
            if pr.release_id == release_id
        ]
        prs.sort(key=lambda pr: (pr.merged_at, pr.id))
        return prs

    async def insert_pull_request(
        self, pull_request: PullRequest
    ) -> Tuple[PullRequest, bool]:
        key = (pull_request.pr_number, pull_request.release_id)
        existing_id = self._pull_request_index.get(key)
        if existing_id is not None:
            return self._pull_requests[existing_id].model_copy(), False

        stored = pull_request.model_copy(
            update={"id": self._next_id("pull_requests")}
        )
        self._pull_requests[stored.id] = stored
        self._pull_request_index[key] = stored.id
        return stored.model_copy(), True

    # -------------------------------------------------------------------------
    # Commits
    # -------------------------------------------------------------------------
    async def commit_exists(self, commit_hash: str) -> bool:
        return commit_hash in self._commits

    async def insert_commit(self, commit: Commit) -> bool:
        if commit.hash in self._commits:
            return False
        self._commits[commit.hash] = commit.model_copy(
            update={"id": self._next_id("commits")}
        )
        return True

    async def list_commits(self, release_id: int) -> List[Commit]:
        commits = [
            c.model_copy()
            for c in self._commits.values()
            if c.release_id == release_id
        ]
        commits.sort(key=lambda c: (c.committed_at, c.id))
        return commits

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------
    async def list_categories(self) -> List[Category]:
        categories = [c.model_copy() for c in self._categories.values()]
        categories.sort(key=lambda c: (c.display_order, c.id))
        return categories

    async def insert_categories(self, categories: Sequence[Category]) -> None:
        for category in categories:
            if category.name in self._categories:
                continue
            self._categories[category.name] = category.model_copy(
                update={"id": self._next_id("categories")}
            )

    async def health_check(self) -> bool:
        return True

    def counts(self) -> Dict[str, int]:
        """Row counts per table, for diagnostics and tests."""
        return {
            "releases": len(self._releases),
            "pull_requests": len(self._pull_requests),
            "commits": len(self._commits),
            "categories": len(self._categories),
        }

"""Ingestion engine mapping normalized webhook events onto the store.

Receives ReleaseEvent, PullRequestEvent and PushEvent and records them as
releases, pull requests and commits:

- release → create (and backfill merged PRs from GitHub) or mark published
- pull_request → attach to the latest release, creating a draft
  "unreleased" release when the repository has none
- push → record commits against the latest release, linking each to a PR
  referenced as ``#<number>`` in its message

Every write goes through the store's insert-or-ignore methods, so redelivery
of the same webhook never duplicates rows. Backfill failures are logged,
counted and skipped; they never undo the created release.

The engine holds no state beyond its injected collaborators.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from src.releasenotes.categorizer import ensure_default_categories, resolve_category_id
from src.releasenotes.errors import ConflictError, NotFoundError
from src.releasenotes.github.client import GitHubAPIError, GitHubClient
from src.releasenotes.github.models import GitHubPullRequest
from src.releasenotes.ingestion.models import (
    CommitInput,
    IngestionResult,
    IngestionStatus,
    ItemResult,
    ItemStatus,
    PullRequestInput,
)
from src.releasenotes.metrics import ReleaseNotesMetrics
from src.releasenotes.store.base import DatabaseError, ReleaseStore
from src.releasenotes.store.models import (
    UNRELEASED_VERSION,
    Category,
    Commit,
    PullRequest,
    Release,
    ReleaseStatus,
    utc_now,
)
from src.releasenotes.webhook.models import (
    PullRequestEvent,
    PushEvent,
    ReleaseEvent,
    WebhookEvent,
)

logger = logging.getLogger(__name__)


PR_REFERENCE = re.compile(r"#(\d+)")


def extract_pr_reference(message: str) -> Optional[int]:
    """Return the number of the first ``#<digits>`` reference in a message."""
    match = PR_REFERENCE.search(message)
    if match is None:
        return None
    return int(match.group(1))


class IngestionEngine:
    """Records webhook events in the release store.

    Attributes:
        store: Release store (PostgreSQL or in-memory).
        github_client: GitHub client used to backfill new releases. None
            disables backfill.
        metrics: Optional metrics for counting skipped backfill steps.
        backfill_limit: Maximum merged pull requests fetched per release.
    """

    def __init__(
        self,
        store: ReleaseStore,
        github_client: Optional[GitHubClient],
        metrics: Optional[ReleaseNotesMetrics] = None,
        backfill_limit: int = 100,
    ):
        self.store = store
        self.github_client = github_client
        self.metrics = metrics
        self.backfill_limit = backfill_limit

    async def ingest(self, event: WebhookEvent) -> IngestionResult:
        """Dispatch a normalized event to its ingestion procedure."""
        if isinstance(event, ReleaseEvent):
            return await self.ingest_release(event)
        if isinstance(event, PullRequestEvent):
            return await self.ingest_pull_request(event)
        if isinstance(event, PushEvent):
            return await self.ingest_push(event)
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    # -------------------------------------------------------------------------
    # Release events
    # -------------------------------------------------------------------------
    async def ingest_release(self, event: ReleaseEvent) -> IngestionResult:
        """Create or publish the release named by a release event.

        A new release is stored as published and backfilled with the
        repository's recently merged pull requests and their commits. An
        existing release only has its name, description and status updated.
        """
        existing = await self.store.get_release_by_version(
            event.repository, event.version
        )
        if existing is not None:
            return await self._publish_existing(existing, event)

        release, created = await self.store.insert_release(
            Release(
                repository=event.repository,
                version=event.version,
                name=event.name,
                description=event.body,
                release_date=event.published_at,
                status=ReleaseStatus.PUBLISHED,
            )
        )
        if not created:
            # A concurrent delivery stored it between lookup and insert
            return await self._publish_existing(release, event)

        logger.info(
            "Created release",
            extra={
                "release_id": release.id,
                "repository": release.repository,
                "version": release.version,
            },
        )

        added, errors = await self._backfill(release)
        return IngestionResult(
            status=IngestionStatus.CREATED,
            release_id=release.id,
            count=added,
            backfill_errors=errors,
        )

    async def _publish_existing(
        self, release: Release, event: ReleaseEvent
    ) -> IngestionResult:
        updated = await self.store.mark_release_published(
            release.id, event.name, event.body
        )
        logger.info(
            "Marked release published",
            extra={"release_id": updated.id, "version": updated.version},
        )
        return IngestionResult(
            status=IngestionStatus.UPDATED,
            release_id=updated.id,
        )

    async def _backfill(self, release: Release) -> Tuple[int, int]:
        """Backfill a new release with merged pull requests and their commits.

        Returns:
            Number of pull requests and commits inserted, and number of
            steps skipped after a failure.
        """
        if self.github_client is None:
            logger.warning(
                "No GitHub client configured, skipping backfill",
                extra={"release_id": release.id},
            )
            return 0, 0

        errors = 0
        added = 0

        try:
            pull_requests = await self.github_client.list_merged_pull_requests(
                release.repository, limit=self.backfill_limit
            )
        except GitHubAPIError as e:
            logger.warning(
                "Backfill skipped: could not list merged pull requests",
                extra={
                    "release_id": release.id,
                    "repository": release.repository,
                    "error": str(e),
                },
            )
            self._record_backfill_error("list_pull_requests")
            return 0, 1

        try:
            categories = await ensure_default_categories(self.store)
        except DatabaseError as e:
            logger.warning(
                "Backfill skipped: could not load categories",
                extra={"release_id": release.id, "error": str(e)},
            )
            self._record_backfill_error("categories")
            return 0, 1

        for github_pr in pull_requests:
            try:
                stored, created = await self._store_pull_request(
                    release.id, _pull_request_input(github_pr), categories
                )
            except DatabaseError as e:
                logger.warning(
                    "Backfill skipped pull request",
                    extra={
                        "release_id": release.id,
                        "pr_number": github_pr.number,
                        "error": str(e),
                    },
                )
                self._record_backfill_error("pull_request")
                errors += 1
                continue

            if created:
                added += 1

            try:
                added += await self._backfill_commits(release, stored)
            except (GitHubAPIError, DatabaseError) as e:
                logger.warning(
                    "Backfill skipped pull request commits",
                    extra={
                        "release_id": release.id,
                        "pr_number": stored.pr_number,
                        "error": str(e),
                    },
                )
                self._record_backfill_error("commits")
                errors += 1

        logger.info(
            "Backfill complete",
            extra={
                "release_id": release.id,
                "pull_requests": len(pull_requests),
                "inserted": added,
                "errors": errors,
            },
        )
        return added, errors

    async def _backfill_commits(
        self, release: Release, pull_request: PullRequest
    ) -> int:
        commits = await self.github_client.list_pull_request_commits(
            release.repository, pull_request.pr_number
        )
        inserted = 0
        for github_commit in commits:
            created = await self.store.insert_commit(
                Commit(
                    hash=github_commit.sha,
                    message=github_commit.message,
                    author=github_commit.author,
                    author_email=github_commit.author_email,
                    committed_at=github_commit.committed_at,
                    pull_request_id=pull_request.id,
                    release_id=release.id,
                )
            )
            if created:
                inserted += 1
        return inserted

    def _record_backfill_error(self, stage: str) -> None:
        if self.metrics is not None:
            self.metrics.record_backfill_error(stage)

    # -------------------------------------------------------------------------
    # Pull request events
    # -------------------------------------------------------------------------
    async def ingest_pull_request(self, event: PullRequestEvent) -> IngestionResult:
        """Attach a merged pull request to the latest release."""
        status = IngestionStatus.ADDED
        release = await self.store.get_latest_release(event.repository)
        if release is None:
            release, created = await self.store.insert_release(
                Release(
                    repository=event.repository,
                    version=UNRELEASED_VERSION,
                    name="Unreleased Changes",
                    status=ReleaseStatus.DRAFT,
                )
            )
            if created:
                status = IngestionStatus.DRAFT_RELEASE_CREATED
                logger.info(
                    "Created draft release for orphan pull request",
                    extra={
                        "release_id": release.id,
                        "repository": event.repository,
                        "pr_number": event.number,
                    },
                )

        categories = await ensure_default_categories(self.store)
        stored, created = await self._store_pull_request(
            release.id,
            PullRequestInput(
                number=event.number,
                title=event.title,
                author=event.author,
                body=event.body,
                url=event.url,
                merged_at=event.merged_at,
                labels=event.labels,
            ),
            categories,
        )
        return IngestionResult(
            status=status,
            release_id=release.id,
            pull_request_id=stored.id,
            count=1 if created else 0,
        )

    async def _store_pull_request(
        self,
        release_id: int,
        pr: PullRequestInput,
        categories: Sequence[Category],
    ) -> Tuple[PullRequest, bool]:
        """Insert a merged pull request unless already attached to the release.

        The category is resolved from the labels only when the row is new;
        an existing row is returned untouched.
        """
        existing = await self.store.get_pull_request(release_id, pr.number)
        if existing is not None:
            return existing, False

        return await self.store.insert_pull_request(
            PullRequest(
                pr_number=pr.number,
                release_id=release_id,
                title=pr.title,
                author=pr.author,
                body=pr.body,
                url=pr.url,
                merged_at=pr.merged_at,
                labels=list(pr.labels),
                category_id=resolve_category_id(pr.labels, categories),
            )
        )

    # -------------------------------------------------------------------------
    # Push events
    # -------------------------------------------------------------------------
    async def ingest_push(self, event: PushEvent) -> IngestionResult:
        """Record pushed commits against the latest release."""
        release = await self.store.get_latest_release(event.repository)
        if release is None:
            logger.info(
                "Ignoring push for repository without releases",
                extra={"repository": event.repository},
            )
            return IngestionResult(status=IngestionStatus.NO_RELEASE)

        pull_requests = await self._pull_requests_by_number(release.id)

        inserted = 0
        for push_commit in event.commits:
            if await self.store.commit_exists(push_commit.hash):
                continue

            created = await self.store.insert_commit(
                Commit(
                    hash=push_commit.hash,
                    message=push_commit.message,
                    author=push_commit.author,
                    author_email=push_commit.author_email,
                    committed_at=push_commit.timestamp,
                    pull_request_id=_linked_pull_request_id(
                        extract_pr_reference(push_commit.message), pull_requests
                    ),
                    release_id=release.id,
                )
            )
            if created:
                inserted += 1

        logger.info(
            "Processed push",
            extra={
                "release_id": release.id,
                "received": len(event.commits),
                "inserted": inserted,
            },
        )
        return IngestionResult(
            status=IngestionStatus.PROCESSED,
            release_id=release.id,
            count=inserted,
        )

    async def _pull_requests_by_number(self, release_id: int) -> Dict[int, PullRequest]:
        return {
            pr.pr_number: pr
            for pr in await self.store.list_pull_requests(release_id)
        }

    # -------------------------------------------------------------------------
    # Manual ingestion
    # -------------------------------------------------------------------------
    async def create_release(
        self,
        repository: str,
        version: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Release:
        """Create a draft release by hand.

        Raises:
            ConflictError: If the repository already has this version.
        """
        release, created = await self.store.insert_release(
            Release(
                repository=repository,
                version=version,
                name=name,
                description=description,
                status=ReleaseStatus.DRAFT,
            )
        )
        if not created:
            raise ConflictError(
                f"Release {version} already exists for {repository}",
                detail={"release_id": release.id},
            )
        return release

    async def add_pull_requests(
        self,
        release_id: int,
        pull_requests: Sequence[PullRequestInput],
    ) -> List[ItemResult]:
        """Attach pull requests to a release through the webhook insert path.

        Raises:
            NotFoundError: If the release does not exist.
        """
        await self._require_release(release_id)
        categories = await ensure_default_categories(self.store)

        results = []
        for pr in pull_requests:
            key = str(pr.number)
            if pr.merged_at is None:
                results.append(
                    ItemResult(key=key, status=ItemStatus.SKIPPED, reason="not merged")
                )
                continue
            _, created = await self._store_pull_request(release_id, pr, categories)
            results.append(
                ItemResult(
                    key=key,
                    status=ItemStatus.ADDED if created else ItemStatus.EXISTS,
                )
            )
        return results

    async def add_commits(
        self,
        release_id: int,
        commits: Sequence[CommitInput],
    ) -> List[ItemResult]:
        """Record commits against a release.

        Raises:
            NotFoundError: If the release does not exist.
        """
        await self._require_release(release_id)
        pull_requests = await self._pull_requests_by_number(release_id)

        results = []
        for commit in commits:
            pr_number = commit.pr_number
            if pr_number is None:
                pr_number = extract_pr_reference(commit.message)

            created = await self.store.insert_commit(
                Commit(
                    hash=commit.hash,
                    message=commit.message,
                    author=commit.author,
                    author_email=commit.author_email,
                    committed_at=commit.committed_at or utc_now(),
                    pull_request_id=_linked_pull_request_id(pr_number, pull_requests),
                    release_id=release_id,
                )
            )
            results.append(
                ItemResult(
                    key=commit.hash,
                    status=ItemStatus.ADDED if created else ItemStatus.EXISTS,
                )
            )
        return results

    async def _require_release(self, release_id: int) -> Release:
        release = await self.store.get_release(release_id)
        if release is None:
            raise NotFoundError(f"Release {release_id} not found")
        return release


def _linked_pull_request_id(
    pr_number: Optional[int],
    pull_requests: Dict[int, PullRequest],
) -> Optional[int]:
    if pr_number is None:
        return None
    pr = pull_requests.get(pr_number)
    return pr.id if pr else None


def _pull_request_input(github_pr: GitHubPullRequest) -> PullRequestInput:
    return PullRequestInput(
        number=github_pr.number,
        title=github_pr.title,
        author=github_pr.author,
        body=github_pr.body,
        url=github_pr.url,
        merged_at=github_pr.merged_at,
        labels=github_pr.labels,
    )

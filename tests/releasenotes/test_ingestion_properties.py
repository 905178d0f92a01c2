"""Property-based tests for webhook ingestion idempotency.

GitHub redelivers webhooks. Ingesting the same event any number of times
must leave the store exactly as a single delivery does: no duplicate
releases, pull requests or commits.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 50 per property test
"""

import asyncio
from datetime import datetime, timezone

from hypothesis import given, settings, strategies as st

from src.releasenotes.ingestion import IngestionEngine, IngestionStatus
from src.releasenotes.store.memory import InMemoryReleaseStore
from src.releasenotes.webhook.models import (
    PullRequestEvent,
    PushCommit,
    PushEvent,
    ReleaseEvent,
)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


REPOSITORY = "octo/app"

timestamps = st.datetimes(
    min_value=datetime(2020, 1, 1),
    max_value=datetime(2030, 1, 1),
    timezones=st.just(timezone.utc),
)


@st.composite
def release_events(draw: st.DrawFn) -> ReleaseEvent:
    return ReleaseEvent(
        repository=REPOSITORY,
        version=draw(st.from_regex(r"v[0-9]{1,2}\.[0-9]{1,2}\.[0-9]{1,2}", fullmatch=True)),
        name=draw(st.one_of(st.none(), st.text(min_size=1, max_size=40))),
        body=draw(st.one_of(st.none(), st.text(min_size=1, max_size=200))),
        published_at=draw(timestamps),
    )


@st.composite
def pull_request_events(draw: st.DrawFn) -> PullRequestEvent:
    return PullRequestEvent(
        repository=REPOSITORY,
        number=draw(st.integers(min_value=1, max_value=500)),
        title=draw(st.text(min_size=1, max_size=80)),
        author="octocat",
        merged_at=draw(timestamps),
        labels=draw(
            st.lists(st.sampled_from(["bug", "feature", "docs", "question"]), max_size=3)
        ),
    )


@st.composite
def push_events(draw: st.DrawFn) -> PushEvent:
    hashes = draw(
        st.lists(
            st.text(alphabet="0123456789abcdef", min_size=40, max_size=40),
            max_size=8,
            unique=True,
        )
    )
    commits = [
        PushCommit(
            hash=commit_hash,
            message=draw(st.sampled_from(["Fix typo", "Merge pull request #1", "Bump #2"])),
            author="dev",
            timestamp=draw(timestamps),
        )
        for commit_hash in hashes
    ]
    return PushEvent(repository=REPOSITORY, ref="refs/heads/main", commits=commits)


class TestIdempotentRedelivery:
    """Redelivering an event never changes the stored row counts."""

    @given(event=release_events(), deliveries=st.integers(min_value=2, max_value=4))
    @settings(max_examples=50)
    def test_release_redelivery(self, event: ReleaseEvent, deliveries: int) -> None:
        store = InMemoryReleaseStore()
        engine = IngestionEngine(store, github_client=None)

        first = run_async(engine.ingest(event))
        counts = store.counts()
        for _ in range(deliveries - 1):
            again = run_async(engine.ingest(event))
            assert again.status == IngestionStatus.UPDATED
            assert again.release_id == first.release_id

        assert first.status == IngestionStatus.CREATED
        assert store.counts() == counts
        assert store.counts()["releases"] == 1

    @given(event=pull_request_events(), deliveries=st.integers(min_value=2, max_value=4))
    @settings(max_examples=50)
    def test_pull_request_redelivery(
        self, event: PullRequestEvent, deliveries: int
    ) -> None:
        store = InMemoryReleaseStore()
        engine = IngestionEngine(store, github_client=None)

        first = run_async(engine.ingest(event))
        counts = store.counts()
        for _ in range(deliveries - 1):
            again = run_async(engine.ingest(event))
            assert again.status == IngestionStatus.ADDED
            assert again.count == 0
            assert again.pull_request_id == first.pull_request_id

        assert first.count == 1
        assert store.counts() == counts
        assert store.counts()["pull_requests"] == 1

    @given(event=push_events(), deliveries=st.integers(min_value=2, max_value=4))
    @settings(max_examples=50)
    def test_push_redelivery(self, event: PushEvent, deliveries: int) -> None:
        store = InMemoryReleaseStore()
        engine = IngestionEngine(store, github_client=None)
        run_async(
            engine.ingest(
                ReleaseEvent(
                    repository=REPOSITORY,
                    version="v1.0.0",
                    published_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                )
            )
        )

        first = run_async(engine.ingest(event))
        for _ in range(deliveries - 1):
            again = run_async(engine.ingest(event))
            assert again.count == 0

        assert first.count == len(event.commits)
        assert store.counts()["commits"] == len(event.commits)

    @given(events=st.lists(pull_request_events(), min_size=1, max_size=10))
    @settings(max_examples=50)
    def test_category_fixed_at_first_insert(self, events: list) -> None:
        store = InMemoryReleaseStore()
        engine = IngestionEngine(store, github_client=None)

        for event in events:
            run_async(engine.ingest(event))
        release = run_async(store.get_latest_release(REPOSITORY))
        before = {
            pr.pr_number: pr.category_id
            for pr in run_async(store.list_pull_requests(release.id))
        }

        # Relabelled redelivery keeps the original category
        for event in events:
            run_async(engine.ingest(event.model_copy(update={"labels": ["breaking"]})))
        after = {
            pr.pr_number: pr.category_id
            for pr in run_async(store.list_pull_requests(release.id))
        }

        assert before == after

"""Changelog assembly with LLM generation and a deterministic fallback.

Assembling a changelog for a release:

1. Load the release, its pull requests, optionally its commits, and the
   categories (seeding the default taxonomy when none exist).
2. Group pull requests by category in display order. PRs without a category,
   or whose category no longer exists, go to "Other Changes".
3. Ask the generative backend for the JSON structure, whatever the requested
   format. Without a backend, or on error, timeout or unparseable output, the
   locally grouped notes are used instead, with a static summary.
4. For markdown and HTML, ask the backend a second time for the literal
   text. Any failure there, or a degraded first call, renders locally.
5. Persist the notes (including the rendered text) on the release.

Generation never raises because of the backend; only a missing release does.
"""

import asyncio
import json
import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

from src.releasenotes.categorizer import OTHER_CHANGES, ensure_default_categories
from src.releasenotes.changelog.generator import TextGenerator, extract_fenced_block
from src.releasenotes.changelog.models import (
    CategorySection,
    ChangeItem,
    ChangelogFormat,
    ChangelogSource,
    ChangelogStyle,
    CommitEntry,
    ReleaseNotes,
    RenderedChangelog,
)
from src.releasenotes.changelog.prompts import (
    CHANGELOG_SYSTEM_PROMPT,
    JSON_SYSTEM_PROMPT,
    build_changelog_prompt,
)
from src.releasenotes.changelog.renderers import (
    normalize_categories,
    parse_notes_json,
    render_html,
    render_json,
    render_markdown,
)
from src.releasenotes.errors import NotFoundError, UpstreamFailure
from src.releasenotes.github.client import GitHubAPIError, GitHubClient
from src.releasenotes.metrics import ReleaseNotesMetrics
from src.releasenotes.store.base import ReleaseStore
from src.releasenotes.store.models import Category, Commit, PullRequest, Release


logger = logging.getLogger(__name__)


FALLBACK_SUMMARY = (
    "These release notes were generated automatically from the merged pull "
    "requests of this release."
)


def group_pull_requests(
    pull_requests: Sequence[PullRequest],
    categories: Sequence[Category],
) -> Dict[str, CategorySection]:
    """Group pull requests into sections keyed by category name.

    Sections follow the categories' display order; "Other Changes" is last.
    Empty sections are omitted.
    """
    by_id = {c.id: c for c in categories}
    buckets: Dict[str, List[ChangeItem]] = {
        c.name: [] for c in sorted(categories, key=lambda c: (c.display_order, c.id or 0))
    }
    other: List[ChangeItem] = []

    for pr in pull_requests:
        item = ChangeItem(
            title=pr.title,
            pr_number=pr.pr_number,
            url=pr.url or None,
            author=pr.author,
        )
        category = by_id.get(pr.category_id) if pr.category_id is not None else None
        if category is None:
            other.append(item)
        else:
            buckets[category.name].append(item)

    sections = {
        name: CategorySection(title=name, items=items)
        for name, items in buckets.items()
        if items
    }
    if other:
        sections[OTHER_CHANGES] = CategorySection(title=OTHER_CHANGES, items=other)
    return sections


def build_local_notes(
    release: Release,
    pull_requests: Sequence[PullRequest],
    commits: Sequence[Commit],
    categories: Sequence[Category],
    include_commits: bool,
) -> ReleaseNotes:
    """Build release notes directly from stored data, without a backend."""
    commit_entries: Optional[List[CommitEntry]] = None
    if include_commits:
        commit_entries = [
            CommitEntry(
                hash=c.hash,
                message=c.message,
                author=c.author,
                date=c.committed_at,
            )
            for c in commits
        ]

    return ReleaseNotes(
        version=release.version,
        name=release.name,
        release_date=release.release_date,
        description=release.description,
        categories=group_pull_requests(pull_requests, categories),
        commits=commit_entries,
    )


def _unwrap_literal(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        return extract_fenced_block(stripped)
    return stripped


class ChangelogAssembler:
    """Assembles, renders and persists release changelogs.

    Attributes:
        store: Release store.
        generator: Generative backend; None means always use the fallback.
        metrics: Optional metrics recorder.
        generation_timeout: Upper bound in seconds for each backend call.
    """

    def __init__(
        self,
        store: ReleaseStore,
        generator: Optional[TextGenerator] = None,
        metrics: Optional[ReleaseNotesMetrics] = None,
        generation_timeout: float = 60.0,
    ):
        self.store = store
        self.generator = generator
        self.metrics = metrics
        self.generation_timeout = generation_timeout

    async def assemble(
        self,
        release_id: int,
        format: ChangelogFormat = ChangelogFormat.MARKDOWN,
        style: ChangelogStyle = ChangelogStyle.TECHNICAL,
        include_commits: bool = False,
        custom_instructions: Optional[str] = None,
    ) -> RenderedChangelog:
        """Assemble the changelog of a release in the requested format.

        Raises:
            NotFoundError: If the release does not exist.
        """
        started = time.monotonic()

        release = await self.store.get_release(release_id)
        if release is None:
            raise NotFoundError(f"Release {release_id} not found")

        pull_requests = await self.store.list_pull_requests(release_id)
        commits = await self.store.list_commits(release_id) if include_commits else []
        categories = await ensure_default_categories(self.store)

        local_notes = build_local_notes(
            release, pull_requests, commits, categories, include_commits
        )

        notes, source = await self._generate_structure(
            release, local_notes, style, custom_instructions
        )
        raw = await self._render(
            release, notes, source, format, style, custom_instructions
        )

        notes = notes.model_copy(update={"format": format, "raw": raw})
        await self.store.update_generated_notes(
            release_id, notes.model_dump_json(by_alias=True)
        )

        duration = time.monotonic() - started
        if self.metrics is not None:
            self.metrics.record_generation(format.value, source.value, duration)

        logger.info(
            "Changelog assembled",
            extra={
                "release_id": release_id,
                "format": format.value,
                "source": source.value,
                "pull_requests": len(pull_requests),
                "duration_seconds": round(duration, 3),
            },
        )
        return RenderedChangelog(
            release_id=release_id,
            format=format,
            source=source,
            notes=notes,
            raw=raw,
        )

    async def _call_backend(self, system_instruction: str, user_prompt: str) -> str:
        return await asyncio.wait_for(
            self.generator.generate(system_instruction, user_prompt),
            timeout=self.generation_timeout,
        )

    async def _generate_structure(
        self,
        release: Release,
        local_notes: ReleaseNotes,
        style: ChangelogStyle,
        custom_instructions: Optional[str],
    ) -> Tuple[ReleaseNotes, ChangelogSource]:
        fallback = local_notes.model_copy(update={"summary": FALLBACK_SUMMARY})

        if self.generator is None:
            logger.info(
                "No generative backend configured, using fallback notes",
                extra={"release_id": release.id},
            )
            return fallback, ChangelogSource.FALLBACK

        prompt = build_changelog_prompt(
            release.repository,
            local_notes,
            style,
            ChangelogFormat.JSON,
            custom_instructions,
        )
        try:
            text = await self._call_backend(JSON_SYSTEM_PROMPT, prompt)
            notes = self._parse_structure(text, local_notes)
        except Exception as e:
            logger.warning(
                "Structured generation failed, using fallback notes",
                extra={
                    "release_id": release.id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return fallback, ChangelogSource.FALLBACK

        return notes, ChangelogSource.LLM

    def _parse_structure(self, text: str, local_notes: ReleaseNotes) -> ReleaseNotes:
        """Merge backend JSON into the locally known release facts.

        Release facts (version, name, date, description, commits) always come
        from the store; the backend contributes the summary and sections.

        Raises:
            ValueError: If the text is not JSON of the expected shape.
        """
        data = json.loads(extract_fenced_block(text))
        if not isinstance(data, dict):
            raise ValueError("generated changelog must be a JSON object")

        categories = {
            name: CategorySection.model_validate(section)
            for name, section in normalize_categories(data.get("categories") or {}).items()
        }
        if local_notes.categories and not any(s.items for s in categories.values()):
            raise ValueError("generated changelog has no items")

        summary = data.get("summary")
        return local_notes.model_copy(
            update={
                "summary": summary if isinstance(summary, str) and summary else None,
                "categories": categories,
            }
        )

    async def _render(
        self,
        release: Release,
        notes: ReleaseNotes,
        source: ChangelogSource,
        format: ChangelogFormat,
        style: ChangelogStyle,
        custom_instructions: Optional[str],
    ) -> str:
        if format is ChangelogFormat.JSON:
            return render_json(notes)

        local_renderer = render_html if format is ChangelogFormat.HTML else render_markdown
        if source is ChangelogSource.FALLBACK:
            return local_renderer(notes)

        prompt = build_changelog_prompt(
            release.repository, notes, style, format, custom_instructions
        )
        try:
            text = _unwrap_literal(await self._call_backend(CHANGELOG_SYSTEM_PROMPT, prompt))
        except Exception as e:
            logger.warning(
                "Literal generation failed, rendering locally",
                extra={
                    "release_id": release.id,
                    "format": format.value,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return local_renderer(notes)

        if not text:
            return local_renderer(notes)
        return text

    async def get_stored_notes(self, release_id: int) -> ReleaseNotes:
        """Return the last persisted notes of a release.

        Raises:
            NotFoundError: If the release does not exist or has no notes.
        """
        release = await self.store.get_release(release_id)
        if release is None:
            raise NotFoundError(f"Release {release_id} not found")
        if not release.generated_notes:
            raise NotFoundError(f"Release {release_id} has no generated notes")

        try:
            return parse_notes_json(release.generated_notes)
        except ValueError:
            logger.warning(
                "Stored notes are not structured, returning raw text",
                extra={"release_id": release_id},
            )
            return ReleaseNotes(
                version=release.version,
                name=release.name,
                release_date=release.release_date,
                description=release.description,
                raw=release.generated_notes,
            )

    async def publish_to_github(
        self,
        release_id: int,
        github_client: GitHubClient,
    ) -> str:
        """Write the stored notes into the body of the matching GitHub release.

        Stored markdown is pushed as-is; other formats are re-rendered as
        markdown from the stored structure.

        Returns:
            The HTML URL of the updated GitHub release.

        Raises:
            NotFoundError: If the release, its notes, or the GitHub release
                for its tag do not exist.
            UpstreamFailure: If GitHub rejects the update.
        """
        notes = await self.get_stored_notes(release_id)
        release = await self.store.get_release(release_id)

        if notes.raw and notes.format in (ChangelogFormat.MARKDOWN, None):
            body = notes.raw
        else:
            body = render_markdown(notes)

        try:
            github_release = await github_client.get_release_by_tag(
                release.repository, release.version
            )
            if github_release is None:
                raise NotFoundError(
                    f"GitHub release for tag {release.version} not found in "
                    f"{release.repository}"
                )
            updated = await github_client.update_release_body(
                release.repository, github_release.id, body
            )
        except GitHubAPIError as e:
            logger.error(
                "Failed to publish notes to GitHub",
                extra={"release_id": release_id, "error": str(e)},
            )
            raise UpstreamFailure(f"GitHub update failed: {e.message}") from e

        logger.info(
            "Published notes to GitHub",
            extra={"release_id": release_id, "url": updated.html_url},
        )
        return updated.html_url

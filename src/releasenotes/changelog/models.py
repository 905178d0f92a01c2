"""Structured changelog models.

ReleaseNotes is the canonical representation of a generated changelog. It is
what the generative backend is asked to produce (as JSON), what the local
renderers consume, and what is persisted in ``releases.generated_notes``.

JSON output uses camelCase keys (``releaseDate``, ``prNumber``) and accepts
both camelCase and snake_case on input.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ChangelogFormat(str, Enum):
    MARKDOWN = "markdown"
    HTML = "html"
    JSON = "json"


class ChangelogStyle(str, Enum):
    """Tone requested from the generative backend."""

    TECHNICAL = "technical"
    USER_FRIENDLY = "user-friendly"
    DETAILED = "detailed"
    CONCISE = "concise"


class ChangelogSource(str, Enum):
    """Where the changelog content came from.

    Attributes:
        LLM: Structure produced by the generative backend.
        FALLBACK: Deterministic local notes built from the stored PRs.
    """

    LLM = "llm"
    FALLBACK = "fallback"


class ChangeItem(BaseModel):
    """One pull request entry of a category section."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    pr_number: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("pr_number", "prNumber"),
        serialization_alias="prNumber",
    )
    url: Optional[str] = None
    author: Optional[str] = None


class CategorySection(BaseModel):
    """A titled group of change items."""

    title: str
    items: List[ChangeItem] = Field(default_factory=list)


class CommitEntry(BaseModel):
    """A commit listed in the trailing Commits section."""

    hash: str
    message: str
    author: str
    date: Optional[datetime] = None

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class ReleaseNotes(BaseModel):
    """Structured release notes for one release.

    Attributes:
        version: Release version.
        name: Optional release name.
        release_date: Release timestamp.
        description: Release description.
        summary: Short summary paragraph of the release.
        categories: Sections keyed by category name, in render order.
        commits: Commits, when requested.
        format: Format of ``raw``.
        raw: The rendered text returned to the caller.
    """

    model_config = ConfigDict(populate_by_name=True)

    version: str
    name: Optional[str] = None
    release_date: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("release_date", "releaseDate"),
        serialization_alias="releaseDate",
    )
    description: Optional[str] = None
    summary: Optional[str] = None
    categories: Dict[str, CategorySection] = Field(default_factory=dict)
    commits: Optional[List[CommitEntry]] = None
    format: Optional[ChangelogFormat] = None
    raw: Optional[str] = None

    def item_counts(self) -> Dict[str, int]:
        """Number of items per category, in category order."""
        return {name: len(section.items) for name, section in self.categories.items()}


class GenerateNotesRequest(BaseModel):
    """Body of a changelog generation request."""

    model_config = ConfigDict(populate_by_name=True)

    format: ChangelogFormat = ChangelogFormat.MARKDOWN
    style: ChangelogStyle = ChangelogStyle.TECHNICAL
    include_commits: bool = Field(
        default=False,
        validation_alias=AliasChoices("include_commits", "includeCommits"),
    )
    custom_instructions: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "custom_instructions", "customInstructions", "customPrompt"
        ),
    )


class RenderedChangelog(BaseModel):
    """Result of assembling a changelog.

    Attributes:
        release_id: Release the changelog belongs to.
        format: Requested output format.
        source: Whether the structure came from the backend or the fallback.
        notes: Structured notes.
        raw: Rendered text in the requested format.
    """

    release_id: int
    format: ChangelogFormat
    source: ChangelogSource
    notes: ReleaseNotes
    raw: str

"""Changelog assembly, generation and rendering."""

from src.releasenotes.changelog.assembler import (
    FALLBACK_SUMMARY,
    ChangelogAssembler,
    build_local_notes,
    group_pull_requests,
)
from src.releasenotes.changelog.generator import (
    GenerationError,
    LangChainTextGenerator,
    TextGenerator,
    extract_fenced_block,
)
from src.releasenotes.changelog.models import (
    CategorySection,
    ChangeItem,
    ChangelogFormat,
    ChangelogSource,
    ChangelogStyle,
    CommitEntry,
    GenerateNotesRequest,
    ReleaseNotes,
    RenderedChangelog,
)
from src.releasenotes.changelog.renderers import (
    format_release_date,
    ordered_sections,
    parse_notes_json,
    render_html,
    render_json,
    render_markdown,
)

__all__ = [
    "FALLBACK_SUMMARY",
    "CategorySection",
    "ChangeItem",
    "ChangelogAssembler",
    "ChangelogFormat",
    "ChangelogSource",
    "ChangelogStyle",
    "CommitEntry",
    "GenerateNotesRequest",
    "GenerationError",
    "LangChainTextGenerator",
    "ReleaseNotes",
    "RenderedChangelog",
    "TextGenerator",
    "build_local_notes",
    "extract_fenced_block",
    "format_release_date",
    "group_pull_requests",
    "ordered_sections",
    "parse_notes_json",
    "render_html",
    "render_json",
    "render_markdown",
]

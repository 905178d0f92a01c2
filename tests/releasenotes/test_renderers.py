"""Tests for the deterministic changelog renderers.

Property tests check that markdown, HTML and JSON renderings of the same
notes agree on section order and item counts, and that "Other Changes" is
always rendered last.
"""

import json
import re
import string
from datetime import datetime, timezone

import pytest
from hypothesis import given, settings, strategies as st

from src.releasenotes.categorizer import OTHER_CHANGES, TAXONOMY_ORDER
from src.releasenotes.changelog.models import (
    CategorySection,
    ChangeItem,
    CommitEntry,
    ReleaseNotes,
)
from src.releasenotes.changelog.renderers import (
    format_release_date,
    normalize_categories,
    ordered_sections,
    parse_notes_json,
    render_html,
    render_json,
    render_markdown,
)


# =============================================================================
# Hypothesis Strategies
# =============================================================================

SECTION_NAMES = TAXONOMY_ORDER + [OTHER_CHANGES, "Security", "Performance"]

# Titles without markdown structure characters or newlines
item_titles = st.text(
    alphabet=string.ascii_letters + string.digits + " .,",
    min_size=1,
    max_size=40,
).filter(lambda t: t.strip())


@st.composite
def change_items(draw: st.DrawFn) -> ChangeItem:
    number = draw(st.integers(min_value=1, max_value=9999))
    return ChangeItem(
        title=draw(item_titles),
        pr_number=number,
        url=f"https://github.com/octo/app/pull/{number}",
        author=draw(st.sampled_from(["octocat", "dev", "alice"])),
    )


@st.composite
def release_notes(draw: st.DrawFn) -> ReleaseNotes:
    names = draw(st.lists(st.sampled_from(SECTION_NAMES), unique=True, max_size=len(SECTION_NAMES)))
    names = draw(st.permutations(names))
    categories = {
        name: CategorySection(
            title=name,
            items=draw(st.lists(change_items(), max_size=4)),
        )
        for name in names
    }
    return ReleaseNotes(
        version="v1.2.3",
        name=draw(st.one_of(st.none(), st.just("Spring"))),
        release_date=datetime(2024, 3, 5, tzinfo=timezone.utc),
        summary=draw(st.one_of(st.none(), st.just("A summary."))),
        categories=categories,
    )


def _markdown_sections(text: str) -> list:
    """Return (title, item count) per '## ' section of rendered markdown."""
    sections = []
    for line in text.splitlines():
        if line.startswith("## "):
            sections.append([line[3:], 0])
        elif line.startswith("- ") and sections:
            sections[-1][1] += 1
    return [tuple(s) for s in sections]


def _html_sections(text: str) -> list:
    sections = []
    for chunk in text.split("<h2>")[1:]:
        title = chunk.split("</h2>", 1)[0]
        sections.append((title, chunk.count("<li>")))
    return sections


# =============================================================================
# Property Tests
# =============================================================================


class TestRenderingAgreement:
    """All formats present the same sections in the same order."""

    @given(notes=release_notes())
    @settings(max_examples=100)
    def test_markdown_and_html_agree(self, notes: ReleaseNotes) -> None:
        expected = [(name, len(section.items)) for name, section in ordered_sections(notes)]

        assert _markdown_sections(render_markdown(notes)) == expected
        assert _html_sections(render_html(notes)) == expected

    @given(notes=release_notes())
    @settings(max_examples=100)
    def test_other_changes_is_last(self, notes: ReleaseNotes) -> None:
        names = [name for name, _ in ordered_sections(notes)]
        if OTHER_CHANGES in names:
            assert names[-1] == OTHER_CHANGES

    @given(notes=release_notes())
    @settings(max_examples=100)
    def test_taxonomy_sections_precede_custom_sections(self, notes: ReleaseNotes) -> None:
        names = [name for name, _ in ordered_sections(notes)]
        taxonomy = [n for n in names if n in TAXONOMY_ORDER]

        assert taxonomy == [n for n in TAXONOMY_ORDER if n in taxonomy]
        assert names[: len(taxonomy)] == taxonomy

    @given(notes=release_notes())
    @settings(max_examples=100)
    def test_json_preserves_item_counts(self, notes: ReleaseNotes) -> None:
        parsed = parse_notes_json(render_json(notes))

        assert sorted(parsed.item_counts().items()) == sorted(notes.item_counts().items())


# =============================================================================
# Unit Tests
# =============================================================================


def _sample_notes(**overrides) -> ReleaseNotes:
    values = dict(
        version="v1.0.0",
        name="First",
        release_date=datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc),
        description="Initial release.",
        summary="Adds the basics.",
        categories={
            OTHER_CHANGES: CategorySection(
                title=OTHER_CHANGES,
                items=[ChangeItem(title="Tweak CI", pr_number=3, author="dev")],
            ),
            "Bug Fixes": CategorySection(
                title="Bug Fixes",
                items=[
                    ChangeItem(
                        title="Fix crash",
                        pr_number=42,
                        url="https://github.com/octo/app/pull/42",
                        author="octocat",
                    )
                ],
            ),
            "Features": CategorySection(title="Features", items=[]),
        },
    )
    values.update(overrides)
    return ReleaseNotes(**values)


class TestFormatReleaseDate:
    def test_month_day_year(self) -> None:
        assert format_release_date(datetime(2024, 1, 5, tzinfo=timezone.utc)) == "January 5, 2024"

    def test_none(self) -> None:
        assert format_release_date(None) is None


class TestMarkdown:
    def test_layout(self) -> None:
        text = render_markdown(_sample_notes())

        assert text.startswith("# v1.0.0 - First\n")
        assert "**Released:** January 15, 2024" in text
        assert "- Fix crash ([#42](https://github.com/octo/app/pull/42)) - @octocat" in text
        assert "- Tweak CI (#3) - @dev" in text
        assert "## Features" not in text
        assert text.index("## Bug Fixes") < text.index("## Other Changes")

    def test_heading_without_distinct_name(self) -> None:
        assert render_markdown(_sample_notes(name="v1.0.0")).startswith("# v1.0.0\n")
        assert render_markdown(_sample_notes(name=None)).startswith("# v1.0.0\n")

    def test_commits_section(self) -> None:
        notes = _sample_notes(
            commits=[CommitEntry(hash="0123456789abcdef", message="Fix it", author="dev")]
        )

        assert "## Commits\n\n- 0123456: Fix it - dev" in render_markdown(notes)


class TestHtml:
    def test_text_is_escaped(self) -> None:
        notes = _sample_notes(
            description="<script>alert(1)</script>",
            categories={
                "Features": CategorySection(
                    title="Features",
                    items=[ChangeItem(title="Support <b> & \"quotes\"", pr_number=1, url='https://x/"1"')],
                )
            },
        )

        html = render_html(notes)

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "Support &lt;b&gt; &amp; &quot;quotes&quot;" in html
        assert 'href="https://x/&quot;1&quot;"' in html

    def test_structure(self) -> None:
        html = render_html(_sample_notes())

        assert "<h1>v1.0.0 - First</h1>" in html
        assert "<p><strong>Released:</strong> January 15, 2024</p>" in html
        assert '(<a href="https://github.com/octo/app/pull/42">#42</a>)' in html
        assert "<em>@octocat</em>" in html


class TestJson:
    def test_camel_case_keys(self) -> None:
        data = json.loads(render_json(_sample_notes()))

        assert data["releaseDate"].startswith("2024-01-15")
        assert data["categories"]["Bug Fixes"]["items"][0]["prNumber"] == 42
        assert "format" not in data
        assert "raw" not in data

    def test_categories_in_render_order_including_empty(self) -> None:
        data = json.loads(render_json(_sample_notes()))

        assert list(data["categories"]) == ["Features", "Bug Fixes", OTHER_CHANGES]

    def test_round_trip(self) -> None:
        notes = _sample_notes()

        parsed = parse_notes_json(render_json(notes))

        assert parsed.version == notes.version
        assert parsed.release_date == notes.release_date
        assert parsed.categories["Bug Fixes"].items[0].pr_number == 42

    def test_parse_rejects_non_object(self) -> None:
        for text in ("[]", "3", "not json"):
            with pytest.raises(ValueError):
                parse_notes_json(text)


class TestNormalizeCategories:
    def test_list_sections_get_titles(self) -> None:
        normalized = normalize_categories({"Features": [{"title": "A"}]})

        assert normalized == {"Features": {"title": "Features", "items": [{"title": "A"}]}}

    def test_missing_title_defaults_to_name(self) -> None:
        assert normalize_categories({"Docs": {"items": []}})["Docs"]["title"] == "Docs"

    def test_invalid_shapes(self) -> None:
        for value in ([], {"Features": "text"}):
            with pytest.raises(ValueError):
                normalize_categories(value)


def test_markdown_has_no_blank_section_headers() -> None:
    text = render_markdown(_sample_notes())
    assert not re.search(r"## [^\n]+\n\n## ", text)

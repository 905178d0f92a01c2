"""Deterministic renderers for structured release notes.

The renderers are pure functions of ReleaseNotes. They serve both as the
output stage when the generative backend is unavailable and as the
canonical JSON serialization.

Section order is the fixed taxonomy (Features, Bug Fixes, Improvements,
Documentation, Dependencies, Breaking Changes), then any other named
section in its original order, then "Other Changes" last. Empty sections
are not rendered in markdown or HTML.
"""

import json
from datetime import datetime
from html import escape
from typing import Any, Dict, List, Optional, Tuple

from src.releasenotes.categorizer import OTHER_CHANGES, TAXONOMY_ORDER
from src.releasenotes.changelog.models import CategorySection, ChangeItem, ReleaseNotes


def format_release_date(value: Optional[datetime]) -> Optional[str]:
    """Format a release date as "Month D, YYYY"."""
    if value is None:
        return None
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def ordered_sections(notes: ReleaseNotes) -> List[Tuple[str, CategorySection]]:
    """Return the non-empty sections of ``notes`` in render order."""
    taxonomy = [
        (name, notes.categories[name])
        for name in TAXONOMY_ORDER
        if name in notes.categories
    ]
    others = [
        (name, section)
        for name, section in notes.categories.items()
        if name not in TAXONOMY_ORDER and name != OTHER_CHANGES
    ]
    trailing = []
    if OTHER_CHANGES in notes.categories:
        trailing.append((OTHER_CHANGES, notes.categories[OTHER_CHANGES]))

    return [
        (name, section)
        for name, section in taxonomy + others + trailing
        if section.items
    ]


def _heading(notes: ReleaseNotes) -> str:
    if notes.name and notes.name != notes.version:
        return f"{notes.version} - {notes.name}"
    return notes.version


def _markdown_item(item: ChangeItem) -> str:
    line = f"- {item.title}"
    if item.pr_number:
        if item.url:
            line += f" ([#{item.pr_number}]({item.url}))"
        else:
            line += f" (#{item.pr_number})"
    if item.author:
        line += f" - @{item.author}"
    return line


def render_markdown(notes: ReleaseNotes) -> str:
    """Render release notes as GitHub-flavored markdown."""
    lines = [f"# {_heading(notes)}", ""]

    released = format_release_date(notes.release_date)
    if released:
        lines.extend([f"**Released:** {released}", ""])

    if notes.description:
        lines.extend([notes.description, ""])

    if notes.summary:
        lines.extend([notes.summary, ""])

    for _, section in ordered_sections(notes):
        lines.extend([f"## {section.title}", ""])
        lines.extend(_markdown_item(item) for item in section.items)
        lines.append("")

    if notes.commits:
        lines.extend(["## Commits", ""])
        lines.extend(
            f"- {commit.short_hash}: {commit.message} - {commit.author}"
            for commit in notes.commits
        )
        lines.append("")

    return "\n".join(lines)


def _html_item(item: ChangeItem) -> str:
    parts = [f"<li>{escape(item.title)}"]
    if item.pr_number:
        if item.url:
            parts.append(
                f' (<a href="{escape(item.url, quote=True)}">#{item.pr_number}</a>)'
            )
        else:
            parts.append(f" (#{item.pr_number})")
    if item.author:
        parts.append(f" - <em>@{escape(item.author)}</em>")
    parts.append("</li>")
    return "".join(parts)


def render_html(notes: ReleaseNotes) -> str:
    """Render release notes as an HTML fragment. All text is escaped."""
    parts = [f"<h1>{escape(_heading(notes))}</h1>"]

    released = format_release_date(notes.release_date)
    if released:
        parts.append(f"<p><strong>Released:</strong> {released}</p>")

    if notes.description:
        parts.append(f"<p>{escape(notes.description)}</p>")

    if notes.summary:
        parts.append(f"<p>{escape(notes.summary)}</p>")

    for _, section in ordered_sections(notes):
        parts.append(f"<h2>{escape(section.title)}</h2>")
        parts.append("<ul>")
        parts.extend(_html_item(item) for item in section.items)
        parts.append("</ul>")

    if notes.commits:
        parts.append("<h2>Commits</h2>")
        parts.append("<ul>")
        for commit in notes.commits:
            parts.append(
                f"<li><code>{escape(commit.short_hash)}</code>: "
                f"{escape(commit.message)} - <em>{escape(commit.author)}</em></li>"
            )
        parts.append("</ul>")

    return "\n".join(parts)


def notes_to_dict(notes: ReleaseNotes) -> Dict[str, Any]:
    """Serialize notes with camelCase keys and categories in render order.

    Empty categories are kept so the category mapping survives a round trip.
    """
    data = notes.model_dump(
        mode="json",
        by_alias=True,
        exclude={"format", "raw"},
        exclude_none=True,
    )
    order = [name for name in TAXONOMY_ORDER if name in data["categories"]]
    order += [
        name
        for name in data["categories"]
        if name not in TAXONOMY_ORDER and name != OTHER_CHANGES
    ]
    if OTHER_CHANGES in data["categories"]:
        order.append(OTHER_CHANGES)
    data["categories"] = {name: data["categories"][name] for name in order}
    return data


def render_json(notes: ReleaseNotes) -> str:
    """Render release notes as indented JSON."""
    return json.dumps(notes_to_dict(notes), indent=2)


def normalize_categories(categories: Any) -> Dict[str, Any]:
    """Accept both ``{name: {title, items}}`` and ``{name: [items]}``.

    Raises:
        ValueError: If ``categories`` is not an object.
    """
    if not isinstance(categories, dict):
        raise ValueError("categories must be an object")
    normalized = {}
    for name, section in categories.items():
        if isinstance(section, list):
            normalized[name] = {"title": name, "items": section}
        elif isinstance(section, dict):
            normalized[name] = {**section, "title": section.get("title") or name}
        else:
            raise ValueError(f"category {name!r} must be an object or a list")
    return normalized


def parse_notes_json(text: str) -> ReleaseNotes:
    """Parse JSON produced by render_json back into ReleaseNotes.

    Raises:
        ValueError: If the text is not valid JSON of the expected shape.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("release notes JSON must be an object")
    data["categories"] = normalize_categories(data.get("categories") or {})
    return ReleaseNotes.model_validate(data)

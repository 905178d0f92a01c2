"""Prompt construction for changelog generation.

The generative backend is called twice for markdown and HTML output: first
for the canonical JSON structure, then for the literal text in the requested
format. Both calls share the same user prompt body, which lists the release
facts, the categorized pull requests and (optionally) the commits.
"""

from typing import Optional

from src.releasenotes.changelog.models import ChangelogFormat, ChangelogStyle, ReleaseNotes
from src.releasenotes.changelog.renderers import ordered_sections


CHANGELOG_SYSTEM_PROMPT = (
    "You are a changelog generator that creates detailed, well-structured "
    "release notes based on pull requests and commits. Focus on creating "
    "clear, useful documentation."
)

JSON_SYSTEM_PROMPT = CHANGELOG_SYSTEM_PROMPT + """

You MUST respond with valid JSON only. Do not include any text before or after the JSON object.

Respond with this exact JSON structure:
{
  "summary": "one or two sentence summary of the release",
  "categories": {
    "<category name>": {
      "title": "<category name>",
      "items": [
        {"title": "change description", "prNumber": 42, "url": "https://...", "author": "login"}
      ]
    }
  }
}"""


STYLE_INSTRUCTIONS = {
    ChangelogStyle.TECHNICAL: (
        "Use a technical tone suitable for developers. Include specific "
        "technical details and be precise."
    ),
    ChangelogStyle.USER_FRIENDLY: (
        "Use a user-friendly tone accessible to non-technical users. Focus on "
        "benefits and improvements rather than technical implementation details."
    ),
    ChangelogStyle.DETAILED: (
        "Provide detailed explanations for each change. Elaborate on the "
        "impact and purpose of significant changes."
    ),
    ChangelogStyle.CONCISE: (
        "Keep the changelog concise and to the point. Focus only on the most "
        "important information without unnecessary details."
    ),
}


def _format_categories(notes: ReleaseNotes) -> str:
    blocks = []
    for _, section in ordered_sections(notes):
        lines = [f"### {section.title}"]
        for item in section.items:
            line = f"- {item.title}"
            if item.pr_number:
                line += f" (#{item.pr_number})"
            if item.author:
                line += f" by @{item.author}"
            if item.url:
                line += f" [Link]({item.url})"
            lines.append(line)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) if blocks else "(no merged pull requests)"


def _format_commits(notes: ReleaseNotes) -> str:
    if not notes.commits:
        return ""
    lines = ["### Commits"]
    lines.extend(
        f"- {commit.message} ({commit.short_hash}) by {commit.author}"
        for commit in notes.commits
    )
    return "\n".join(lines)


def build_changelog_prompt(
    repository: str,
    notes: ReleaseNotes,
    style: ChangelogStyle,
    output_format: ChangelogFormat,
    custom_instructions: Optional[str] = None,
) -> str:
    """Build the user prompt for one generation call.

    Args:
        repository: Full repository name.
        notes: Locally grouped notes carrying the release facts, the
            categorized pull requests and the commits to include.
        style: Requested tone.
        output_format: Format the backend should answer in.
        custom_instructions: Free text appended verbatim.

    Returns:
        Formatted prompt string for the LLM.
    """
    release_date = notes.release_date.isoformat() if notes.release_date else "unknown"
    commits = _format_commits(notes)

    sections = [
        "REPOSITORY INFORMATION:",
        f"- Name: {repository}",
        f"- Version: {notes.version}",
        f"- Release Name: {notes.name or notes.version}",
        f"- Release Date: {release_date}",
        f"- Description: {notes.description or 'No description provided'}",
        "",
        "CHANGES BY CATEGORY:",
        _format_categories(notes),
    ]
    if commits:
        sections.extend(["", commits])

    sections.extend([
        "",
        STYLE_INSTRUCTIONS[style],
        "",
        f"Please generate a comprehensive, well-structured changelog in "
        f"{output_format.value} format that:",
        "1. Begins with a brief summary of the release",
        "2. Organizes changes into the categories shown above",
        "3. Includes relevant PR numbers and references",
        "4. Highlights breaking changes prominently if any exist",
    ])

    if custom_instructions:
        sections.extend(["", custom_instructions])

    sections.extend([
        "",
        "Output the changelog content only, without additional commentary.",
    ])
    return "\n".join(sections)

"""GitHub REST API response models.

Only the fields the release notes service needs are kept. Each model has a
``from_github_response`` constructor that tolerates the optional and nullable
fields GitHub returns.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.releasenotes.store.models import utc_now
from src.releasenotes.webhook.handler import parse_timestamp


def _login(user: Any) -> Optional[str]:
    if isinstance(user, dict) and isinstance(user.get("login"), str):
        return user["login"]
    return None


class GitHubRepository(BaseModel):
    """Repository metadata."""

    full_name: str
    default_branch: str = "main"
    description: Optional[str] = None
    html_url: str = ""

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "GitHubRepository":
        return cls(
            full_name=data["full_name"],
            default_branch=data.get("default_branch") or "main",
            description=data.get("description"),
            html_url=data.get("html_url") or "",
        )


class GitHubRelease(BaseModel):
    """A GitHub release object."""

    id: int
    tag_name: str
    name: Optional[str] = None
    body: Optional[str] = None
    html_url: str = ""
    published_at: Optional[datetime] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "GitHubRelease":
        return cls(
            id=data["id"],
            tag_name=data["tag_name"],
            name=data.get("name"),
            body=data.get("body"),
            html_url=data.get("html_url") or "",
            published_at=parse_timestamp(data.get("published_at")),
        )


class GitHubPullRequest(BaseModel):
    """A pull request as listed by the pulls API.

    ``merged_at`` is None for pull requests closed without merging.
    """

    number: int
    title: str
    body: Optional[str] = None
    url: str = ""
    author: str = "unknown"
    merged_at: Optional[datetime] = None
    labels: List[str] = Field(default_factory=list)

    @property
    def is_merged(self) -> bool:
        return self.merged_at is not None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "GitHubPullRequest":
        labels = [
            label["name"]
            for label in data.get("labels") or []
            if isinstance(label, dict) and isinstance(label.get("name"), str)
        ]
        return cls(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body"),
            url=data.get("html_url") or "",
            author=_login(data.get("user")) or "unknown",
            merged_at=parse_timestamp(data.get("merged_at")),
            labels=labels,
        )


class GitHubCommit(BaseModel):
    """A commit as returned by the pulls/commits and compare APIs."""

    sha: str
    message: str
    author: str
    author_email: Optional[str] = None
    committed_at: datetime
    url: Optional[str] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "GitHubCommit":
        commit = data.get("commit") or {}
        author = commit.get("author") or {}
        name = author.get("name") or _login(data.get("author")) or "unknown"
        return cls(
            sha=data["sha"],
            message=commit.get("message") or "",
            author=name,
            author_email=author.get("email"),
            committed_at=parse_timestamp(author.get("date")) or utc_now(),
            url=data.get("html_url"),
        )

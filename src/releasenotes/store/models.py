"""Persistent entity models for the release notes store.

This module defines the four stored entities:
- Release: a versioned snapshot of a repository, identity (repository, version)
- PullRequest: a merged PR attached to a release, identity (pr_number, release_id)
- Commit: a commit, identity hash
- Category: a named bucket used to group pull requests when rendering

Models carry an optional ``id`` that is assigned by the store on insert.
The models use Pydantic for validation, consistent with the webhook and
changelog models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


UNRELEASED_VERSION = "unreleased"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReleaseStatus(str, Enum):
    """Publication status of a release.

    Attributes:
        DRAFT: Release not yet published (e.g. the auto-created "unreleased"
               release that collects orphan pull requests).
        PUBLISHED: Release published on GitHub.
    """

    DRAFT = "draft"
    PUBLISHED = "published"


class Release(BaseModel):
    """A versioned snapshot of a repository's changes.

    Attributes:
        id: Store-assigned identifier.
        repository: Full repository name in format "{owner}/{repo}".
        version: Release version, usually the git tag.
        name: Optional display name.
        description: Free-text release description.
        release_date: When the release was published (UTC).
        status: Draft or published.
        generated_notes: Serialized last rendered changelog, if any.
        created_at: When the row was created (UTC).
        updated_at: When the row was last updated (UTC).
    """

    id: Optional[int] = None
    repository: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None
    release_date: datetime = Field(default_factory=utc_now)
    status: ReleaseStatus = ReleaseStatus.DRAFT
    generated_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PullRequest(BaseModel):
    """A merged pull request attached to a release.

    Attributes:
        id: Store-assigned identifier.
        pr_number: Pull request number within the repository.
        release_id: The release this PR is attached to.
        title: Pull request title.
        author: GitHub login of the PR author.
        body: Optional pull request description.
        url: HTML URL of the pull request.
        merged_at: When the PR was merged. Required for every stored PR.
        labels: Ordered label names at the time of ingestion.
        category_id: Category assigned once at creation, if any.
    """

    id: Optional[int] = None
    pr_number: int = Field(..., gt=0)
    release_id: int
    title: str
    author: str
    body: Optional[str] = None
    url: str = ""
    merged_at: datetime
    labels: List[str] = Field(default_factory=list)
    category_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)


class Commit(BaseModel):
    """A commit recorded against a release.

    Attributes:
        id: Store-assigned identifier.
        hash: Full commit SHA, globally unique.
        message: Commit message.
        author: Author name.
        author_email: Optional author email.
        committed_at: Commit timestamp.
        pull_request_id: PR in the same release this commit belongs to.
        release_id: The release this commit is recorded against.
    """

    id: Optional[int] = None
    hash: str = Field(..., min_length=1)
    message: str
    author: str
    author_email: Optional[str] = None
    committed_at: datetime
    pull_request_id: Optional[int] = None
    release_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)


class Category(BaseModel):
    """A named bucket used to group pull requests.

    Attributes:
        id: Store-assigned identifier.
        name: Unique category name (e.g. "Bug Fixes").
        description: Optional human description.
        display_order: Rendering order, lower first.
    """

    id: Optional[int] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    display_order: int = 0

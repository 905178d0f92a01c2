"""GitHub webhook event models for the release notes service.

This module defines the normalized events produced from GitHub webhook
deliveries. Only three event kinds are ingested:

- release (published/created): a new version of a repository
- pull_request (closed and merged): a change to attach to a release
- push (to the default branch): commits to record against a release

The models use Pydantic for validation, consistent with the store and
changelog models.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    """Webhook event kinds ingested by the service.

    Values match the X-GitHub-Event header.
    """

    RELEASE = "release"
    PULL_REQUEST = "pull_request"
    PUSH = "push"


class ReleaseEvent(BaseModel):
    """A published or created GitHub release.

    Attributes:
        repository: Full repository name in format "{owner}/{repo}".
        version: The release tag name.
        name: Optional release title.
        body: Optional release description.
        published_at: Publish timestamp, falling back to creation time.
    """

    kind: EventKind = EventKind.RELEASE
    repository: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    name: Optional[str] = None
    body: Optional[str] = None
    published_at: datetime


class PullRequestEvent(BaseModel):
    """A merged pull request.

    Attributes:
        repository: Full repository name in format "{owner}/{repo}".
        number: Pull request number.
        title: Pull request title.
        body: Optional pull request description.
        url: HTML URL of the pull request.
        author: Login of the PR author.
        merged_at: Merge timestamp.
        labels: Label names in the order GitHub reports them.
    """

    kind: EventKind = EventKind.PULL_REQUEST
    repository: str = Field(..., min_length=1)
    number: int = Field(..., gt=0)
    title: str
    body: Optional[str] = None
    url: str = ""
    author: str = Field(..., min_length=1)
    merged_at: datetime
    labels: List[str] = Field(default_factory=list)


class PushCommit(BaseModel):
    """A single commit carried by a push event."""

    hash: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    author_email: Optional[str] = None
    timestamp: datetime
    url: Optional[str] = None


class PushEvent(BaseModel):
    """A push to the repository's default branch.

    Attributes:
        repository: Full repository name in format "{owner}/{repo}".
        ref: The pushed ref, always refs/heads/<default branch>.
        commits: Commits with id, message and author present.
    """

    kind: EventKind = EventKind.PUSH
    repository: str = Field(..., min_length=1)
    ref: str
    commits: List[PushCommit] = Field(default_factory=list)


WebhookEvent = Union[ReleaseEvent, PullRequestEvent, PushEvent]

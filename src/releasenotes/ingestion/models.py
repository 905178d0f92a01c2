"""Ingestion outcome models and manual ingestion inputs.

IngestionResult is returned for every webhook event that reaches the
engine. ItemResult reports per-item outcomes for the manual pull request
and commit endpoints.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class IngestionStatus(str, Enum):
    """Outcome of ingesting a webhook event.

    Attributes:
        CREATED: A new release was stored (and backfilled).
        UPDATED: An existing release was marked published.
        ADDED: A merged pull request was attached to the latest release.
        DRAFT_RELEASE_CREATED: No release existed, so a draft "unreleased"
            release was created to hold the pull request.
        NO_RELEASE: A push arrived for a repository without releases.
        PROCESSED: Push commits were recorded.
    """

    CREATED = "created"
    UPDATED = "updated"
    ADDED = "added"
    DRAFT_RELEASE_CREATED = "draft-release-created"
    NO_RELEASE = "no-release"
    PROCESSED = "processed"


class IngestionResult(BaseModel):
    """Result of ingesting one webhook event.

    Attributes:
        status: Outcome status.
        release_id: Release the event was recorded against, if any.
        pull_request_id: Stored pull request, for pull request events.
        count: Number of rows newly inserted by this call.
        backfill_errors: Number of backfill steps skipped after a failure.
    """

    status: IngestionStatus
    release_id: Optional[int] = None
    pull_request_id: Optional[int] = None
    count: int = 0
    backfill_errors: int = 0


class ItemStatus(str, Enum):
    """Per-item outcome of a manual ingestion request."""

    ADDED = "added"
    EXISTS = "exists"
    SKIPPED = "skipped"


class ItemResult(BaseModel):
    """Outcome for one pull request or commit of a manual request."""

    key: str
    status: ItemStatus
    reason: Optional[str] = None


class PullRequestInput(BaseModel):
    """A pull request submitted through the manual ingestion endpoint.

    Pull requests without ``merged_at`` are skipped.
    """

    number: int = Field(..., gt=0)
    title: str
    author: str = Field(..., min_length=1)
    body: Optional[str] = None
    url: str = ""
    merged_at: Optional[datetime] = None
    labels: List[str] = Field(default_factory=list)


class CommitInput(BaseModel):
    """A commit submitted through the manual ingestion endpoint.

    When ``pr_number`` is omitted the PR link is taken from the first
    ``#<number>`` reference in the message.
    """

    hash: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    author_email: Optional[str] = None
    committed_at: Optional[datetime] = None
    pr_number: Optional[int] = None


class CreateReleaseRequest(BaseModel):
    """Body of a manual release creation request."""

    repository: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None


class AddPullRequestsRequest(BaseModel):
    pull_requests: List[PullRequestInput] = Field(..., min_length=1)


class AddCommitsRequest(BaseModel):
    commits: List[CommitInput] = Field(..., min_length=1)

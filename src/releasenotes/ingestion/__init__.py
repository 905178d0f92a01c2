"""Ingestion of normalized webhook events into the release store."""

from src.releasenotes.ingestion.engine import IngestionEngine, extract_pr_reference
from src.releasenotes.ingestion.models import (
    AddCommitsRequest,
    AddPullRequestsRequest,
    CommitInput,
    CreateReleaseRequest,
    IngestionResult,
    IngestionStatus,
    ItemResult,
    ItemStatus,
    PullRequestInput,
)

__all__ = [
    "AddCommitsRequest",
    "AddPullRequestsRequest",
    "CommitInput",
    "CreateReleaseRequest",
    "IngestionEngine",
    "IngestionResult",
    "IngestionStatus",
    "ItemResult",
    "ItemStatus",
    "PullRequestInput",
    "extract_pr_reference",
]

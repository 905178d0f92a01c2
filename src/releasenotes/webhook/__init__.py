"""GitHub webhook handling: signature verification and event normalization."""

from src.releasenotes.webhook.handler import (
    WebhookHandler,
    create_webhook_handler,
    parse_timestamp,
)
from src.releasenotes.webhook.models import (
    EventKind,
    PullRequestEvent,
    PushCommit,
    PushEvent,
    ReleaseEvent,
    WebhookEvent,
)
from src.releasenotes.webhook.signature import compute_signature, verify_signature

__all__ = [
    "EventKind",
    "PullRequestEvent",
    "PushCommit",
    "PushEvent",
    "ReleaseEvent",
    "WebhookEvent",
    "WebhookHandler",
    "compute_signature",
    "create_webhook_handler",
    "parse_timestamp",
    "verify_signature",
]

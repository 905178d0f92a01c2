"""GitHub webhook handler for the release notes service.

This module provides the WebhookHandler class for normalizing GitHub webhook
payloads into ReleaseEvent, PullRequestEvent or PushEvent. Signature
verification happens before parsing (see signature.py).

Unsupported event types and actions are reported as None so the caller can
acknowledge and ignore them. A supported event whose payload lacks required
fields raises ValidationFailure.

GitHub Webhook Payload Structure (pull_request event, abridged):
{
  "action": "closed",
  "pull_request": {
    "number": 42,
    "title": "Fix crash on empty input",
    "body": "...",
    "html_url": "https://github.com/octo/app/pull/42",
    "merged_at": "2024-05-01T12:00:00Z",
    "user": {"login": "octocat"},
    "labels": [{"name": "bug"}]
  },
  "repository": {"full_name": "octo/app", "default_branch": "main"}
}
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.releasenotes.errors import ValidationFailure
from src.releasenotes.store.models import utc_now
from src.releasenotes.webhook.models import (
    EventKind,
    PullRequestEvent,
    PushCommit,
    PushEvent,
    ReleaseEvent,
    WebhookEvent,
)

logger = logging.getLogger(__name__)


RELEASE_ACTIONS = frozenset({"published", "created"})
PULL_REQUEST_ACTIONS = frozenset({"closed"})


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a GitHub ISO 8601 timestamp, returning None when unusable."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable timestamp: %s", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WebhookHandler:
    """Normalizer for GitHub webhook payloads."""

    def parse_event(
        self, event_type: str, payload: Any
    ) -> Optional[WebhookEvent]:
        """Parse a webhook delivery into a normalized event.

        Args:
            event_type: The X-GitHub-Event header value.
            payload: The decoded JSON body.

        Returns:
            The normalized event, or None when the event type or action is
            not ingested (including ping).

        Raises:
            ValidationFailure: If a supported event lacks required fields.
        """
        try:
            kind = EventKind(event_type)
        except ValueError:
            logger.debug("Ignoring unsupported event type: %s", event_type)
            return None

        if not isinstance(payload, dict):
            raise ValidationFailure(
                f"Invalid {event_type} payload: expected an object"
            )

        if kind is EventKind.RELEASE:
            return self._parse_release(payload)
        if kind is EventKind.PULL_REQUEST:
            return self._parse_pull_request(payload)
        return self._parse_push(payload)

    def _parse_release(self, payload: Dict[str, Any]) -> Optional[ReleaseEvent]:
        action = payload.get("action")
        if action not in RELEASE_ACTIONS:
            logger.debug("Ignoring release action: %s", action)
            return None

        repository = self._extract_repository_name(payload)
        release = self._require_object(payload, "release")

        version = release.get("tag_name")
        if not isinstance(version, str) or not version.strip():
            raise ValidationFailure("Release payload is missing release.tag_name")

        published_at = (
            parse_timestamp(release.get("published_at"))
            or parse_timestamp(release.get("created_at"))
            or utc_now()
        )

        event = ReleaseEvent(
            repository=repository,
            version=version.strip(),
            name=self._optional_text(release.get("name")),
            body=self._optional_text(release.get("body")),
            published_at=published_at,
        )
        logger.info(
            "Parsed release event: repository=%s, version=%s",
            event.repository,
            event.version,
        )
        return event

    def _parse_pull_request(
        self, payload: Dict[str, Any]
    ) -> Optional[PullRequestEvent]:
        action = payload.get("action")
        if action not in PULL_REQUEST_ACTIONS:
            logger.debug("Ignoring pull_request action: %s", action)
            return None

        pr_data = self._require_object(payload, "pull_request")
        if pr_data.get("merged_at") is None:
            logger.debug("Ignoring pull request closed without merge")
            return None

        merged_at = parse_timestamp(pr_data.get("merged_at"))
        if merged_at is None:
            raise ValidationFailure(
                "Pull request payload has an invalid pull_request.merged_at"
            )

        repository = self._extract_repository_name(payload)

        number = pr_data.get("number")
        if not isinstance(number, int) or isinstance(number, bool) or number <= 0:
            raise ValidationFailure(
                "Pull request payload is missing pull_request.number"
            )

        title = pr_data.get("title")
        if not isinstance(title, str):
            raise ValidationFailure(
                "Pull request payload is missing pull_request.title"
            )

        author = self._extract_user_login(pr_data.get("user"))
        if author is None:
            raise ValidationFailure(
                "Pull request payload is missing pull_request.user.login"
            )

        url = pr_data.get("html_url")

        event = PullRequestEvent(
            repository=repository,
            number=number,
            title=title,
            body=self._optional_text(pr_data.get("body")),
            url=url if isinstance(url, str) else "",
            author=author,
            merged_at=merged_at,
            labels=self._extract_labels(pr_data.get("labels", [])),
        )
        logger.info(
            "Parsed pull request event: repository=%s, number=%s",
            event.repository,
            event.number,
        )
        return event

    def _parse_push(self, payload: Dict[str, Any]) -> Optional[PushEvent]:
        repository = self._extract_repository_name(payload)
        repo_data = payload["repository"]

        ref = payload.get("ref")
        if not isinstance(ref, str):
            raise ValidationFailure("Push payload is missing ref")

        default_branch = repo_data.get("default_branch")
        if not isinstance(default_branch, str) or not default_branch:
            raise ValidationFailure(
                "Push payload is missing repository.default_branch"
            )

        if ref != f"refs/heads/{default_branch}":
            logger.debug(
                "Ignoring push to non-default ref: %s (default %s)",
                ref,
                default_branch,
            )
            return None

        commits_data = payload.get("commits") or []
        if not isinstance(commits_data, list):
            raise ValidationFailure("Push payload has an invalid commits array")

        commits = self._extract_commits(commits_data)
        event = PushEvent(repository=repository, ref=ref, commits=commits)
        logger.info(
            "Parsed push event: repository=%s, commits=%d, dropped=%d",
            event.repository,
            len(commits),
            len(commits_data) - len(commits),
        )
        return event

    def _extract_commits(self, commits_data: List[Any]) -> List[PushCommit]:
        """Extract push commits, dropping entries without id, message or author."""
        commits = []
        for entry in commits_data:
            if not isinstance(entry, dict):
                continue

            commit_id = entry.get("id")
            message = entry.get("message")
            author_data = entry.get("author")
            author_name = None
            author_email = None
            if isinstance(author_data, dict):
                author_name = author_data.get("name") or author_data.get("username")
                author_email = author_data.get("email")

            if not commit_id or not message or not author_name:
                logger.debug("Dropping incomplete push commit: %s", commit_id)
                continue

            url = entry.get("url")
            commits.append(
                PushCommit(
                    hash=str(commit_id),
                    message=str(message),
                    author=str(author_name),
                    author_email=author_email if isinstance(author_email, str) else None,
                    timestamp=parse_timestamp(entry.get("timestamp")) or utc_now(),
                    url=url if isinstance(url, str) else None,
                )
            )
        return commits

    def _extract_repository_name(self, payload: Dict[str, Any]) -> str:
        repo_data = self._require_object(payload, "repository")
        full_name = repo_data.get("full_name")
        if not isinstance(full_name, str) or not full_name.strip():
            raise ValidationFailure("Payload is missing repository.full_name")
        return full_name.strip()

    def _require_object(self, payload: Dict[str, Any], field: str) -> Dict[str, Any]:
        value = payload.get(field)
        if not isinstance(value, dict):
            raise ValidationFailure(f"Payload is missing '{field}' object")
        return value

    def _optional_text(self, value: Any) -> Optional[str]:
        if isinstance(value, str) and value:
            return value
        return None

    def _extract_labels(self, labels_data: Any) -> List[str]:
        """Extract label names from the labels array.

        GitHub sends labels as an array of objects with 'name' field:
        [{"name": "bug"}, {"name": "documentation"}]

        Returns:
            List of label name strings. Invalid entries are skipped.
        """
        if not isinstance(labels_data, list):
            logger.debug("Labels is not a list: %s", type(labels_data))
            return []

        labels = []
        for label in labels_data:
            if isinstance(label, dict):
                name = label.get("name")
                if isinstance(name, str) and name.strip():
                    labels.append(name.strip())
            elif isinstance(label, str) and label.strip():
                labels.append(label.strip())

        return labels

    def _extract_user_login(self, user_data: Any) -> Optional[str]:
        if not isinstance(user_data, dict):
            return None
        login = user_data.get("login")
        if not isinstance(login, str) or not login.strip():
            return None
        return login.strip()


def create_webhook_handler() -> WebhookHandler:
    """Factory function to create a WebhookHandler instance."""
    return WebhookHandler()

"""End-to-end tests of the HTTP API using FastAPI's TestClient.

The application is built with an in-memory store, a mocked GitHub client
and no generative backend, so changelogs use the deterministic renderer.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from src.releasenotes.config import ReleaseNotesSettings
from src.releasenotes.github.models import GitHubRelease
from src.releasenotes.main import create_app
from src.releasenotes.metrics import ReleaseNotesMetrics
from src.releasenotes.store.memory import InMemoryReleaseStore
from src.releasenotes.webhook.signature import compute_signature


WEBHOOK_SECRET = "test-webhook-secret"

RELEASE_PAYLOAD = {
    "action": "published",
    "release": {
        "tag_name": "v1.0.0",
        "name": "First",
        "body": "Initial release.",
        "published_at": "2024-05-01T12:00:00Z",
    },
    "repository": {"full_name": "octo/app", "default_branch": "main"},
}

PULL_REQUEST_PAYLOAD = {
    "action": "closed",
    "pull_request": {
        "number": 42,
        "title": "Fix crash on empty input",
        "html_url": "https://github.com/octo/app/pull/42",
        "merged_at": "2024-05-02T08:00:00Z",
        "user": {"login": "octocat"},
        "labels": [{"name": "bug"}],
    },
    "repository": {"full_name": "octo/app", "default_branch": "main"},
}


@pytest.fixture
def github_client() -> MagicMock:
    client = MagicMock()
    client.list_merged_pull_requests = AsyncMock(return_value=[])
    client.list_pull_request_commits = AsyncMock(return_value=[])
    client.get_release_by_tag = AsyncMock(
        return_value=GitHubRelease(id=11, tag_name="v1.0.0")
    )
    client.update_release_body = AsyncMock(
        return_value=GitHubRelease(
            id=11,
            tag_name="v1.0.0",
            html_url="https://github.com/octo/app/releases/tag/v1.0.0",
        )
    )
    return client


@pytest.fixture
def api_metrics() -> ReleaseNotesMetrics:
    return ReleaseNotesMetrics(registry=CollectorRegistry())


@pytest.fixture
def client(github_client, api_metrics):
    app = create_app(
        settings=ReleaseNotesSettings(github_webhook_secret=WEBHOOK_SECRET),
        store=InMemoryReleaseStore(),
        github_client=github_client,
        metrics=api_metrics,
    )
    with TestClient(app) as test_client:
        yield test_client


def _deliver(client: TestClient, event: str, payload, secret: str = WEBHOOK_SECRET, signature=None):
    body = json.dumps(payload).encode("utf-8") if not isinstance(payload, bytes) else payload
    headers = {
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": "delivery-1",
        "Content-Type": "application/json",
    }
    signature = signature if signature is not None else compute_signature(body, secret)
    if signature:
        headers["X-Hub-Signature-256"] = signature
    return client.post("/webhooks/github", content=body, headers=headers)


class TestWebhookEndpoint:
    def test_missing_signature_is_rejected(self, client, api_metrics) -> None:
        response = _deliver(client, "release", RELEASE_PAYLOAD, signature="")

        assert response.status_code == 401
        assert response.json()["error"] == "authentication_failure"
        assert api_metrics.registry.get_sample_value(
            "releasenotes_signature_failures_total"
        ) == 1.0

    def test_wrong_secret_is_rejected(self, client) -> None:
        response = _deliver(client, "release", RELEASE_PAYLOAD, secret="other-secret")

        assert response.status_code == 401

    def test_ping_is_acknowledged(self, client) -> None:
        response = _deliver(client, "ping", {"zen": "Keep it logically awesome."})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert response.json()["error"] == "unsupported_event"

    def test_invalid_json_is_rejected(self, client) -> None:
        response = _deliver(client, "release", b"{not json")

        assert response.status_code == 400

    def test_malformed_release_is_rejected(self, client, api_metrics) -> None:
        payload = {"action": "published", "release": {}, "repository": {"full_name": "octo/app"}}

        response = _deliver(client, "release", payload)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_failure"
        assert api_metrics.registry.get_sample_value(
            "releasenotes_webhook_events_total", {"event": "release", "status": "invalid"}
        ) == 1.0

    def test_redelivery_is_idempotent(self, client) -> None:
        first = _deliver(client, "release", RELEASE_PAYLOAD)
        second = _deliver(client, "release", RELEASE_PAYLOAD)

        assert first.json()["status"] == "created"
        assert second.json()["status"] == "updated"
        assert second.json()["release_id"] == first.json()["release_id"]
        assert len(client.get("/releases").json()) == 1


class TestReleaseFlow:
    def test_webhooks_to_markdown_notes(self, client, api_metrics) -> None:
        release = _deliver(client, "release", RELEASE_PAYLOAD).json()
        pr = _deliver(client, "pull_request", PULL_REQUEST_PAYLOAD).json()

        assert release["status"] == "created"
        assert pr["status"] == "added"
        assert pr["release_id"] == release["release_id"]

        response = client.post(
            f"/releases/{release['release_id']}/notes",
            json={"format": "markdown", "includeCommits": False},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["source"] == "fallback"
        assert "## Bug Fixes" in body["raw"]
        assert "#42" in body["raw"]
        assert body["notes"]["releaseDate"].startswith("2024-05-01")
        assert api_metrics.registry.get_sample_value(
            "releasenotes_webhook_events_total", {"event": "pull_request", "status": "added"}
        ) == 1.0

    def test_stored_notes_and_publish(self, client, github_client) -> None:
        release_id = _deliver(client, "release", RELEASE_PAYLOAD).json()["release_id"]
        _deliver(client, "pull_request", PULL_REQUEST_PAYLOAD)
        generated = client.post(f"/releases/{release_id}/notes", json={}).json()

        stored = client.get(f"/releases/{release_id}/notes")
        published = client.post(f"/releases/{release_id}/publish-to-github")

        assert stored.status_code == 200
        assert stored.json()["raw"] == generated["raw"]
        assert published.json() == {
            "release_id": release_id,
            "status": "published",
            "url": "https://github.com/octo/app/releases/tag/v1.0.0",
        }
        github_client.update_release_body.assert_awaited_once_with(
            "octo/app", 11, generated["raw"]
        )

    def test_release_detail(self, client) -> None:
        release_id = _deliver(client, "release", RELEASE_PAYLOAD).json()["release_id"]
        _deliver(client, "pull_request", PULL_REQUEST_PAYLOAD)

        detail = client.get(f"/releases/{release_id}").json()

        assert detail["release"]["version"] == "v1.0.0"
        assert detail["release"]["status"] == "published"
        assert [pr["pr_number"] for pr in detail["pull_requests"]] == [42]


class TestManualEndpoints:
    def test_create_release_and_conflict(self, client) -> None:
        body = {"repository": "octo/app", "version": "v2.0.0", "name": "Two"}

        created = client.post("/releases", json=body)
        duplicate = client.post("/releases", json=body)

        assert created.status_code == 201
        assert created.json()["status"] == "draft"
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"] == {"release_id": created.json()["id"]}

    def test_add_pull_requests_and_commits(self, client) -> None:
        release_id = client.post(
            "/releases", json={"repository": "octo/app", "version": "v2.0.0"}
        ).json()["id"]

        prs = client.post(
            f"/releases/{release_id}/pull-requests",
            json={
                "pull_requests": [
                    {"number": 5, "title": "Add thing", "author": "a", "merged_at": "2024-05-01T00:00:00Z"},
                    {"number": 6, "title": "Draft", "author": "a"},
                ]
            },
        )
        commits = client.post(
            f"/releases/{release_id}/commits",
            json={"commits": [{"hash": "abc", "message": "Add thing (#5)", "author": "a"}]},
        )

        assert [r["status"] for r in prs.json()["results"]] == ["added", "skipped"]
        assert commits.json()["results"] == [{"key": "abc", "status": "added", "reason": None}]

    def test_empty_pull_request_list_is_rejected(self, client) -> None:
        release_id = client.post(
            "/releases", json={"repository": "octo/app", "version": "v2.0.0"}
        ).json()["id"]

        response = client.post(f"/releases/{release_id}/pull-requests", json={"pull_requests": []})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_failure"

    def test_categories_are_seeded(self, client) -> None:
        names = [c["name"] for c in client.get("/categories").json()]

        assert names[0] == "Features"
        assert names[-1] == "Breaking Changes"


class TestNotFound:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/releases/999"),
            ("get", "/releases/999/notes"),
            ("post", "/releases/999/publish-to-github"),
        ],
    )
    def test_unknown_release(self, client, method: str, path: str) -> None:
        response = getattr(client, method)(path)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_notes_for_unknown_release(self, client) -> None:
        assert client.post("/releases/999/notes", json={}).status_code == 404


class TestOperationalEndpoints:
    def test_health_and_ready(self, client) -> None:
        assert client.get("/health").json() == {"status": "healthy"}
        ready = client.get("/ready")
        assert ready.status_code == 200
        assert ready.json()["dependencies"]["database"] == "healthy"

    def test_metrics_exposed(self, client) -> None:
        _deliver(client, "ping", {})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "releasenotes_webhook_events_total" in response.text

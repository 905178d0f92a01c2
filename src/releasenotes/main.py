"""FastAPI application entry point for the release notes service.

This module provides the FastAPI application that receives GitHub webhooks,
records releases, pull requests and commits, and generates release notes.

Collaborators are wired in the lifespan from ReleaseNotesSettings unless
injected through create_app (tests inject an in-memory store, a mocked
GitHub client and a fake generator).
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from src.releasenotes.categorizer import ensure_default_categories
from src.releasenotes.changelog.assembler import ChangelogAssembler
from src.releasenotes.changelog.generator import LangChainTextGenerator, TextGenerator
from src.releasenotes.changelog.models import (
    GenerateNotesRequest,
    ReleaseNotes,
    RenderedChangelog,
)
from src.releasenotes.config import ReleaseNotesSettings, get_settings
from src.releasenotes.errors import (
    AuthenticationFailure,
    NotFoundError,
    ReleaseNotesError,
    UnsupportedEvent,
    ValidationFailure,
)
from src.releasenotes.github.client import GitHubClient
from src.releasenotes.ingestion.engine import IngestionEngine
from src.releasenotes.ingestion.models import (
    AddCommitsRequest,
    AddPullRequestsRequest,
    CreateReleaseRequest,
)
from src.releasenotes.metrics import (
    ReleaseNotesMetrics,
    generate_metrics_output,
    get_metrics,
)
from src.releasenotes.store.base import ReleaseStore
from src.releasenotes.store.memory import InMemoryReleaseStore
from src.releasenotes.store.models import Category, Release
from src.releasenotes.store.postgres import PostgresReleaseStore
from src.releasenotes.webhook.handler import create_webhook_handler
from src.releasenotes.webhook.models import EventKind
from src.releasenotes.webhook.signature import verify_signature

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


KNOWN_EVENTS = {kind.value for kind in EventKind}


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: ReleaseNotesSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Release notes configuration:")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.info(
        f"  GitHub Webhook Secret: {_redact_secret(settings.github_webhook_secret)}"
    )
    logger.info(f"  Backfill Limit: {settings.backfill_limit}")
    logger.info(f"  LLM URL: {settings.llm_url or '<unset, fallback only>'}")
    logger.info(f"  LLM Model: {settings.llm_model}")
    logger.info(f"  LLM Timeout Seconds: {settings.llm_timeout_seconds}")
    logger.info(f"  Database URL: {_redact_secret(settings.database_url)}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def _create_store(settings: ReleaseNotesSettings) -> ReleaseStore:
    if settings.database_url:
        return PostgresReleaseStore(settings.database_url)
    logger.warning("No database_url configured, using in-memory store")
    return InMemoryReleaseStore()


def _create_generator(settings: ReleaseNotesSettings) -> Optional[TextGenerator]:
    if not settings.llm_url:
        return None
    return LangChainTextGenerator(
        llm_url=settings.llm_url,
        model_name=settings.llm_model,
        api_key=settings.llm_api_key,
        timeout=settings.llm_timeout_seconds,
        temperature=settings.llm_temperature,
    )


def create_app(
    settings: Optional[ReleaseNotesSettings] = None,
    store: Optional[ReleaseStore] = None,
    github_client: Optional[GitHubClient] = None,
    generator: Optional[TextGenerator] = None,
    metrics: Optional[ReleaseNotesMetrics] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Service settings; loaded from the environment at startup
            when omitted.
        store: Release store; PostgreSQL when database_url is set,
            in-memory otherwise.
        github_client: GitHub client; built from settings when omitted.
        generator: Generative backend; built from settings when omitted.
        metrics: Metrics container; the process-wide default when omitted.

    Returns:
        The configured application.
    """
    app_metrics = metrics or get_metrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Release notes service starting up...")

        cfg = settings or get_settings()
        _log_configuration(cfg)

        active_store = store
        owned_store: Optional[PostgresReleaseStore] = None
        if active_store is None:
            active_store = _create_store(cfg)
            if isinstance(active_store, PostgresReleaseStore):
                await active_store.connect()
                owned_store = active_store

        active_github = github_client
        owned_github: Optional[GitHubClient] = None
        if active_github is None:
            active_github = GitHubClient(
                token=cfg.github_token,
                base_url=cfg.github_base_url,
            )
            owned_github = active_github
            if not cfg.github_token:
                logger.warning("No github_token configured, backfill and publishing will fail")

        active_generator = generator if generator is not None else _create_generator(cfg)

        app.state.settings = cfg
        app.state.store = active_store
        app.state.github_client = active_github
        app.state.webhook_handler = create_webhook_handler()
        app.state.engine = IngestionEngine(
            store=active_store,
            github_client=active_github,
            metrics=app_metrics,
            backfill_limit=cfg.backfill_limit,
        )
        app.state.assembler = ChangelogAssembler(
            store=active_store,
            generator=active_generator,
            metrics=app_metrics,
            generation_timeout=cfg.llm_timeout_seconds,
        )

        logger.info("Release notes service started successfully")

        yield

        logger.info("Release notes service shutting down...")
        if owned_github is not None:
            await owned_github.close()
        if owned_store is not None:
            await owned_store.disconnect()
        logger.info("Release notes service shutdown complete")

    app = FastAPI(
        title="Release Notes Service",
        description="GitHub webhook ingestion and AI-assisted release notes",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.metrics = app_metrics

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ReleaseNotesError)
    async def release_notes_error_handler(request: Request, exc: ReleaseNotesError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        detail = [
            {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg")}
            for error in exc.errors()
        ]
        failure = ValidationFailure("Request body is invalid", detail=detail)
        return JSONResponse(status_code=failure.status_code, content=failure.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled error",
            extra={"path": request.url.path, "method": request.method},
        )
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "message": "Internal server error"},
        )


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health():
        """Liveness probe endpoint."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness probe endpoint. Verifies the store is reachable."""
        healthy = await request.app.state.store.health_check()
        database_status = "healthy" if healthy else "unhealthy"
        body = {
            "status": "ready" if healthy else "not_ready",
            "dependencies": {"database": database_status},
        }
        return JSONResponse(status_code=200 if healthy else 503, content=body)

    @app.get("/metrics")
    async def metrics(request: Request):
        """Prometheus metrics endpoint."""
        output = generate_metrics_output(request.app.state.metrics.registry)
        return Response(content=output, media_type="text/plain; version=0.0.4")

    @app.post("/webhooks/github")
    async def github_webhook(request: Request) -> Dict[str, Any]:
        """GitHub webhook receiver endpoint.

        Verifies X-Hub-Signature-256 over the raw body before anything else.
        Unsupported events are acknowledged with 200 so GitHub does not
        retry them.
        """
        state = request.app.state
        raw_body = await request.body()
        event_type = request.headers.get("X-GitHub-Event", "")
        delivery_id = request.headers.get("X-GitHub-Delivery")
        metric_event = event_type if event_type in KNOWN_EVENTS else "other"

        if not verify_signature(
            raw_body,
            request.headers.get("X-Hub-Signature-256"),
            state.settings.github_webhook_secret,
        ):
            state.metrics.record_signature_failure()
            logger.warning(
                "Rejected webhook with invalid signature",
                extra={"delivery_id": delivery_id, "event": event_type},
            )
            raise AuthenticationFailure("Invalid or missing webhook signature")

        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            state.metrics.record_webhook_event(metric_event, "invalid")
            raise ValidationFailure("Webhook body is not valid JSON") from e

        try:
            event = state.webhook_handler.parse_event(event_type, payload)
        except ValidationFailure:
            state.metrics.record_webhook_event(metric_event, "invalid")
            logger.warning(
                "Rejected malformed webhook payload",
                extra={"delivery_id": delivery_id, "event": event_type},
            )
            raise

        if event is None:
            action = payload.get("action") if isinstance(payload, dict) else None
            ignored = UnsupportedEvent(
                f"Event {event_type or '<none>'} with action {action} is not handled"
            )
            state.metrics.record_webhook_event(metric_event, "ignored")
            logger.info(
                "Ignored webhook event",
                extra={
                    "delivery_id": delivery_id,
                    "event": event_type,
                    "action": action,
                },
            )
            return JSONResponse(
                status_code=ignored.status_code,
                content={
                    "status": "ignored",
                    "event": event_type,
                    "delivery_id": delivery_id,
                    **ignored.to_dict(),
                },
            )

        result = await state.engine.ingest(event)
        state.metrics.record_webhook_event(metric_event, result.status.value)
        logger.info(
            "Processed webhook event",
            extra={
                "delivery_id": delivery_id,
                "event": event_type,
                "status": result.status.value,
                "release_id": result.release_id,
            },
        )
        return {
            "event": event_type,
            "delivery_id": delivery_id,
            **result.model_dump(mode="json"),
        }

    @app.get("/releases", response_model=List[Release])
    async def list_releases(
        request: Request,
        repository: Optional[str] = Query(default=None),
    ):
        return await request.app.state.store.list_releases(repository)

    @app.post("/releases", response_model=Release, status_code=201)
    async def create_release(request: Request, body: CreateReleaseRequest):
        return await request.app.state.engine.create_release(
            repository=body.repository,
            version=body.version,
            name=body.name,
            description=body.description,
        )

    @app.get("/releases/{release_id}")
    async def get_release(request: Request, release_id: int) -> Dict[str, Any]:
        """Return a release with its pull requests and commits."""
        store = request.app.state.store
        release = await store.get_release(release_id)
        if release is None:
            raise NotFoundError(f"Release {release_id} not found")
        pull_requests = await store.list_pull_requests(release_id)
        commits = await store.list_commits(release_id)
        return {
            "release": release.model_dump(mode="json"),
            "pull_requests": [pr.model_dump(mode="json") for pr in pull_requests],
            "commits": [c.model_dump(mode="json") for c in commits],
        }

    @app.get("/categories", response_model=List[Category])
    async def list_categories(request: Request):
        return await ensure_default_categories(request.app.state.store)

    @app.post("/releases/{release_id}/pull-requests")
    async def add_pull_requests(
        request: Request, release_id: int, body: AddPullRequestsRequest
    ) -> Dict[str, Any]:
        results = await request.app.state.engine.add_pull_requests(
            release_id, body.pull_requests
        )
        return {"results": [r.model_dump(mode="json") for r in results]}

    @app.post("/releases/{release_id}/commits")
    async def add_commits(
        request: Request, release_id: int, body: AddCommitsRequest
    ) -> Dict[str, Any]:
        results = await request.app.state.engine.add_commits(release_id, body.commits)
        return {"results": [r.model_dump(mode="json") for r in results]}

    @app.post("/releases/{release_id}/notes", response_model=RenderedChangelog)
    async def generate_notes(
        request: Request, release_id: int, body: GenerateNotesRequest
    ):
        return await request.app.state.assembler.assemble(
            release_id,
            format=body.format,
            style=body.style,
            include_commits=body.include_commits,
            custom_instructions=body.custom_instructions,
        )

    @app.get("/releases/{release_id}/notes", response_model=ReleaseNotes)
    async def get_notes(request: Request, release_id: int):
        return await request.app.state.assembler.get_stored_notes(release_id)

    @app.post("/releases/{release_id}/publish-to-github")
    async def publish_to_github(request: Request, release_id: int) -> Dict[str, Any]:
        """Push the stored notes into the matching GitHub release body."""
        state = request.app.state
        url = await state.assembler.publish_to_github(release_id, state.github_client)
        return {"release_id": release_id, "status": "published", "url": url}


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # For local development, load settings to get host/port
    dev_settings = get_settings()
    uvicorn.run(
        "src.releasenotes.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )

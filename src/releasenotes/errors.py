"""Error taxonomy for the release notes service.

Every user-visible failure is a ReleaseNotesError carrying a taxonomy kind,
a message and the HTTP status the API layer should answer with. Internal
stack detail is logged by the API layer and never returned to callers.

Kinds:
- authentication_failure: bad or missing webhook signature (401)
- unsupported_event: event type or action not handled (acknowledged, 200)
- not_found: referenced release or resource absent (404)
- validation_failure: malformed request body (400)
- conflict: resource with the same identity already exists (409)
- upstream_failure: GitHub or the generative backend failed (502)
"""

from typing import Any, Dict, Optional


class ReleaseNotesError(Exception):
    """Base error with a taxonomy kind and an HTTP status.

    Attributes:
        kind: Taxonomy kind reported to the caller.
        message: Human-readable error description.
        status_code: HTTP status code for the API response.
        detail: Optional structured detail safe to return to callers.
    """

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, detail: Optional[Any] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Build the JSON error body returned to callers."""
        body: Dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class AuthenticationFailure(ReleaseNotesError):
    """Webhook signature missing or invalid. No state is mutated."""

    kind = "authentication_failure"
    status_code = 401


class UnsupportedEvent(ReleaseNotesError):
    """Event type or action is not handled; acknowledged as a no-op."""

    kind = "unsupported_event"
    status_code = 200


class NotFoundError(ReleaseNotesError):
    """A referenced release or pull request does not exist."""

    kind = "not_found"
    status_code = 404


class ValidationFailure(ReleaseNotesError):
    """Request body is malformed or missing required fields."""

    kind = "validation_failure"
    status_code = 400


class ConflictError(ReleaseNotesError):
    """A resource with the same natural identity already exists."""

    kind = "conflict"
    status_code = 409


class UpstreamFailure(ReleaseNotesError):
    """GitHub or the generative backend is unreachable or erroring."""

    kind = "upstream_failure"
    status_code = 502

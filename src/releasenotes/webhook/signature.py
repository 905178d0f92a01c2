"""Webhook signature verification.

GitHub signs each delivery with HMAC-SHA256 over the raw request body, keyed
by the webhook secret, and sends it in the X-Hub-Signature-256 header as
``sha256=<hex digest>``. Verification must run over the exact bytes received,
before any JSON parsing.
"""

import hashlib
import hmac
import logging
from typing import Optional


logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Compute the X-Hub-Signature-256 header value for a body.

    Args:
        raw_body: Raw request body bytes.
        secret: Webhook secret.

    Returns:
        The header value in format "sha256=<hex digest>".
    """
    digest = hmac.new(
        secret.encode("utf-8"),
        raw_body,
        hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    raw_body: bytes,
    header_signature: Optional[str],
    secret: str,
) -> bool:
    """Verify a GitHub webhook signature using HMAC SHA256.

    Args:
        raw_body: Raw request body bytes.
        header_signature: X-Hub-Signature-256 header value.
        secret: Webhook secret from GitHub settings.

    Returns:
        True if the signature is valid, False otherwise. Never raises.
    """
    if not secret:
        logger.warning("Webhook secret is not configured")
        return False

    if not header_signature:
        logger.warning("Missing X-Hub-Signature-256 header")
        return False

    if not header_signature.startswith(SIGNATURE_PREFIX):
        logger.warning(
            "Invalid signature format",
            extra={"header_prefix": header_signature[:10]},
        )
        return False

    expected = compute_signature(raw_body, secret)[len(SIGNATURE_PREFIX):]
    received = header_signature[len(SIGNATURE_PREFIX):]

    return hmac.compare_digest(expected.encode("ascii"), received.encode("utf-8"))

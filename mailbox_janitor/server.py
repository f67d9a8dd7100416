"""HTTP gate receiving userli webhook events.

Endpoints:
    GET  /health  - liveness check
    POST /userli  - signed webhook; ``user.deleted`` queues the mailbox

The ``X-Webhook-Signature`` header must carry the hex HMAC-SHA256 of the raw
request body keyed with the shared webhook secret.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError as PydanticValidationError

from mailbox_janitor import __version__
from mailbox_janitor.core.models import EVENT_TYPE_USER_DELETED, IngestOutcome, UserEvent
from mailbox_janitor.services.ingest import IngestService

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Check a webhook signature in constant time."""
    expected = compute_signature(secret, body)
    return hmac.compare_digest(signature.strip().encode("utf-8"), expected.encode("utf-8"))


def create_app(webhook_secret: str, ingest: IngestService) -> FastAPI:
    """Build the webhook application.

    Args:
        webhook_secret: Shared secret for signature verification.
        ingest: Service receiving authenticated deletion requests.

    Returns:
        Configured FastAPI application.
    """
    if not webhook_secret:
        raise ValueError("webhook_secret must not be empty")

    app = FastAPI(title="mailbox-janitor", version=__version__, docs_url=None, redoc_url=None)

    async def require_signature(request: Request) -> bytes:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            logger.warning("Missing webhook signature")
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing signature header")

        body = await request.body()
        if not verify_signature(webhook_secret, body, signature):
            logger.warning("Invalid webhook signature")
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid signature")
        return body

    @app.get("/health", response_class=PlainTextResponse)
    def health() -> str:
        return "OK"

    @app.post("/userli", response_class=PlainTextResponse)
    async def userli_event(body: bytes = Depends(require_signature)) -> str:
        logger.info("Userli event received")
        try:
            event = UserEvent.model_validate_json(body)
        except PydanticValidationError as e:
            logger.error(f"Failed to decode event: {e.errors(include_input=False)}")
            raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid request body") from e

        if event.type != EVENT_TYPE_USER_DELETED:
            logger.warning(f"Unknown event type received: {event.type}")
            raise HTTPException(status.HTTP_400_BAD_REQUEST, "Unknown event type")

        logger.info(f"User deleted event received: {event.data.email}")
        outcome = await run_in_threadpool(ingest.on_deletion_requested, event.data.email)
        if outcome is IngestOutcome.STORAGE_ERROR:
            # Ask the sender to retry; says nothing about validation
            raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Temporarily unavailable")
        return "OK"

    return app

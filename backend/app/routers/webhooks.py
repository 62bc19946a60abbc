"""
Clerk webhook endpoint: mirrors user lifecycle events into the local database.
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from svix.webhooks import Webhook, WebhookVerificationError
import json
import logging

from app.core.config import settings
from app.core.errors import PartialCascadeFailure
from app.database import get_db
from app.services.identity_sync import dispatch_event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


@router.post("/clerk")
async def clerk_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Handle Clerk (Svix-signed) user events.

    Nothing is processed unless the signature verifies. Redelivery is left to
    Clerk: any non-2xx answer makes it retry, so events that can never succeed
    (no email address) are acknowledged with success=false instead.
    """
    try:
        secret = settings.require_webhook_secret()
    except RuntimeError as e:
        logger.error(f"[WEBHOOK] {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook secret not configured"},
        )

    payload = await request.body()
    headers = {name: request.headers.get(name) for name in SVIX_HEADERS}

    if not all(headers.values()):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing Svix headers"},
        )

    # verify() raises on a bad signature; the event is parsed from the raw body
    try:
        Webhook(secret).verify(payload, headers)
    except WebhookVerificationError as e:
        logger.warning(f"[WEBHOOK] verification failed: svix_id={headers['svix-id']}, error={e}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid webhook"},
        )

    try:
        event = json.loads(payload)
    except ValueError:
        event = None
    if not isinstance(event, dict):
        logger.warning(f"[WEBHOOK] payload is not a JSON object: svix_id={headers['svix-id']}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid payload"},
        )

    event_type = event.get("type")
    try:
        outcome = dispatch_event(db, event)
    except PartialCascadeFailure as e:
        logger.error(
            f"[WEBHOOK] partial cascade: svix_id={headers['svix-id']}, "
            f"failed_step={e.failed_step}, completed={e.completed_steps}"
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )
    except Exception:
        logger.exception(f"[WEBHOOK] error processing event: svix_id={headers['svix-id']}, type={event_type}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )

    logger.info(f"[WEBHOOK] svix_id={headers['svix-id']}, type={event_type}, outcome={outcome}")
    return {"success": outcome != "missing_email", "outcome": outcome}

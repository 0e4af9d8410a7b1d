import json
import logging

import stripe
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from supabase import Client

from app.config import settings
from app.core.errors import AppError, ErrorCode, error_body
from app.database.supabase_client import get_service_supabase
from app.modules.webhooks.idempotency import IdempotencyService
from app.modules.webhooks.service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_webhook_service(supabase: Client = Depends(get_service_supabase)) -> WebhookService:
    return WebhookService(supabase)


def get_idempotency_service(supabase: Client = Depends(get_service_supabase)) -> IdempotencyService:
    return IdempotencyService(supabase)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
    idempotency: IdempotencyService = Depends(get_idempotency_service),
):
    """Verify and process a Stripe event. Each event id is handled at most once."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise AppError(ErrorCode.INVALID_REQUEST, "Missing stripe-signature header")
    if not settings.stripe_webhook_secret:
        raise AppError(ErrorCode.INTERNAL_ERROR, "Stripe webhook secret is not configured")

    try:
        stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Stripe signature verification failed: {e}")
        raise AppError(ErrorCode.INVALID_REQUEST, f"Webhook signature verification failed: {e}")
    except ValueError as e:
        raise AppError(ErrorCode.INVALID_REQUEST, f"Invalid webhook payload: {e}")

    event = json.loads(payload)
    event_id = event["id"]
    event_type = event["type"]

    claim = idempotency.check_and_claim_event(event_id, event_type, event)
    if not claim.is_new:
        logger.info(f"Skipping duplicate event {event_id} ({claim.existing_status})")
        return {"received": True, "skipped": True, "reason": f"Event already {claim.existing_status}"}

    if not service.handles(event_type):
        logger.warning(f"Unhandled Stripe event type: {event_type}")
        idempotency.mark_unrecoverable(event_id, f"Unhandled event type: {event_type}")
        return {"received": True, "warning": f"Unhandled event type: {event_type}"}

    try:
        service.dispatch(event)
    except Exception as e:
        logger.exception(f"Error processing Stripe event {event_id} ({event_type}): {e}")
        idempotency.mark_failed(event_id, str(e))
        return JSONResponse(status_code=500, content=error_body(ErrorCode.INTERNAL_ERROR, str(e)))

    idempotency.mark_completed(event_id)
    logger.info(f"Processed Stripe event {event_id} ({event_type})")
    return {"received": True}

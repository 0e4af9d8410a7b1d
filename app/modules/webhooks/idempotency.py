"""Exactly-once processing of Stripe events, tracked in the webhook_events table."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel
from supabase import Client

from app.database.supabase_client import first_row

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
FAILED = "failed"


class IdempotencyResult(BaseModel):
    is_new: bool
    existing_status: Optional[str] = None


def _is_unique_violation(error: Exception) -> bool:
    return getattr(error, "code", None) == UNIQUE_VIOLATION or "duplicate key" in str(error).lower()


class IdempotencyService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def check_and_claim_event(self, event_id: str, event_type: str,
                              payload: Optional[Dict[str, Any]] = None) -> IdempotencyResult:
        """Insert a 'processing' row for the event unless one exists. The unique event_id decides races.

        A row left 'failed' by an earlier delivery is claimed again so Stripe's retry reprocesses it.
        """
        existing = first_row(
            self.supabase.table("webhook_events")
            .select("status, retry_count")
            .eq("event_id", event_id)
            .limit(1)
            .execute()
        )
        if existing and existing.get("status") == FAILED:
            return self._reclaim_failed(event_id, existing.get("retry_count") or 0)
        if existing:
            return IdempotencyResult(is_new=False, existing_status=existing.get("status"))

        try:
            self.supabase.table("webhook_events").insert({
                "event_id": event_id,
                "event_type": event_type,
                "status": "processing",
                "payload": payload,
            }).execute()
        except Exception as e:
            if _is_unique_violation(e):
                logger.info(f"Event {event_id} claimed concurrently by another worker")
                return IdempotencyResult(is_new=False, existing_status="processing")
            raise
        return IdempotencyResult(is_new=True)

    def _reclaim_failed(self, event_id: str, retry_count: int) -> IdempotencyResult:
        # Conditional on status so only one concurrent redelivery wins the row
        result = self.supabase.table("webhook_events")\
            .update({"status": "processing", "error_message": None, "retry_count": retry_count + 1})\
            .eq("event_id", event_id)\
            .eq("status", FAILED)\
            .execute()
        if not result.data:
            return IdempotencyResult(is_new=False, existing_status="processing")
        logger.info(f"Retrying failed webhook event {event_id} (attempt {retry_count + 2})")
        return IdempotencyResult(is_new=True)

    def mark_completed(self, event_id: str) -> None:
        self.supabase.table("webhook_events")\
            .update({"status": "completed", "completed_at": datetime.now(timezone.utc).isoformat()})\
            .eq("event_id", event_id)\
            .execute()

    def mark_failed(self, event_id: str, error_message: str) -> None:
        try:
            self.supabase.table("webhook_events")\
                .update({
                    "status": FAILED,
                    "error_message": error_message,
                    "completed_at": datetime.now(timezone.utc).isoformat(),
                })\
                .eq("event_id", event_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to mark webhook event {event_id} as failed: {e}")

    def mark_unrecoverable(self, event_id: str, error_message: str) -> None:
        try:
            self.supabase.table("webhook_events")\
                .update({
                    "status": "unrecoverable",
                    "error_message": error_message,
                    "completed_at": datetime.now(timezone.utc).isoformat(),
                })\
                .eq("event_id", event_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to mark webhook event {event_id} as unrecoverable: {e}")

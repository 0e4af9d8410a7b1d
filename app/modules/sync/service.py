"""
Recovery for missed or delayed Stripe webhooks.

Stripe is the source of truth. The expiration check looks at active subscriptions whose
period has ended; reconciliation compares every live subscription with Stripe.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe
from fastapi import HTTPException
from supabase import Client

from app.config import settings
from app.core.stripe_client import stripe_value, subscription_period, subscription_price_id
from app.modules.subscriptions.service import to_iso
from app.modules.sync.schemas import ReconcileIssue, ReconcileResult, SyncRunResult
from app.modules.webhooks.service import WebhookService

logger = logging.getLogger(__name__)

RECONCILE_BATCH_SIZE = 40
RECONCILE_STATUSES = ["active", "trialing", "past_due"]
PERIOD_DRIFT_SECONDS = 3600


def is_stripe_not_found_error(error: Exception) -> bool:
    if not isinstance(error, stripe.InvalidRequestError):
        return False
    return getattr(error, "http_status", None) == 404 or "no such" in str(error).lower()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class SubscriptionSyncService:
    def __init__(self, supabase: Client, delay_seconds: Optional[float] = None):
        self.supabase = supabase
        self.webhooks = WebhookService(supabase)
        self.delay_seconds = settings.sync_stripe_delay_seconds if delay_seconds is None else delay_seconds

    def create_sync_run(self, job_type: str) -> str:
        run_id = str(uuid.uuid4())
        self.supabase.table("sync_runs").insert({
            "id": run_id,
            "job_type": job_type,
            "status": "running",
            "started_at": datetime.now(timezone.utc).isoformat(),
        }).execute()
        return run_id

    def complete_sync_run(self, run_id: str, status: str, processed: int, fixed: int,
                          discrepancies: int = 0, error_message: Optional[str] = None,
                          metadata: Optional[Dict[str, Any]] = None) -> None:
        self.supabase.table("sync_runs")\
            .update({
                "status": status,
                "records_processed": processed,
                "records_fixed": fixed,
                "discrepancies_found": discrepancies,
                "error_message": error_message,
                "metadata": metadata,
                "completed_at": datetime.now(timezone.utc).isoformat(),
            })\
            .eq("id", run_id)\
            .execute()

    def _fail_run(self, run_id: str, error: Exception, processed: int, fixed: int,
                  discrepancies: int = 0, metadata: Optional[Dict[str, Any]] = None) -> None:
        try:
            self.complete_sync_run(run_id, "failed", processed, fixed, discrepancies, str(error), metadata)
        except Exception as e:
            logger.error(f"Failed to mark sync run {run_id} as failed: {e}")

    def sync_subscription_from_stripe(self, stripe_subscription: Any) -> None:
        """Apply Stripe's view of a subscription the same way a subscription.updated event would."""
        self.webhooks.handle_subscription_update(stripe_subscription)

    def mark_subscription_canceled(self, user_id: str, subscription_id: str) -> None:
        self.supabase.table("subscriptions")\
            .update({"status": "canceled", "canceled_at": datetime.now(timezone.utc).isoformat()})\
            .eq("id", subscription_id)\
            .execute()
        self.supabase.table("profiles")\
            .update({"subscription_status": "canceled"})\
            .eq("id", user_id)\
            .execute()

    def update_subscription_period(self, subscription_id: str, stripe_subscription: Any) -> None:
        period_start, period_end = subscription_period(stripe_subscription)
        self.supabase.table("subscriptions")\
            .update({
                "current_period_start": to_iso(period_start),
                "current_period_end": to_iso(period_end),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })\
            .eq("id", subscription_id)\
            .execute()

    def check_expirations(self) -> SyncRunResult:
        run_id = self.create_sync_run("expiration_check")
        processed = fixed = 0
        try:
            now = datetime.now(timezone.utc).isoformat()
            expired = self.supabase.table("subscriptions")\
                .select("id, user_id, status, current_period_end")\
                .eq("status", "active")\
                .lt("current_period_end", now)\
                .execute().data or []
            logger.info(f"Expiration check found {len(expired)} active subscriptions past period end")

            for row in expired:
                processed += 1
                try:
                    stripe_subscription = stripe.Subscription.retrieve(row["id"])
                    if stripe_value(stripe_subscription, "status") != "active":
                        logger.info(
                            f"Subscription {row['id']} is {stripe_value(stripe_subscription, 'status')} "
                            f"in Stripe, syncing"
                        )
                        self.sync_subscription_from_stripe(stripe_subscription)
                    else:
                        logger.info(f"Subscription {row['id']} still active in Stripe, updating period")
                        self.update_subscription_period(row["id"], stripe_subscription)
                    fixed += 1
                except Exception as e:
                    if is_stripe_not_found_error(e):
                        logger.info(f"Subscription {row['id']} not found in Stripe, marking canceled")
                        self.mark_subscription_canceled(row["user_id"], row["id"])
                        fixed += 1
                    else:
                        logger.error(f"Error checking subscription {row['id']}: {e}")

            self.complete_sync_run(run_id, "completed", processed, fixed)
        except Exception as e:
            logger.error(f"Expiration check failed: {e}")
            self._fail_run(run_id, e, processed, fixed)
            raise HTTPException(status_code=500, detail=str(e))

        logger.info(f"Expiration check complete: {processed} processed, {fixed} fixed")
        return SyncRunResult(run_id=run_id, processed=processed, fixed=fixed)

    def _discrepancies(self, row: Dict[str, Any], stripe_subscription: Any) -> List[str]:
        found = []
        stripe_status = stripe_value(stripe_subscription, "status")
        if stripe_status != row.get("status"):
            found.append(f"Status mismatch: DB={row.get('status')}, Stripe={stripe_status}")

        stripe_price_id = subscription_price_id(stripe_subscription)
        if stripe_price_id and stripe_price_id != row.get("price_id"):
            found.append(f"Price mismatch: DB={row.get('price_id')}, Stripe={stripe_price_id}")

        _, period_end = subscription_period(stripe_subscription)
        db_period_end = _parse_timestamp(row.get("current_period_end"))
        if period_end and db_period_end:
            drift = abs(int(period_end) - db_period_end.timestamp())
            if drift > PERIOD_DRIFT_SECONDS:
                found.append(
                    f"Period end drift: DB={row.get('current_period_end')}, "
                    f"Stripe={to_iso(period_end)} ({drift / 3600:.1f}h difference)"
                )
        return found

    def reconcile(self, batch_size: int = RECONCILE_BATCH_SIZE) -> ReconcileResult:
        run_id = self.create_sync_run("full_reconciliation")
        processed = fixed = discrepancies = 0
        issues: List[ReconcileIssue] = []
        try:
            rows = self.supabase.table("subscriptions")\
                .select("id, user_id, status, price_id, current_period_end")\
                .in_("status", RECONCILE_STATUSES)\
                .execute().data or []
            batch = rows[:batch_size]

            for row in batch:
                processed += 1
                try:
                    stripe_subscription = stripe.Subscription.retrieve(row["id"])
                    found = self._discrepancies(row, stripe_subscription)
                    if found:
                        discrepancies += len(found)
                        logger.info(f"Subscription {row['id']}: {'; '.join(found)}, syncing from Stripe")
                        self.sync_subscription_from_stripe(stripe_subscription)
                        fixed += 1
                        issues.extend(
                            ReconcileIssue(subscription_id=row["id"], user_id=row["user_id"],
                                           issue=issue, action="auto-fixed")
                            for issue in found
                        )
                except Exception as e:
                    if is_stripe_not_found_error(e):
                        discrepancies += 1
                        self.mark_subscription_canceled(row["user_id"], row["id"])
                        fixed += 1
                        issues.append(ReconcileIssue(
                            subscription_id=row["id"], user_id=row["user_id"],
                            issue="Subscription exists in DB but not in Stripe", action="marked-canceled",
                        ))
                    else:
                        logger.error(f"Error reconciling subscription {row['id']}: {e}")
                        issues.append(ReconcileIssue(
                            subscription_id=row["id"], user_id=row["user_id"],
                            issue=f"Error: {e}", action="failed",
                        ))
                if self.delay_seconds:
                    time.sleep(self.delay_seconds)

            self.complete_sync_run(
                run_id, "completed", processed, fixed, discrepancies,
                metadata={"issues": [issue.model_dump() for issue in issues]},
            )
        except Exception as e:
            logger.error(f"Reconciliation failed: {e}")
            self._fail_run(run_id, e, processed, fixed, discrepancies,
                           {"issues": [issue.model_dump() for issue in issues]})
            raise HTTPException(status_code=500, detail=str(e))

        logger.info(f"Reconciliation complete: {processed} processed, {discrepancies} discrepancies, {fixed} fixed")
        return ReconcileResult(
            run_id=run_id,
            processed=processed,
            fixed=fixed,
            discrepancies=discrepancies,
            issues=issues,
            total_subscriptions=len(rows),
            batch_size=batch_size,
            has_more=len(rows) > batch_size,
        )

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe
from fastapi import HTTPException
from supabase import Client

from app.config import settings
from app.config.subscription_config import (
    PlanConfig,
    get_enabled_credit_packs,
    get_enabled_plans,
    get_plan_by_price_id,
    resolve_price_id,
)
from app.core.errors import AppError, ErrorCode
from app.core.stripe_client import (
    expandable_id, first_subscription_item, stripe_value, subscription_period, subscription_price_id
)
from app.database.supabase_client import first_row
from app.modules.subscriptions.schemas import (
    CancelResponse,
    CheckoutRequest,
    CheckoutResponse,
    CreditPackResponse,
    PlanChangeResponse,
    PlanResponse,
    PlanSummary,
    PreviewChangeResponse,
    ProrationPreview,
    SubscriptionResponse,
)

logger = logging.getLogger(__name__)

LIVE_STATUSES = ["active", "trialing"]


def to_iso(timestamp: Optional[int]) -> Optional[str]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).isoformat()


def plan_summary(plan: PlanConfig) -> PlanSummary:
    return PlanSummary(name=plan.name, price_id=plan.stripe_price_id, credits_per_month=plan.credits_per_cycle)


def list_plans() -> List[PlanResponse]:
    plans = []
    for plan in get_enabled_plans():
        resolved = resolve_price_id(plan.stripe_price_id)
        plans.append(PlanResponse(
            key=plan.key,
            name=plan.name,
            stripe_price_id=plan.stripe_price_id,
            price_in_cents=plan.price_in_cents,
            currency=plan.currency,
            interval=plan.interval,
            credits_per_cycle=plan.credits_per_cycle,
            max_rollover=resolved.max_rollover if plan.credits_expiration.mode == "never" else None,
            expiration_mode=plan.credits_expiration.mode,
            features=plan.features,
            recommended=plan.recommended,
            description=plan.description,
        ))
    return plans


def list_credit_packs() -> List[CreditPackResponse]:
    return [CreditPackResponse(**pack.model_dump()) for pack in get_enabled_credit_packs()]


class SubscriptionService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_active_subscription(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("subscriptions")\
            .select("*")\
            .eq("user_id", user_id)\
            .in_("status", LIVE_STATUSES)\
            .order("created_at", desc=True)\
            .limit(1)\
            .execute()
        return first_row(result)

    def get_subscription(self, user_id: str) -> Optional[SubscriptionResponse]:
        row = self.get_active_subscription(user_id)
        if not row:
            return None
        plan = get_plan_by_price_id(row.get("price_id"))
        return SubscriptionResponse(
            **row,
            plan_key=plan.key if plan else None,
            plan_name=plan.name if plan else None,
        )

    def _get_or_create_customer(self, profile: Dict[str, Any]) -> str:
        customer_id = profile.get("stripe_customer_id")
        if customer_id:
            return customer_id
        customer = stripe.Customer.create(
            email=profile.get("email"),
            metadata={"user_id": profile["id"]},
        )
        customer_id = stripe_value(customer, "id")
        self.supabase.table("profiles")\
            .update({"stripe_customer_id": customer_id})\
            .eq("id", profile["id"])\
            .execute()
        logger.info(f"Created Stripe customer {customer_id} for user {profile['id']}")
        return customer_id

    def create_checkout_session(self, profile: Dict[str, Any], checkout: CheckoutRequest) -> CheckoutResponse:
        """Hosted Checkout for a plan (subscription mode) or a credit pack (payment mode)."""
        price_id = (checkout.price_id or "").strip()
        if not price_id.startswith("price_") or len(price_id) < 10:
            raise AppError(
                ErrorCode.INVALID_PRICE,
                'Invalid price ID format. Price IDs must start with "price_" and be valid Stripe price identifiers.',
            )
        resolved = resolve_price_id(price_id)
        if resolved is None:
            raise AppError(ErrorCode.INVALID_PRICE, "Invalid price ID. Must be a subscription plan or credit pack.")

        user_id = profile["id"]
        if resolved.type == "plan" and self.get_active_subscription(user_id):
            raise AppError(
                ErrorCode.ALREADY_SUBSCRIBED,
                "You already have an active subscription. Use plan change to upgrade or downgrade.",
            )

        try:
            customer_id = self._get_or_create_customer(profile)
            metadata = {**checkout.metadata, "user_id": user_id}
            session_params: Dict[str, Any] = {
                "customer": customer_id,
                "line_items": [{"price": price_id, "quantity": 1}],
                "success_url": checkout.success_url or f"{settings.app_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
                "cancel_url": checkout.cancel_url or f"{settings.app_url}/pricing",
            }
            if resolved.type == "plan":
                session_params["mode"] = "subscription"
                session_params["metadata"] = {**metadata, "plan_key": resolved.key}
                session_params["subscription_data"] = {"metadata": {"user_id": user_id, "plan_key": resolved.key}}
            else:
                session_params["mode"] = "payment"
                session_params["metadata"] = {
                    **metadata,
                    "pack_key": resolved.key,
                    "credits": str(resolved.credits),
                    "type": "credit_purchase",
                }
            session = stripe.checkout.Session.create(**session_params)
            logger.info(f"Checkout session {stripe_value(session, 'id')} created for user {user_id} ({resolved.key})")
            return CheckoutResponse(url=stripe_value(session, "url"), session_id=stripe_value(session, "id"))
        except HTTPException:
            raise
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating checkout session for {user_id}: {e}")
            raise AppError(ErrorCode.STRIPE_ERROR, str(e))

    def _resolve_target_plan(self, target_price_id: Optional[str]) -> PlanConfig:
        if not target_price_id:
            raise AppError(ErrorCode.MISSING_PRICE_ID, "target_price_id is required")
        target_plan = get_plan_by_price_id(target_price_id)
        if target_plan is None:
            raise AppError(ErrorCode.INVALID_PRICE_ID, "Invalid or unsupported price ID")
        return target_plan

    def preview_change(self, profile: Dict[str, Any], target_price_id: Optional[str]) -> PreviewChangeResponse:
        target_plan = self._resolve_target_plan(target_price_id)
        current = self.get_active_subscription(profile["id"])
        current_price_id = current.get("price_id") if current else None
        current_plan = get_plan_by_price_id(current_price_id)

        if current_price_id == target_price_id:
            raise AppError(ErrorCode.SAME_PLAN, "Target plan is the same as current plan")
        customer_id = profile.get("stripe_customer_id")
        if not customer_id:
            raise AppError(ErrorCode.STRIPE_CUSTOMER_NOT_FOUND, "User has no Stripe customer ID")

        now_iso = datetime.now(timezone.utc).isoformat()
        proration = ProrationPreview(amount_due=0, currency="usd", period_start=now_iso, period_end=now_iso)
        is_downgrade = bool(current_plan) and target_plan.credits_per_cycle < current_plan.credits_per_cycle

        if current and current_plan and not is_downgrade:
            try:
                subscription = stripe.Subscription.retrieve(current["id"])
                item = first_subscription_item(subscription)
                invoice = stripe.Invoice.create_preview(
                    customer=customer_id,
                    subscription=current["id"],
                    subscription_details={
                        "items": [{"id": stripe_value(item, "id"), "price": target_price_id}],
                        "proration_behavior": "create_prorations",
                    },
                )
                lines = stripe_value(stripe_value(invoice, "lines"), "data", [])
                amount = sum(
                    stripe_value(line, "amount", 0)
                    for line in lines
                    if is_proration_line(line)
                )
                proration = ProrationPreview(
                    amount_due=amount,
                    currency=stripe_value(invoice, "currency", "usd"),
                    period_start=to_iso(stripe_value(invoice, "period_start")) or now_iso,
                    period_end=to_iso(stripe_value(invoice, "period_end")) or now_iso,
                )
            except stripe.StripeError as e:
                logger.error(f"Failed to preview proration for {current['id']}: {e}")
                raise AppError(ErrorCode.STRIPE_ERROR, f"Failed to calculate proration: {e}")

        return PreviewChangeResponse(
            proration=proration,
            current_plan=plan_summary(current_plan) if current_plan else None,
            new_plan=plan_summary(target_plan),
            is_downgrade=is_downgrade,
            effective_immediately=bool(current) and not is_downgrade,
        )

    def change_plan(self, profile: Dict[str, Any], target_price_id: Optional[str]) -> PlanChangeResponse:
        """Upgrades apply now with proration; downgrades are scheduled for the end of the period."""
        target_plan = self._resolve_target_plan(target_price_id)
        user_id = profile["id"]
        current = self.get_active_subscription(user_id)
        if not current:
            raise AppError(ErrorCode.NO_ACTIVE_SUBSCRIPTION, "No active subscription found")
        if current.get("price_id") == target_price_id:
            raise AppError(ErrorCode.SAME_PLAN, "Target plan is the same as current plan")

        try:
            subscription = stripe.Subscription.retrieve(current["id"])
            item = first_subscription_item(subscription)
            if item is None:
                raise AppError(ErrorCode.INVALID_SUBSCRIPTION_STATE, "Subscription has no items")
            stripe_price_id = subscription_price_id(subscription)
            if stripe_price_id and stripe_price_id != current.get("price_id"):
                raise AppError(
                    ErrorCode.SUBSCRIPTION_MODIFIED,
                    "Subscription was modified elsewhere. Refresh and try again.",
                    details={"stripe_price_id": stripe_price_id, "stored_price_id": current.get("price_id")},
                )

            current_plan = get_plan_by_price_id(current.get("price_id"))
            if current_plan and target_plan.credits_per_cycle < current_plan.credits_per_cycle:
                return self._schedule_downgrade(current, subscription, target_plan)
            return self._apply_upgrade(user_id, current, item, target_plan)
        except HTTPException:
            raise
        except stripe.StripeError as e:
            logger.error(f"Stripe error changing plan for {user_id}: {e}")
            raise AppError(ErrorCode.STRIPE_ERROR, str(e))
        except Exception as e:
            logger.error(f"Error changing plan for {user_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def _schedule_downgrade(self, current: Dict[str, Any], subscription: Any,
                            target_plan: PlanConfig) -> PlanChangeResponse:
        period_start, period_end = subscription_period(subscription)
        schedule_id = expandable_id(stripe_value(subscription, "schedule"))
        if not schedule_id:
            schedule = stripe.SubscriptionSchedule.create(from_subscription=current["id"])
            schedule_id = stripe_value(schedule, "id")

        stripe.SubscriptionSchedule.modify(
            schedule_id,
            end_behavior="release",
            phases=[
                {
                    "items": [{"price": current["price_id"], "quantity": 1}],
                    "start_date": period_start or "now",
                    "end_date": period_end,
                    "proration_behavior": "none",
                },
                {
                    "items": [{"price": target_plan.stripe_price_id, "quantity": 1}],
                    "start_date": period_end,
                    "proration_behavior": "none",
                },
            ],
        )
        change_date = to_iso(period_end)
        self.supabase.table("subscriptions")\
            .update({
                "scheduled_price_id": target_plan.stripe_price_id,
                "scheduled_change_date": change_date,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })\
            .eq("id", current["id"])\
            .execute()
        logger.info(f"Scheduled downgrade of {current['id']} to {target_plan.key} at {change_date}")
        return PlanChangeResponse(
            subscription_id=current["id"],
            status="scheduled",
            new_price_id=target_plan.stripe_price_id,
            effective_immediately=False,
            effective_date=change_date,
        )

    def _apply_upgrade(self, user_id: str, current: Dict[str, Any], item: Any,
                       target_plan: PlanConfig) -> PlanChangeResponse:
        updated = stripe.Subscription.modify(
            current["id"],
            items=[{"id": stripe_value(item, "id"), "price": target_plan.stripe_price_id}],
            proration_behavior="create_prorations",
            payment_behavior="error_if_incomplete",
        )
        period_start, period_end = subscription_period(updated)
        self.supabase.table("subscriptions")\
            .update({
                "price_id": target_plan.stripe_price_id,
                "current_period_start": to_iso(period_start),
                "current_period_end": to_iso(period_end),
                "scheduled_price_id": None,
                "scheduled_change_date": None,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })\
            .eq("id", current["id"])\
            .execute()
        self.supabase.table("profiles")\
            .update({"subscription_tier": target_plan.key})\
            .eq("id", user_id)\
            .execute()
        logger.info(f"Upgraded {current['id']} to {target_plan.key}; credits are granted by the webhook")
        return PlanChangeResponse(
            subscription_id=current["id"],
            status="updated",
            new_price_id=target_plan.stripe_price_id,
            effective_immediately=True,
        )

    def cancel_scheduled_change(self, user_id: str) -> SubscriptionResponse:
        current = self.get_active_subscription(user_id)
        if not current:
            raise AppError(ErrorCode.NO_ACTIVE_SUBSCRIPTION, "No active subscription found")
        if not current.get("scheduled_price_id"):
            raise AppError(ErrorCode.INVALID_REQUEST, "No scheduled plan change to cancel")
        try:
            subscription = stripe.Subscription.retrieve(current["id"])
            schedule_id = expandable_id(stripe_value(subscription, "schedule"))
            if schedule_id:
                stripe.SubscriptionSchedule.release(schedule_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe error releasing schedule for {current['id']}: {e}")
            raise AppError(ErrorCode.STRIPE_ERROR, str(e))
        self.supabase.table("subscriptions")\
            .update({"scheduled_price_id": None, "scheduled_change_date": None})\
            .eq("id", current["id"])\
            .execute()
        return self.get_subscription(user_id)

    def cancel(self, user_id: str, reason: Optional[str] = None) -> CancelResponse:
        """Cancel at period end. Stripe is the source of truth, so a failed DB update is only logged."""
        current = self.get_active_subscription(user_id)
        if not current:
            raise AppError(ErrorCode.NO_ACTIVE_SUBSCRIPTION, "No active subscription found")
        try:
            updated = stripe.Subscription.modify(current["id"], cancel_at_period_end=True)
        except stripe.StripeError as e:
            logger.error(f"Stripe error canceling {current['id']}: {e}")
            raise AppError(ErrorCode.STRIPE_ERROR, str(e))

        update_data = {
            "cancel_at_period_end": True,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if reason:
            update_data["cancellation_reason"] = reason
        try:
            self.supabase.table("subscriptions").update(update_data).eq("id", current["id"]).execute()
        except Exception as e:
            logger.error(f"Error updating canceled subscription {current['id']}: {e}")

        _, period_end = subscription_period(updated)
        return CancelResponse(
            subscription_id=current["id"],
            cancel_at_period_end=bool(stripe_value(updated, "cancel_at_period_end", True)),
            current_period_end=period_end,
        )


def is_proration_line(line: Any) -> bool:
    if stripe_value(line, "proration"):
        return True
    # Newer API versions nest the proration flag under parent details
    parent = stripe_value(line, "parent")
    for key in ("subscription_item_details", "invoice_item_details"):
        if stripe_value(stripe_value(parent, key), "proration"):
            return True
    return False

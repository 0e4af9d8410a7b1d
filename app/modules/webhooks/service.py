"""
Stripe event handlers.

Handlers raise when a retry could succeed (missing profile, unknown price, RPC failure) so
the event is marked failed and Stripe redelivers it. Events that can never apply are logged
and skipped.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from supabase import Client

from app.config.subscription_config import (
    assert_known_price_id,
    calculate_balance_with_expiration,
    get_plan_by_key,
    get_trial_config,
)
from app.core.stripe_client import expandable_id, stripe_value, subscription_period, subscription_price_id
from app.database.supabase_client import first_row
from app.modules.credits.calculator import calculate_upgrade_credits, get_explanation
from app.modules.credits.service import CreditService
from app.modules.subscriptions.service import is_proration_line, to_iso

logger = logging.getLogger(__name__)


def extract_previous_price_id(previous_attributes: Any) -> Optional[str]:
    """Price the subscription had before this update, from the event's previous_attributes."""
    if not previous_attributes:
        return None
    items = stripe_value(stripe_value(previous_attributes, "items"), "data", [])
    if items:
        price_id = stripe_value(stripe_value(items[0], "price"), "id")
        if price_id:
            return price_id
    return stripe_value(stripe_value(previous_attributes, "plan"), "id")


def _line_price_id(line: Any) -> Optional[str]:
    for key in ("price", "plan"):
        value = stripe_value(line, key)
        price_id = expandable_id(value)
        if price_id:
            return price_id
    pricing = stripe_value(stripe_value(line, "pricing"), "price_details")
    return expandable_id(stripe_value(pricing, "price"))


def _is_subscription_line(line: Any) -> bool:
    if stripe_value(line, "type") == "subscription":
        return True
    return stripe_value(stripe_value(line, "parent"), "type") == "subscription_item_details"


def extract_invoice_price_id(invoice: Any) -> Optional[str]:
    """Price for an invoice: the subscription line, else a positive proration, else any priced line."""
    lines = stripe_value(stripe_value(invoice, "lines"), "data", [])
    priced = [line for line in lines if _line_price_id(line)]
    for line in priced:
        if _is_subscription_line(line):
            return _line_price_id(line)
    for line in priced:
        if is_proration_line(line) and stripe_value(line, "amount", 0) > 0:
            return _line_price_id(line)
    return _line_price_id(priced[0]) if priced else None


def extract_invoice_subscription_id(invoice: Any) -> Optional[str]:
    subscription_id = expandable_id(stripe_value(invoice, "subscription"))
    if subscription_id:
        return subscription_id
    details = stripe_value(stripe_value(invoice, "parent"), "subscription_details")
    return expandable_id(stripe_value(details, "subscription"))


class WebhookService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.credits = CreditService(supabase)
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "customer.created": self._on_customer_created,
            "customer.subscription.created": self._on_subscription_updated,
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_invoice_paid,
            "invoice.paid": self._on_invoice_paid,
            "invoice.payment_failed": self._on_invoice_failed,
            "charge.refunded": self._on_charge_refunded,
            "subscription_schedule.completed": self._on_schedule_completed,
        }

    def handles(self, event_type: str) -> bool:
        return event_type in self._handlers

    def dispatch(self, event: Dict[str, Any]) -> None:
        self._handlers[event["type"]](event)

    def _on_checkout_completed(self, event: Dict[str, Any]) -> None:
        self.handle_checkout_session_completed(event["data"]["object"])

    def _on_customer_created(self, event: Dict[str, Any]) -> None:
        self.handle_customer_created(event["data"]["object"])

    def _on_subscription_updated(self, event: Dict[str, Any]) -> None:
        previous = extract_previous_price_id(event["data"].get("previous_attributes"))
        self.handle_subscription_update(event["data"]["object"], previous_price_id=previous)

    def _on_subscription_deleted(self, event: Dict[str, Any]) -> None:
        self.handle_subscription_deleted(event["data"]["object"])

    def _on_invoice_paid(self, event: Dict[str, Any]) -> None:
        self.handle_invoice_paid(event["data"]["object"])

    def _on_invoice_failed(self, event: Dict[str, Any]) -> None:
        self.handle_invoice_payment_failed(event["data"]["object"])

    def _on_charge_refunded(self, event: Dict[str, Any]) -> None:
        self.handle_charge_refunded(event["data"]["object"])

    def _on_schedule_completed(self, event: Dict[str, Any]) -> None:
        self.handle_subscription_schedule_completed(event["data"]["object"])

    def _require_profile(self, customer_id: Optional[str]) -> Dict[str, Any]:
        profile = self.credits.get_profile_by_customer(customer_id) if customer_id else None
        if not profile:
            raise LookupError(f"No profile found for customer {customer_id}")
        return profile

    def handle_checkout_session_completed(self, session: Dict[str, Any]) -> None:
        metadata = stripe_value(session, "metadata", {})
        user_id = stripe_value(metadata, "user_id")
        if not user_id:
            logger.error(f"No user_id in metadata of checkout session {stripe_value(session, 'id')}")
            return

        customer_id = expandable_id(stripe_value(session, "customer"))
        mode = stripe_value(session, "mode")
        if mode == "subscription":
            # Plan credits are granted once, by invoice.paid for the first invoice
            if customer_id:
                self.supabase.table("profiles")\
                    .update({"stripe_customer_id": customer_id})\
                    .eq("id", user_id)\
                    .execute()
            logger.info(f"Subscription checkout completed for user {user_id}")
        elif mode == "payment":
            self.handle_credit_pack_purchase(session, user_id)
        else:
            logger.warning(f"Unexpected checkout mode {mode} for session {stripe_value(session, 'id')}")

    def handle_credit_pack_purchase(self, session: Dict[str, Any], user_id: str) -> None:
        metadata = stripe_value(session, "metadata", {})
        try:
            credits = int(stripe_value(metadata, "credits", 0))
        except (TypeError, ValueError):
            credits = 0
        pack_key = stripe_value(metadata, "pack_key", "unknown")
        if credits <= 0:
            logger.error(f"Invalid credits in session metadata: {stripe_value(metadata, 'credits')}")
            return

        payment_intent = expandable_id(stripe_value(session, "payment_intent"))
        ref_id = f"pi_{payment_intent}" if payment_intent else f"session_{stripe_value(session, 'id')}"
        self.credits.add_purchased_credits(
            user_id,
            credits,
            ref_id=ref_id,
            description=f"Credit pack purchase - {pack_key} - {credits} credits",
        )

    def handle_customer_created(self, customer: Dict[str, Any]) -> None:
        user_id = stripe_value(stripe_value(customer, "metadata", {}), "user_id")
        if not user_id:
            logger.info(f"Customer {stripe_value(customer, 'id')} created without user_id metadata")
            return
        self.supabase.table("profiles")\
            .update({"stripe_customer_id": stripe_value(customer, "id")})\
            .eq("id", user_id)\
            .execute()

    def handle_subscription_update(self, subscription: Dict[str, Any],
                                   previous_price_id: Optional[str] = None) -> None:
        customer_id = expandable_id(stripe_value(subscription, "customer"))
        profile = self._require_profile(customer_id)
        user_id = profile["id"]
        previous_status = profile.get("subscription_status")
        subscription_id = stripe_value(subscription, "id")
        status = stripe_value(subscription, "status")

        existing = first_row(
            self.supabase.table("subscriptions")
            .select("price_id")
            .eq("id", subscription_id)
            .limit(1)
            .execute()
        )
        previous_price_id = previous_price_id or (existing or {}).get("price_id")

        price_id = subscription_price_id(subscription)
        resolved = assert_known_price_id(price_id)
        if resolved.type != "plan":
            raise ValueError(f"Price ID {price_id} resolved to a credit pack, not a subscription plan")
        plan = get_plan_by_key(resolved.key)

        period_start, period_end = subscription_period(subscription)
        if not period_start or not period_end:
            now = datetime.now(timezone.utc)
            period_start = int(now.timestamp())
            period_end = int((now + timedelta(days=30)).timestamp())

        self.supabase.table("subscriptions").upsert({
            "id": subscription_id,
            "user_id": user_id,
            "status": status,
            "price_id": price_id,
            "current_period_start": to_iso(period_start),
            "current_period_end": to_iso(period_end),
            "trial_end": to_iso(stripe_value(subscription, "trial_end")),
            "cancel_at_period_end": bool(stripe_value(subscription, "cancel_at_period_end", False)),
            "canceled_at": to_iso(stripe_value(subscription, "canceled_at")),
        }).execute()
        self.supabase.table("profiles")\
            .update({"subscription_status": status, "subscription_tier": plan.key})\
            .eq("id", user_id)\
            .execute()

        trial = get_trial_config(price_id)
        trial_ref = f"trial_{subscription_id}"
        if status == "trialing" and previous_status != "trialing" and trial and trial.enabled \
                and not self.credits.has_credit_grant(user_id, trial_ref):
            trial_credits = trial.trial_credits if trial.trial_credits is not None else plan.credits_per_cycle
            self.credits.add_subscription_credits(
                user_id,
                trial_credits,
                ref_id=trial_ref,
                description=f"Trial credits - {plan.name} plan - {trial_credits} credits",
            )

        if previous_price_id and previous_price_id != price_id and status == "active":
            self._apply_plan_change_credits(profile, subscription_id, previous_price_id, price_id)

    def _apply_plan_change_credits(self, profile: Dict[str, Any], subscription_id: str,
                                   previous_price_id: str, price_id: str) -> None:
        try:
            previous = assert_known_price_id(previous_price_id)
        except ValueError as e:
            logger.error(f"Previous price for {subscription_id} is not configured: {e}")
            return
        if previous.type != "plan":
            return
        new = assert_known_price_id(price_id)
        current_balance = (profile.get("subscription_credits_balance") or 0) + \
            (profile.get("purchased_credits_balance") or 0)

        if new.credits > previous.credits:
            ref_id = f"upgrade_{subscription_id}_{price_id}"
            if self.credits.has_credit_grant(profile["id"], ref_id):
                logger.info(f"Upgrade credits {ref_id} already granted, skipping")
                return
            calculation = calculate_upgrade_credits(current_balance, previous.credits, new.credits)
            logger.info(get_explanation(calculation, current_balance, new.credits))
            self.credits.add_subscription_credits(
                profile["id"],
                calculation.credits_to_add,
                ref_id=ref_id,
                description=(
                    f"Plan upgrade - {previous.name} -> {new.name} - "
                    f"{calculation.credits_to_add} credits (tier difference)"
                ),
            )
        elif new.credits < previous.credits:
            logger.info(
                f"Downgrade {previous.name} -> {new.name} for user {profile['id']}: keeps "
                f"{current_balance} credits, next renewal grants {new.credits}"
            )

    def handle_subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        customer_id = expandable_id(stripe_value(subscription, "customer"))
        profile = self.credits.get_profile_by_customer(customer_id) if customer_id else None
        if not profile:
            logger.error(f"No profile found for customer {customer_id}")
            return
        self.supabase.table("subscriptions")\
            .update({"status": "canceled", "canceled_at": datetime.now(timezone.utc).isoformat()})\
            .eq("id", stripe_value(subscription, "id"))\
            .execute()
        self.supabase.table("profiles")\
            .update({"subscription_status": "canceled"})\
            .eq("id", profile["id"])\
            .execute()
        logger.info(f"Canceled subscription for user {profile['id']}")

    def handle_invoice_paid(self, invoice: Dict[str, Any]) -> None:
        """Renewal credits, with the plan's expiration policy applied to the subscription balance."""
        subscription_id = extract_invoice_subscription_id(invoice)
        if not subscription_id:
            return
        customer_id = expandable_id(stripe_value(invoice, "customer"))
        profile = self.credits.get_profile_by_customer(customer_id) if customer_id else None
        if not profile:
            logger.error(f"No profile found for customer {customer_id} on invoice {stripe_value(invoice, 'id')}")
            return
        user_id = profile["id"]
        # invoice.paid and invoice.payment_succeeded both arrive for one invoice
        ref_id = f"invoice_{stripe_value(invoice, 'id')}"
        if self.credits.has_credit_grant(user_id, ref_id):
            logger.info(f"Renewal credits for {ref_id} already granted, skipping")
            return

        price_id = extract_invoice_price_id(invoice)
        resolved = assert_known_price_id(price_id)
        if resolved.type != "plan":
            raise ValueError(f"Price ID {price_id} resolved to a credit pack, not a subscription plan")
        plan = get_plan_by_key(resolved.key)
        mode = plan.credits_expiration.mode

        current_balance = profile.get("subscription_credits_balance") or 0
        balance = calculate_balance_with_expiration(current_balance, resolved.credits, mode, resolved.max_rollover)

        if balance.expired_amount > 0:
            expired = self.credits.expire_subscription_credits(
                user_id,
                reason="cycle_end" if mode == "end_of_cycle" else "rolling_window",
                subscription_id=subscription_id,
                cycle_end=to_iso(stripe_value(invoice, "period_end")),
            )
            logger.info(f"Expired {expired} subscription credits for user {user_id}")

        credits_to_add = balance.new_balance - (0 if balance.expired_amount > 0 else current_balance)
        if credits_to_add <= 0:
            logger.info(
                f"Skipped renewal credits for user {user_id}: at max rollover "
                f"({current_balance}/{resolved.max_rollover})"
            )
            return

        description = f"Subscription renewal - {plan.name} plan"
        if balance.expired_amount > 0:
            description += f" ({balance.expired_amount} credits expired, {credits_to_add} new credits added)"
        elif credits_to_add < resolved.credits:
            description += f" (capped from {resolved.credits} due to rollover limit of {resolved.max_rollover})"
        self.credits.add_subscription_credits(
            user_id, credits_to_add, ref_id=ref_id, description=description
        )

    def handle_invoice_payment_failed(self, invoice: Dict[str, Any]) -> None:
        customer_id = expandable_id(stripe_value(invoice, "customer"))
        profile = self.credits.get_profile_by_customer(customer_id) if customer_id else None
        if not profile:
            logger.error(f"No profile found for customer {customer_id} on failed invoice")
            return
        self.supabase.table("profiles")\
            .update({"subscription_status": "past_due"})\
            .eq("id", profile["id"])\
            .execute()
        logger.warning(f"Payment failed for user {profile['id']}, marked past_due")

    def handle_charge_refunded(self, charge: Dict[str, Any]) -> None:
        """Claw back the credits granted by the refunded invoice or credit pack payment."""
        refunded = stripe_value(charge, "amount_refunded", 0)
        if not refunded:
            return
        customer_id = expandable_id(stripe_value(charge, "customer"))
        profile = self.credits.get_profile_by_customer(customer_id) if customer_id else None
        if not profile:
            logger.error(f"No profile found for customer {customer_id} for charge refund")
            return

        invoice_id = expandable_id(stripe_value(charge, "invoice"))
        payment_intent = expandable_id(stripe_value(charge, "payment_intent"))
        if invoice_id:
            original_ref_id = f"invoice_{invoice_id}"
        elif payment_intent:
            original_ref_id = f"pi_{payment_intent}"
        else:
            logger.warning(f"Charge {stripe_value(charge, 'id')} has no invoice or payment intent to claw back")
            return

        result = self.credits.clawback_credits(
            profile["id"],
            original_ref_id,
            f"Refund for charge {stripe_value(charge, 'id')} ({refunded} cents)",
        )
        if result.get("success"):
            logger.info(
                f"Clawed back {result.get('credits_clawed_back')} credits from user {profile['id']}, "
                f"new balance {result.get('new_balance')}"
            )
        else:
            logger.error(f"Clawback failed for {original_ref_id}: {result.get('error_message')}")

    def handle_subscription_schedule_completed(self, schedule: Dict[str, Any]) -> None:
        """A deferred downgrade took effect; renewal credits follow from invoice.paid."""
        subscription_id = expandable_id(stripe_value(schedule, "subscription"))
        if not subscription_id:
            logger.info(f"Schedule {stripe_value(schedule, 'id')} has no subscription, skipping")
            return
        row = first_row(
            self.supabase.table("subscriptions")
            .select("id, user_id, price_id, scheduled_price_id")
            .eq("id", subscription_id)
            .limit(1)
            .execute()
        )
        if not row:
            logger.error(f"No subscription found for schedule completion: {subscription_id}")
            return

        scheduled_price_id = row.get("scheduled_price_id")
        self.supabase.table("subscriptions")\
            .update({
                "price_id": scheduled_price_id or row.get("price_id"),
                "scheduled_price_id": None,
                "scheduled_change_date": None,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })\
            .eq("id", subscription_id)\
            .execute()

        if scheduled_price_id:
            resolved = assert_known_price_id(scheduled_price_id)
            self.supabase.table("profiles")\
                .update({"subscription_tier": resolved.key})\
                .eq("id", row["user_id"])\
                .execute()
            logger.info(f"Scheduled change to {resolved.key} applied for subscription {subscription_id}")

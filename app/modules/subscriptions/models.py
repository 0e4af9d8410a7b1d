# Subscriptions Table
# Mirrors Stripe subscriptions; Stripe is the source of truth and webhooks keep this in sync.

"""
public.subscriptions:
- id: TEXT (PK, Stripe subscription ID sub_...)
- user_id: UUID (FK profiles.id)
- status: TEXT (active | trialing | past_due | canceled | incomplete | unpaid)
- price_id: TEXT (Stripe price ID of the current plan)
- current_period_start: TIMESTAMPTZ
- current_period_end: TIMESTAMPTZ
- trial_end: TIMESTAMPTZ (nullable)
- cancel_at_period_end: BOOLEAN
- canceled_at: TIMESTAMPTZ (nullable)
- cancellation_reason: TEXT (nullable)
- scheduled_price_id: TEXT (nullable, pending downgrade)
- scheduled_change_date: TIMESTAMPTZ (nullable)
- created_at, updated_at: TIMESTAMPTZ

Usage:
- A user has at most one active or trialing subscription.
- Downgrades are deferred to period end with a Stripe SubscriptionSchedule; the pending
  price is kept in scheduled_price_id until subscription_schedule.completed.
"""

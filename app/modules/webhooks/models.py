# Stripe webhook event log
# One row per Stripe event id. The unique event_id is what makes delivery exactly-once.

"""
public.webhook_events:
- id: UUID (PK)
- event_id: TEXT (UNIQUE, Stripe evt_ id)
- event_type: TEXT
- status: TEXT (processing | completed | failed | unrecoverable)
- payload: JSONB
- error_message: TEXT
- retry_count: INTEGER (default 0, bumped when a failed event is claimed again)
- created_at: TIMESTAMPTZ
- completed_at: TIMESTAMPTZ

public.subscriptions:
- id: TEXT (PK, Stripe sub_ id)
- user_id: UUID (FK profiles.id)
- status, price_id, current_period_start, current_period_end, trial_end
- cancel_at_period_end: BOOLEAN, canceled_at
- scheduled_price_id, scheduled_change_date (pending downgrade)
"""

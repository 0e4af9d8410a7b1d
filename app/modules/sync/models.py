# Stripe to database sync runs
# Each cron invocation records one row so drift between Stripe and the subscriptions
# table can be audited after the fact.

"""
public.sync_runs:
- id: UUID (PK)
- job_type: TEXT (expiration_check | full_reconciliation)
- status: TEXT (running | completed | failed)
- records_processed: INTEGER
- records_fixed: INTEGER
- discrepancies_found: INTEGER
- error_message: TEXT
- metadata: JSONB ({"issues": [...]} for reconciliation)
- started_at, completed_at: TIMESTAMPTZ
"""

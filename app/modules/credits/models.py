# Credit ledger
# Balances live on public.profiles; every change is logged to public.credit_transactions
# by the SECURITY DEFINER functions below (service_role only unless noted).

"""
public.credit_transactions:
- id: UUID (PK)
- user_id: UUID (FK profiles.id)
- amount: INTEGER (positive = grant, negative = spend)
- type: TEXT (subscription | purchase | usage | expiration | clawback)
    Job refunds are logged as purchase rows referencing the job id.
- reference_id: TEXT (invoice_<id>, pi_<id>, session_<id>, job id)
- description: TEXT
- created_at: TIMESTAMPTZ

RPCs:
- add_subscription_credits(target_user_id, amount, ref_id, description) -> new subscription balance
- add_purchased_credits(target_user_id, amount, ref_id, description) -> new purchased balance
- consume_credits_v2(target_user_id, amount, ref_id, description)
    -> (new_subscription_balance, new_purchased_balance, new_total_balance)
    Spends subscription credits first. Raises 'Insufficient credits' (also granted to authenticated).
- refund_credits(target_user_id, amount, job_id) -> new balance
    Credits go to the purchased pool; no reference check, callers must not repeat a refund.
- expire_subscription_credits(target_user_id, expiration_reason, subscription_stripe_id, cycle_end_date)
    -> amount expired
- clawback_credits_from_transaction(p_target_user_id, p_original_ref_id, p_reason)
    -> (success, credits_clawed_back, new_balance, error_message)
"""

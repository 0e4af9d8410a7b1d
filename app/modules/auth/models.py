# Supabase Auth + profiles
# Authentication uses Supabase's built-in auth (auth.users). Billing state lives in
# public.profiles, one row per auth user, created by a trigger on sign up.

"""
public.profiles:
- id: UUID (PK, references auth.users.id)
- email: TEXT
- stripe_customer_id: TEXT (unique, nullable)
- subscription_status: TEXT (active | trialing | past_due | canceled | null)
- subscription_tier: TEXT (plan key: starter | hobby | pro | business | null)
- subscription_credits_balance: INTEGER (expires per plan policy)
- purchased_credits_balance: INTEGER (never expires)
- created_at, updated_at: TIMESTAMPTZ

Balances are only changed through the credit RPCs (see modules/credits/models.py).
"""

from supabase import Client
from fastapi import HTTPException
from typing import Any, Dict, List, Optional
import logging

from app.core.errors import AppError, ErrorCode
from app.database.supabase_client import first_row
from app.modules.credits.schemas import CreditBalance, ConsumeResult, CreditTransaction

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = (
    "id, email, stripe_customer_id, subscription_status, subscription_tier, "
    "subscription_credits_balance, purchased_credits_balance"
)


class CreditService:
    """Credit balances and ledger. All balance changes go through Postgres functions."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("profiles")\
            .select(PROFILE_COLUMNS)\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        return first_row(result)

    def get_profile_by_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("profiles")\
            .select(PROFILE_COLUMNS)\
            .eq("stripe_customer_id", customer_id)\
            .limit(1)\
            .execute()
        return first_row(result)

    def get_balance(self, user_id: str) -> CreditBalance:
        try:
            profile = self.get_profile(user_id)
            if not profile:
                raise AppError(ErrorCode.NOT_FOUND, "Profile not found")
            return CreditBalance.from_profile(profile)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error getting credit balance for {user_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def consume_credits(self, user_id: str, amount: int, ref_id: Optional[str] = None,
                        description: Optional[str] = None) -> ConsumeResult:
        """Spend credits, subscription balance first, then purchased."""
        try:
            result = self.supabase.rpc("consume_credits_v2", {
                "target_user_id": user_id,
                "amount": amount,
                "ref_id": ref_id,
                "description": description,
            }).execute()
            row = first_row(result)
            if not row:
                raise HTTPException(status_code=500, detail="consume_credits_v2 returned no balance")
            return ConsumeResult(**row)
        except HTTPException:
            raise
        except Exception as e:
            if "insufficient credits" in str(e).lower():
                raise AppError(ErrorCode.INSUFFICIENT_CREDITS, "Insufficient credits for this operation")
            logger.error(f"Error consuming {amount} credits for {user_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def refund_credits(self, user_id: str, amount: int, job_id: Optional[str] = None) -> int:
        try:
            result = self.supabase.rpc("refund_credits", {
                "target_user_id": user_id,
                "amount": amount,
                "job_id": job_id,
            }).execute()
            return int(result.data or 0)
        except Exception as e:
            logger.error(f"Error refunding {amount} credits for job {job_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def add_subscription_credits(self, user_id: str, amount: int, ref_id: Optional[str] = None,
                                 description: Optional[str] = None) -> int:
        """Returns the new subscription balance. Errors propagate so webhooks get retried."""
        result = self.supabase.rpc("add_subscription_credits", {
            "target_user_id": user_id,
            "amount": amount,
            "ref_id": ref_id,
            "description": description,
        }).execute()
        logger.info(f"Added {amount} subscription credits to user {user_id} ({ref_id})")
        return int(result.data or 0)

    def add_purchased_credits(self, user_id: str, amount: int, ref_id: Optional[str] = None,
                              description: Optional[str] = None) -> int:
        result = self.supabase.rpc("add_purchased_credits", {
            "target_user_id": user_id,
            "amount": amount,
            "ref_id": ref_id,
            "description": description,
        }).execute()
        logger.info(f"Added {amount} purchased credits to user {user_id} ({ref_id})")
        return int(result.data or 0)

    def expire_subscription_credits(self, user_id: str, reason: str = "cycle_end",
                                    subscription_id: Optional[str] = None,
                                    cycle_end: Optional[str] = None) -> int:
        """Expire the subscription balance only; purchased credits are untouched. Returns amount expired."""
        result = self.supabase.rpc("expire_subscription_credits", {
            "target_user_id": user_id,
            "expiration_reason": reason,
            "subscription_stripe_id": subscription_id,
            "cycle_end_date": cycle_end,
        }).execute()
        return int(result.data or 0)

    def clawback_credits(self, user_id: str, original_ref_id: str, reason: str) -> Dict[str, Any]:
        result = self.supabase.rpc("clawback_credits_from_transaction", {
            "p_target_user_id": user_id,
            "p_original_ref_id": original_ref_id,
            "p_reason": reason,
        }).execute()
        return first_row(result) or {}

    def list_transactions(self, user_id: str, limit: int = 20, offset: int = 0) -> List[CreditTransaction]:
        try:
            result = self.supabase.table("credit_transactions")\
                .select("id, amount, type, reference_id, description, created_at")\
                .eq("user_id", user_id)\
                .order("created_at", desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()
            return [CreditTransaction(**row) for row in (result.data or [])]
        except Exception as e:
            logger.error(f"Error listing credit transactions for {user_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def get_job_transactions(self, user_id: str, job_id: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("credit_transactions")\
            .select("id, amount, type, reference_id")\
            .eq("user_id", user_id)\
            .eq("reference_id", job_id)\
            .execute()
        return result.data or []

    def has_credit_grant(self, user_id: str, ref_id: str) -> bool:
        """True when the ledger already holds a positive entry for this reference.

        The credit RPCs append without checking references, so grants keyed by invoice,
        upgrade or job refund are checked here before they are made.
        """
        result = self.supabase.table("credit_transactions")\
            .select("amount")\
            .eq("user_id", user_id)\
            .eq("reference_id", ref_id)\
            .execute()
        return any((row.get("amount") or 0) > 0 for row in (result.data or []))

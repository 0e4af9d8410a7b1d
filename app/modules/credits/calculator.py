"""
Credit arithmetic for plan changes and per-job costs.

Upgrades top the balance up by the tier difference only, so a user cannot farm credits
by cycling between plans. Downgrades never add credits; the user keeps what they have
until the next renewal, which grants the new tier's allotment.
"""

import math
from enum import Enum

from pydantic import BaseModel

from app.config.subscription_config import calculate_model_credit_cost


class CreditReason(str, Enum):
    TOP_UP_TO_MINIMUM = "top_up_to_minimum"
    PRESERVE_LEGITIMATE_EXCESS = "preserve_legitimate_excess"
    FARMING_BLOCKED = "farming_blocked"


class CreditCalculation(BaseModel):
    credits_to_add: int
    reason: CreditReason
    is_legitimate: bool
    max_reasonable_balance: int = 0


def calculate_upgrade_credits(
    current_balance: int,
    previous_tier_credits: int,
    new_tier_credits: int,
) -> CreditCalculation:
    if current_balance < 0 or previous_tier_credits < 0 or new_tier_credits < 0:
        raise ValueError("Credit amounts cannot be negative")
    if new_tier_credits <= previous_tier_credits:
        raise ValueError(
            "New tier must have more credits than previous tier (use this for upgrades only)"
        )
    return CreditCalculation(
        credits_to_add=new_tier_credits - previous_tier_credits,
        reason=CreditReason.TOP_UP_TO_MINIMUM,
        is_legitimate=True,
        max_reasonable_balance=0,
    )


def calculate_downgrade_credits() -> CreditCalculation:
    return CreditCalculation(
        credits_to_add=0,
        reason=CreditReason.PRESERVE_LEGITIMATE_EXCESS,
        is_legitimate=True,
        max_reasonable_balance=0,
    )


def get_explanation(calculation: CreditCalculation, current_balance: int, new_tier_credits: int) -> str:
    if calculation.reason == CreditReason.TOP_UP_TO_MINIMUM:
        new_balance = current_balance + calculation.credits_to_add
        return (
            f"User has {current_balance} credits. Adding {calculation.credits_to_add} "
            f"(tier difference) to reach {new_balance} on upgrade to {new_tier_credits} tier."
        )
    if calculation.reason == CreditReason.PRESERVE_LEGITIMATE_EXCESS:
        return f"Downgrade: User keeps their {current_balance} credits until next renewal."
    return (
        f"User has {current_balance} credits, above the reasonable maximum of "
        f"{calculation.max_reasonable_balance}. No credits added."
    )


def calculate_credit_cost(mode: str, model_id: str, scale: int) -> int:
    """Catalogue cost of one job, clamped to the configured minimum and maximum."""
    return calculate_model_credit_cost(mode, model_id, scale)


RESOLUTION_MULTIPLIERS = {
    "2k": 1.0,
    "4k": 1.5,
    "8k": 2.0,
}


def calculate_job_cost(base_cost: int, feature_cost: int, model_multiplier: float,
                       scale_multiplier: float = 1.0, resolution: str = "2k") -> int:
    resolution_multiplier = RESOLUTION_MULTIPLIERS.get(resolution, 1.0)
    return math.ceil((base_cost + feature_cost) * model_multiplier * scale_multiplier * resolution_multiplier)

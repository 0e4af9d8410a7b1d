from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, Literal, Optional

from app.config.subscription_config import get_low_credit_threshold


class CreditBalance(BaseModel):
    subscription_credits: int = 0
    purchased_credits: int = 0
    total_credits: int = 0
    low_credits: bool = False

    @classmethod
    def from_profile(cls, profile: Dict[str, Any]) -> "CreditBalance":
        subscription = profile.get("subscription_credits_balance") or 0
        purchased = profile.get("purchased_credits_balance") or 0
        total = subscription + purchased
        return cls(
            subscription_credits=subscription,
            purchased_credits=purchased,
            total_credits=total,
            low_credits=total <= get_low_credit_threshold(),
        )


class ConsumeResult(BaseModel):
    new_subscription_balance: int
    new_purchased_balance: int
    new_total_balance: int


class CreditTransaction(BaseModel):
    id: str
    amount: int
    type: str
    reference_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CreditEstimateRequest(BaseModel):
    mode: Literal["upscale", "enhance", "both", "custom"] = "upscale"
    scale: Literal[2, 4, 8] = 2
    enhance_faces: bool = False
    denoise: bool = False
    target_resolution: Literal["2k", "4k", "8k"] = "2k"
    selected_model: str = "auto"
    analysis_hint: Optional[str] = None


class CreditBreakdown(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    base_cost: int
    feature_cost: int
    model_multiplier: float
    scale_multiplier: float = 1.0
    resolution_multiplier: float
    total_cost: int


class CreditEstimateResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    breakdown: CreditBreakdown
    model_to_be_used: str
    model_display_name: str
    estimated_processing_time: str
    user_credits: int
    can_afford: bool



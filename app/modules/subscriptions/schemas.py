from pydantic import BaseModel, ConfigDict
from typing import Dict, List, Optional


class PlanResponse(BaseModel):
    key: str
    name: str
    stripe_price_id: str
    price_in_cents: int
    currency: str
    interval: str
    credits_per_cycle: int
    max_rollover: Optional[int] = None
    expiration_mode: str
    features: List[str]
    recommended: bool
    description: Optional[str] = None


class CreditPackResponse(BaseModel):
    key: str
    name: str
    credits: int
    price_in_cents: int
    currency: str
    stripe_price_id: str
    popular: bool


class CheckoutRequest(BaseModel):
    price_id: str
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    metadata: Dict[str, str] = {}


class CheckoutResponse(BaseModel):
    url: str
    session_id: str


class PlanChangeRequest(BaseModel):
    target_price_id: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class PlanSummary(BaseModel):
    name: str
    price_id: str
    credits_per_month: int


class ProrationPreview(BaseModel):
    amount_due: int
    currency: str
    period_start: str
    period_end: str


class PreviewChangeResponse(BaseModel):
    proration: ProrationPreview
    current_plan: Optional[PlanSummary] = None
    new_plan: PlanSummary
    is_downgrade: bool = False
    effective_immediately: bool


class PlanChangeResponse(BaseModel):
    subscription_id: str
    status: str  # updated | scheduled
    new_price_id: str
    effective_immediately: bool
    effective_date: Optional[str] = None


class CancelResponse(BaseModel):
    subscription_id: str
    cancel_at_period_end: bool
    current_period_end: Optional[int] = None


class SubscriptionResponse(BaseModel):
    id: str
    status: str
    price_id: Optional[str] = None
    plan_key: Optional[str] = None
    plan_name: Optional[str] = None
    current_period_start: Optional[str] = None
    current_period_end: Optional[str] = None
    cancel_at_period_end: bool = False
    scheduled_price_id: Optional[str] = None
    scheduled_change_date: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

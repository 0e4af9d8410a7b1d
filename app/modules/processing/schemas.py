from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from app.modules.credits.schemas import CreditEstimateRequest


class AuthorizeRequest(CreditEstimateRequest):
    image_count: int = Field(1, ge=1, le=500)
    job_id: Optional[str] = None


class AuthorizeResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    job_id: str
    model_id: str
    credits_per_image: int
    credits_charged: int
    remaining_credits: int
    hourly_usage: int
    hourly_limit: int


class RefundRequest(BaseModel):
    user_id: str
    reason: Optional[str] = None


class RefundResponse(BaseModel):
    job_id: str
    credits_refunded: int
    new_balance: int


class LimitsResponse(BaseModel):
    tier: str
    batch_limit: int
    hourly_limit: int
    hourly_used: int
    hourly_remaining: int
    reset_at: datetime

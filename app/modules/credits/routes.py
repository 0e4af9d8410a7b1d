from fastapi import APIRouter, Depends, Query, Request
from app.config import settings
from app.core.dependencies import get_credit_service, get_current_profile, resolve_user_tier
from app.core.errors import success_body
from app.core.rate_limit import limiter, user_rate_limit_key
from app.modules.credits.schemas import CreditBalance, CreditEstimateRequest
from app.modules.credits.service import CreditService
from app.modules.models.service import estimate_credits
from typing import Dict

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/balance")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def get_balance(
    request: Request,
    profile: Dict = Depends(get_current_profile),
):
    return success_body(CreditBalance.from_profile(profile).model_dump())


@router.get("/transactions")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def list_transactions(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    profile: Dict = Depends(get_current_profile),
    service: CreditService = Depends(get_credit_service),
):
    transactions = service.list_transactions(profile["id"], limit=limit, offset=offset)
    return success_body([t.model_dump() for t in transactions])


@router.post("/estimate")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def estimate(
    request: Request,
    estimate_request: CreditEstimateRequest,
    profile: Dict = Depends(get_current_profile),
):
    """Credit cost of a job before it is submitted, with the model that would run it"""
    tier = resolve_user_tier(profile)
    user_credits = CreditBalance.from_profile(profile).total_credits
    result = estimate_credits(estimate_request, tier, user_credits)
    return success_body(result.model_dump())

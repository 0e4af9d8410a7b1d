from fastapi import APIRouter, Depends, Request
from app.config import settings
from app.config.subscription_config import build_homepage_tiers
from app.core.dependencies import get_current_profile
from app.core.errors import success_body
from app.core.rate_limit import limiter, user_rate_limit_key
from app.database.supabase_client import get_service_supabase
from app.modules.credits.schemas import CreditBalance
from app.modules.subscriptions.schemas import CancelRequest, CheckoutRequest, PlanChangeRequest
from app.modules.subscriptions.service import SubscriptionService, list_credit_packs, list_plans
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def get_subscription_service(supabase: Client = Depends(get_service_supabase)) -> SubscriptionService:
    return SubscriptionService(supabase)


@router.get("/plans")
@limiter.limit(settings.public_rate_limit)
async def get_plans(request: Request):
    return success_body([p.model_dump() for p in list_plans()])


@router.get("/credit-packs")
@limiter.limit(settings.public_rate_limit)
async def get_credit_packs(request: Request):
    return success_body([p.model_dump() for p in list_credit_packs()])


@router.get("/pricing-tiers")
@limiter.limit(settings.public_rate_limit)
async def get_pricing_tiers(request: Request):
    """Free tier plus paid plans, shaped for the pricing page"""
    return success_body(build_homepage_tiers())


@router.get("/me")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def get_my_subscription(
    request: Request,
    profile: Dict = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    subscription = service.get_subscription(profile["id"])
    return success_body({
        "subscription": subscription.model_dump() if subscription else None,
        "credits": CreditBalance.from_profile(profile).model_dump(),
    })


@router.post("/checkout")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def create_checkout(
    request: Request,
    checkout: CheckoutRequest,
    profile: Dict = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return success_body(service.create_checkout_session(profile, checkout).model_dump())


@router.post("/preview-change")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def preview_change(
    request: Request,
    change: PlanChangeRequest,
    profile: Dict = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Proration and credit impact of switching to another plan, without changing anything"""
    return success_body(service.preview_change(profile, change.target_price_id).model_dump())


@router.post("/change")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def change_plan(
    request: Request,
    change: PlanChangeRequest,
    profile: Dict = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return success_body(service.change_plan(profile, change.target_price_id).model_dump())


@router.post("/cancel-scheduled-change")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def cancel_scheduled_change(
    request: Request,
    profile: Dict = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return success_body(service.cancel_scheduled_change(profile["id"]).model_dump())


@router.post("/cancel")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def cancel_subscription(
    request: Request,
    cancel_request: Optional[CancelRequest] = None,
    profile: Dict = Depends(get_current_profile),
    service: SubscriptionService = Depends(get_subscription_service),
):
    reason = cancel_request.reason if cancel_request else None
    return success_body(service.cancel(profile["id"], reason).model_dump())

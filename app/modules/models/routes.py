from fastapi import APIRouter, Depends, Request
from app.config.model_config import get_enabled_models, is_model_available_for_tier
from app.config import settings
from app.core.dependencies import get_current_profile, resolve_user_tier
from app.core.rate_limit import limiter, user_rate_limit_key
from app.modules.models.schemas import ModelListResponse, ModelResponse
from typing import Dict

router = APIRouter(prefix="/models", tags=["models"])


@router.get("", response_model=ModelListResponse)
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def list_models(
    request: Request,
    profile: Dict = Depends(get_current_profile),
):
    """Enabled models, flagged by whether the caller's tier can use them"""
    tier = resolve_user_tier(profile)
    models = [
        ModelResponse(**m.model_dump(), available=is_model_available_for_tier(m, tier))
        for m in get_enabled_models()
    ]
    return ModelListResponse(tier=tier, models=models)

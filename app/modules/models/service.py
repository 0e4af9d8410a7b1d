import math
import logging
from typing import List

from app.config.model_config import (
    ModelConfig, get_model, get_models_for_tier, is_model_available_for_tier
)
from app.config.subscription_config import get_subscription_config
from app.core.errors import AppError, ErrorCode
from app.modules.credits.calculator import RESOLUTION_MULTIPLIERS, calculate_job_cost
from app.modules.credits.schemas import CreditBreakdown, CreditEstimateRequest, CreditEstimateResponse

logger = logging.getLogger(__name__)

FALLBACK_MODEL_ID = "real-esrgan"

SCALE_TIME_MULTIPLIERS = {
    2: 1.0,
    4: 1.5,
    8: 2.0,
}


def required_capabilities(request: CreditEstimateRequest) -> List[str]:
    capabilities = ["upscale"]
    if request.enhance_faces:
        capabilities.append("face-restoration")
    if request.denoise:
        capabilities.append("denoise")
    return capabilities


def select_model(request: CreditEstimateRequest, tier: str) -> ModelConfig:
    """Cheapest model for the tier that supports the scale and every requested capability."""
    needed = required_capabilities(request)
    candidates = [
        m for m in get_models_for_tier(tier)
        if request.scale in m.supported_scales and all(c in m.capabilities for c in needed)
    ]
    if candidates:
        return min(candidates, key=lambda m: m.credit_multiplier)
    return get_model(FALLBACK_MODEL_ID)


def validate_selected_model(model_id: str, scale: int, tier: str) -> ModelConfig:
    model = get_model(model_id)
    if model is None:
        raise AppError(ErrorCode.MODEL_NOT_FOUND, f"Model '{model_id}' not found")
    if not model.is_enabled:
        raise AppError(ErrorCode.VALIDATION_ERROR, f"Model '{model_id}' is currently disabled")
    if scale not in model.supported_scales:
        raise AppError(
            ErrorCode.MODEL_NOT_SUPPORTED,
            f"Model '{model_id}' does not support {scale}x scale",
            details={"supported_scales": model.supported_scales},
        )
    if not is_model_available_for_tier(model, tier):
        raise AppError(
            ErrorCode.TIER_RESTRICTED,
            f"Model '{model_id}' requires the {model.tier_restriction} tier or higher",
            details={"required_tier": model.tier_restriction, "current_tier": tier},
        )
    return model


def resolve_model(request: CreditEstimateRequest, tier: str) -> ModelConfig:
    if request.selected_model == "auto":
        return select_model(request, tier)
    return validate_selected_model(request.selected_model, request.scale, tier)


def format_processing_time(milliseconds: float) -> str:
    if milliseconds < 60000:
        return f"~{math.ceil(milliseconds / 1000)}s"
    return f"~{math.ceil(milliseconds / 60000)}m"


def estimate_processing_time(model: ModelConfig, scale: int) -> str:
    return format_processing_time(model.processing_time_ms * SCALE_TIME_MULTIPLIERS.get(scale, 1.0))


def build_breakdown(request: CreditEstimateRequest, model: ModelConfig) -> CreditBreakdown:
    base_cost = 1 if request.mode == "upscale" else 2
    feature_cost = 0
    if request.enhance_faces and "face-restoration" in model.capabilities:
        feature_cost += 1
    if request.denoise and "denoise" in model.capabilities:
        feature_cost += 1
    scale_multiplier = get_subscription_config().credit_costs.scale_multipliers.get(f"{request.scale}x", 1.0)
    resolution_multiplier = RESOLUTION_MULTIPLIERS.get(request.target_resolution, 1.0)
    total = calculate_job_cost(
        base_cost, feature_cost, model.credit_multiplier, scale_multiplier, request.target_resolution
    )
    return CreditBreakdown(
        base_cost=base_cost,
        feature_cost=feature_cost,
        model_multiplier=model.credit_multiplier,
        scale_multiplier=scale_multiplier,
        resolution_multiplier=resolution_multiplier,
        total_cost=total,
    )


def estimate_credits(request: CreditEstimateRequest, tier: str, user_credits: int) -> CreditEstimateResponse:
    model = resolve_model(request, tier)
    breakdown = build_breakdown(request, model)
    logger.debug(
        f"Estimate for tier={tier}: model={model.id} mode={request.mode} scale={request.scale} "
        f"total={breakdown.total_cost}"
    )
    return CreditEstimateResponse(
        breakdown=breakdown,
        model_to_be_used=model.id,
        model_display_name=model.display_name,
        estimated_processing_time=estimate_processing_time(model, request.scale),
        user_credits=user_credits,
        can_afford=user_credits >= breakdown.total_cost,
    )

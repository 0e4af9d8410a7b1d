"""
Registry of AI upscaling models.

Premium models are only enabled when ENABLE_PREMIUM_MODELS is set. A model may also
require a minimum subscription tier.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from app.config import settings

TIER_LEVELS: Dict[str, int] = {
    "free": 0,
    "starter": 1,
    "hobby": 1,
    "pro": 2,
    "business": 3,
}


class ModelConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    display_name: str
    provider: str
    model_version: str
    capabilities: List[str]
    cost_per_run: float
    credit_multiplier: int
    quality_score: float
    processing_time_ms: int
    max_input_resolution: int
    max_output_resolution: int
    supported_scales: List[int]
    is_enabled: bool = True
    tier_restriction: Optional[str] = None


def tier_level(tier: Optional[str]) -> int:
    return TIER_LEVELS.get(tier or "free", 0)


def _build_models() -> List[ModelConfig]:
    premium = settings.enable_premium_models
    return [
        ModelConfig(
            id="real-esrgan",
            display_name="Upscale",
            provider="replicate",
            model_version="nightmareai/real-esrgan",
            capabilities=["upscale", "denoise"],
            cost_per_run=0.0017,
            credit_multiplier=1,
            quality_score=8.5,
            processing_time_ms=2000,
            max_input_resolution=2048,
            max_output_resolution=8192,
            supported_scales=[2, 4],
            is_enabled=True,
        ),
        ModelConfig(
            id="gfpgan",
            display_name="Face Restore",
            provider="replicate",
            model_version="tencentarc/gfpgan",
            capabilities=["upscale", "face-restoration", "denoise", "damage-repair"],
            cost_per_run=0.0025,
            credit_multiplier=2,
            quality_score=9.0,
            processing_time_ms=5000,
            max_input_resolution=2048,
            max_output_resolution=4096,
            supported_scales=[2, 4],
            is_enabled=True,
        ),
        ModelConfig(
            id="nano-banana",
            display_name="Text Preserve",
            provider="gemini",
            model_version="gemini-2.5-flash-image",
            capabilities=["upscale", "text-preservation", "enhance"],
            cost_per_run=0.0,
            credit_multiplier=2,
            quality_score=8.0,
            processing_time_ms=3000,
            max_input_resolution=2048,
            max_output_resolution=8192,
            supported_scales=[2, 4, 8],
            is_enabled=True,
        ),
        ModelConfig(
            id="clarity-upscaler",
            display_name="Upscale Plus",
            provider="replicate",
            model_version="philz1337x/clarity-upscaler",
            capabilities=["upscale", "denoise", "enhance"],
            cost_per_run=0.017,
            credit_multiplier=4,
            quality_score=9.5,
            processing_time_ms=15000,
            max_input_resolution=2048,
            max_output_resolution=8192,
            supported_scales=[2, 4, 8],
            is_enabled=premium,
        ),
        ModelConfig(
            id="nano-banana-pro",
            display_name="Upscale Ultra",
            provider="replicate",
            model_version="google/nano-banana-pro",
            capabilities=["upscale", "enhance", "4k-output", "8k-output"],
            cost_per_run=0.13,
            credit_multiplier=8,
            quality_score=9.8,
            processing_time_ms=30000,
            max_input_resolution=2048,
            max_output_resolution=8192,
            supported_scales=[2, 4, 8],
            is_enabled=premium,
            tier_restriction="hobby",
        ),
    ]


def get_all_models() -> List[ModelConfig]:
    return _build_models()


def get_model(model_id: str) -> Optional[ModelConfig]:
    for model in _build_models():
        if model.id == model_id:
            return model
    return None


def get_enabled_models() -> List[ModelConfig]:
    return [m for m in _build_models() if m.is_enabled]


def is_model_available_for_tier(model: ModelConfig, tier: Optional[str]) -> bool:
    if not model.tier_restriction:
        return True
    return tier_level(tier) >= tier_level(model.tier_restriction)


def get_models_for_tier(tier: Optional[str]) -> List[ModelConfig]:
    return [m for m in get_enabled_models() if is_model_available_for_tier(m, tier)]

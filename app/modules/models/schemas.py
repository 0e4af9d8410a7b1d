from pydantic import BaseModel, ConfigDict
from typing import List, Optional


class ModelResponse(BaseModel):
    id: str
    display_name: str
    provider: str
    capabilities: List[str]
    credit_multiplier: int
    quality_score: float
    processing_time_ms: int
    supported_scales: List[int]
    tier_restriction: Optional[str] = None
    available: bool = True

    model_config = ConfigDict(from_attributes=True)


class ModelListResponse(BaseModel):
    tier: str
    models: List[ModelResponse]

from fastapi import APIRouter, Depends, Request
from app.config import settings
from app.core.dependencies import (
    get_credit_service, get_current_profile, resolve_user_tier, verify_internal_secret
)
from app.core.errors import success_body
from app.core.rate_limit import limiter, user_rate_limit_key
from app.modules.credits.service import CreditService
from app.modules.limits.service import BatchLimitService, batch_limit_service
from app.modules.processing.schemas import AuthorizeRequest, RefundRequest
from app.modules.processing.service import ProcessingService
from typing import Dict
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/processing", tags=["processing"])


def get_batch_limit_service() -> BatchLimitService:
    return batch_limit_service


def get_processing_service(
    credit_service: CreditService = Depends(get_credit_service),
    limit_service: BatchLimitService = Depends(get_batch_limit_service),
) -> ProcessingService:
    return ProcessingService(credit_service, limit_service)


@router.post("/authorize", status_code=201)
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def authorize_job(
    request: Request,
    authorize_request: AuthorizeRequest,
    profile: Dict = Depends(get_current_profile),
    service: ProcessingService = Depends(get_processing_service),
):
    """Check limits, charge credits and return the model to run the job with"""
    result = service.authorize(profile["id"], resolve_user_tier(profile), authorize_request)
    return success_body(result.model_dump())


@router.post("/{job_id}/refund", dependencies=[Depends(verify_internal_secret)])
async def refund_job(
    job_id: str,
    refund_request: RefundRequest,
    service: ProcessingService = Depends(get_processing_service),
):
    """Worker callback for a job that failed after it was charged"""
    if refund_request.reason:
        logger.info(f"Refund requested for job {job_id}: {refund_request.reason}")
    result = service.refund(refund_request.user_id, job_id)
    return success_body(result.model_dump())


@router.get("/limits")
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def get_limits(
    request: Request,
    profile: Dict = Depends(get_current_profile),
    service: ProcessingService = Depends(get_processing_service),
):
    result = service.get_limits(profile["id"], resolve_user_tier(profile))
    return success_body(result.model_dump(mode="json"))

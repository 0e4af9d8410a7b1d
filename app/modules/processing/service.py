import uuid
import logging
from typing import Optional

from fastapi import HTTPException

from app.config.subscription_config import calculate_batch_cost
from app.core.errors import AppError, ErrorCode
from app.modules.credits.service import CreditService
from app.modules.limits.service import BatchLimitService, get_batch_limit
from app.modules.models.service import build_breakdown, resolve_model
from app.modules.processing.schemas import (
    AuthorizeRequest, AuthorizeResponse, LimitsResponse, RefundResponse
)

logger = logging.getLogger(__name__)


class ProcessingService:
    """Pre-flight checks and credit charging for upscale jobs. Inference runs elsewhere."""

    def __init__(self, credit_service: CreditService, limit_service: BatchLimitService):
        self.credit_service = credit_service
        self.limit_service = limit_service

    def authorize(self, user_id: str, tier: str, request: AuthorizeRequest) -> AuthorizeResponse:
        window = self.limit_service.enforce(user_id, tier, request.image_count)

        model = resolve_model(request, tier)
        per_image = build_breakdown(request, model).total_cost
        total = calculate_batch_cost(request.image_count, per_image)
        job_id = request.job_id or str(uuid.uuid4())

        balance = self.credit_service.consume_credits(
            user_id,
            total,
            ref_id=job_id,
            description=f"{request.mode} x{request.scale} with {model.id} - {request.image_count} image(s)",
        )
        self.limit_service.increment(user_id, request.image_count)
        logger.info(f"Authorized job {job_id} for user {user_id}: {total} credits, model {model.id}")

        return AuthorizeResponse(
            job_id=job_id,
            model_id=model.id,
            credits_per_image=per_image,
            credits_charged=total,
            remaining_credits=balance.new_total_balance,
            hourly_usage=window.current + request.image_count,
            hourly_limit=window.limit,
        )

    def refund(self, user_id: str, job_id: str) -> RefundResponse:
        """Give back what a failed job was charged. A job can be refunded once.

        The refund RPC logs a positive purchase row under the job id, so any positive
        entry for the job means it was already refunded.
        """
        try:
            transactions = self.credit_service.get_job_transactions(user_id, job_id)
            charged = -sum(t["amount"] for t in transactions if t.get("type") == "usage" and t["amount"] < 0)
            if charged <= 0:
                raise AppError(ErrorCode.NOT_FOUND, f"No charge found for job {job_id}")
            if any((t.get("amount") or 0) > 0 for t in transactions):
                raise AppError(ErrorCode.INVALID_REQUEST, f"Job {job_id} has already been refunded")
            new_balance = self.credit_service.refund_credits(user_id, charged, job_id)
            logger.info(f"Refunded {charged} credits for job {job_id} to user {user_id}")
            return RefundResponse(job_id=job_id, credits_refunded=charged, new_balance=new_balance)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error refunding job {job_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def get_limits(self, user_id: str, tier: str) -> LimitsResponse:
        usage = self.limit_service.get_usage(user_id, tier)
        window = self.limit_service.check(user_id, tier)
        return LimitsResponse(
            tier=tier,
            batch_limit=get_batch_limit(tier),
            hourly_limit=usage.limit,
            hourly_used=usage.current,
            hourly_remaining=usage.remaining,
            reset_at=window.reset_at,
        )

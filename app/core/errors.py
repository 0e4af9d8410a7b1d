"""
Application error codes and the JSON error envelope.

All business errors render as {"success": false, "error": {"code", "message", "details"?}}.
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException


class ErrorCode(str, Enum):
    INVALID_REQUEST = "INVALID_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    RATE_LIMITED = "RATE_LIMITED"
    BATCH_LIMIT_EXCEEDED = "BATCH_LIMIT_EXCEEDED"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    MODEL_NOT_SUPPORTED = "MODEL_NOT_SUPPORTED"
    TIER_RESTRICTED = "TIER_RESTRICTED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    AI_UNAVAILABLE = "AI_UNAVAILABLE"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    # Billing
    INVALID_PRICE = "INVALID_PRICE"
    MISSING_PRICE_ID = "MISSING_PRICE_ID"
    INVALID_PRICE_ID = "INVALID_PRICE_ID"
    SAME_PLAN = "SAME_PLAN"
    ALREADY_SUBSCRIBED = "ALREADY_SUBSCRIBED"
    NO_ACTIVE_SUBSCRIPTION = "NO_ACTIVE_SUBSCRIPTION"
    STRIPE_CUSTOMER_NOT_FOUND = "STRIPE_CUSTOMER_NOT_FOUND"
    SUBSCRIPTION_MODIFIED = "SUBSCRIPTION_MODIFIED"
    INVALID_SUBSCRIPTION_STATE = "INVALID_SUBSCRIPTION_STATE"
    STRIPE_ERROR = "STRIPE_ERROR"


ERROR_STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INSUFFICIENT_CREDITS: 402,
    ErrorCode.PAYMENT_REQUIRED: 402,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.BATCH_LIMIT_EXCEEDED: 429,
    ErrorCode.MODEL_NOT_FOUND: 400,
    ErrorCode.MODEL_NOT_SUPPORTED: 400,
    ErrorCode.TIER_RESTRICTED: 403,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.AI_UNAVAILABLE: 503,
    ErrorCode.PROCESSING_FAILED: 500,
    ErrorCode.INVALID_PRICE: 400,
    ErrorCode.MISSING_PRICE_ID: 400,
    ErrorCode.INVALID_PRICE_ID: 400,
    ErrorCode.SAME_PLAN: 400,
    ErrorCode.ALREADY_SUBSCRIBED: 400,
    ErrorCode.NO_ACTIVE_SUBSCRIPTION: 400,
    ErrorCode.STRIPE_CUSTOMER_NOT_FOUND: 400,
    ErrorCode.SUBSCRIPTION_MODIFIED: 409,
    ErrorCode.INVALID_SUBSCRIPTION_STATE: 500,
    ErrorCode.STRIPE_ERROR: 500,
}

# Plain HTTPExceptions raised by FastAPI or by services map back to a code by status
_STATUS_TO_CODE: Dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    402: ErrorCode.PAYMENT_REQUIRED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
}


class AppError(HTTPException):
    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(
            status_code=status_code or ERROR_STATUS_CODES.get(code, 500),
            detail=message,
            headers=headers,
        )


def code_for_status(status_code: int) -> ErrorCode:
    return _STATUS_TO_CODE.get(status_code, ErrorCode.INTERNAL_ERROR)


def error_body(code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code.value, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "error": error}


def success_body(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}

"""Request rate limiting: per-IP for public routes, per-token for authenticated routes."""

import hashlib
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.core.errors import ErrorCode, error_body

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Client IP behind Cloudflare or a reverse proxy, falling back to the socket peer."""
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def ip_rate_limit_key(request: Request) -> str:
    return f"ip:{get_client_ip(request)}"


def user_rate_limit_key(request: Request) -> str:
    auth_header = request.headers.get("authorization") or ""
    if auth_header.lower().startswith("bearer "):
        token = auth_header[7:]
        return "user:" + hashlib.sha256(token.encode()).hexdigest()[:32]
    return ip_rate_limit_key(request)


limiter = Limiter(
    key_func=ip_rate_limit_key,
    default_limits=[settings.rate_limit],
    enabled=not settings.is_test,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = 60
    limit = getattr(exc, "limit", None)
    if limit is not None:
        retry_after = int(limit.limit.get_expiry())
    logger.warning(f"Rate limit exceeded for {user_rate_limit_key(request)} on {request.url.path}")
    return JSONResponse(
        status_code=429,
        content=error_body(ErrorCode.RATE_LIMITED, "Too many requests", {"retryAfter": retry_after}),
        headers={"Retry-After": str(retry_after)},
    )

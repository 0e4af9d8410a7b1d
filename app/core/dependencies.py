"""
Core dependencies for authentication and billing state
"""

import hmac

from fastapi import Depends, Header, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.auth.service import AuthService
from app.modules.credits.service import CreditService
from app.config import settings
from app.core.errors import AppError, ErrorCode
from supabase import Client
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ACTIVE_STATUSES = ("active",)
DEFAULT_PAID_TIER = "hobby"


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_credit_service(supabase: Client = Depends(get_service_supabase)) -> CreditService:
    return CreditService(supabase)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from the Supabase JWT"""
    if credentials is None or not credentials.credentials:
        raise AppError(ErrorCode.UNAUTHORIZED, "Missing authorization header")
    return auth_service.get_current_user(credentials.credentials)


def resolve_user_tier(profile: Optional[Dict[str, Any]]) -> str:
    """Tier used for limits and model access: the plan key while active, free otherwise."""
    if not profile:
        return "free"
    if profile.get("subscription_status") in ACTIVE_STATUSES:
        return profile.get("subscription_tier") or DEFAULT_PAID_TIER
    return "free"


def get_current_profile(
    user_data: dict = Depends(get_current_user_id),
    credit_service: CreditService = Depends(get_credit_service)
) -> Dict[str, Any]:
    profile = credit_service.get_profile(user_data["id"])
    if not profile:
        logger.warning(f"No profile row for user {user_data['id']}")
        raise AppError(ErrorCode.NOT_FOUND, "Profile not found")
    return {**profile, "email": profile.get("email") or user_data.get("email")}


def _check_shared_secret(provided: Optional[str], expected: str, caller: str) -> None:
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        logger.error(f"Rejected {caller} request with an invalid or missing secret")
        raise AppError(ErrorCode.UNAUTHORIZED, "Unauthorized")


def verify_cron_secret(x_cron_secret: Optional[str] = Header(None)) -> None:
    """Scheduled sync jobs authenticate with the x-cron-secret header."""
    _check_shared_secret(x_cron_secret, settings.cron_secret, "cron")


def verify_internal_secret(x_internal_secret: Optional[str] = Header(None)) -> None:
    """The processing worker authenticates with the x-internal-secret header."""
    _check_shared_secret(x_internal_secret, settings.internal_api_secret, "internal")

from fastapi import APIRouter, Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse, ProfileResponse
)
from app.modules.auth.service import AuthService
from app.modules.credits.schemas import CreditBalance
from app.core.dependencies import get_auth_service, get_current_profile, resolve_user_tier
from app.core.errors import AppError, ErrorCode
from app.core.rate_limit import limiter, user_rate_limit_key
from app.config import settings
from typing import Dict, Optional

router = APIRouter(prefix="/auth", tags=["auth"])

security = HTTPBearer(auto_error=False)


def get_current_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    if credentials is None:
        raise AppError(ErrorCode.UNAUTHORIZED, "Missing authorization header")
    return credentials.credentials


@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit(settings.public_rate_limit)
async def register(
    request: Request,
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new user"""
    return service.register(register_data)


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.public_rate_limit)
async def login(
    request: Request,
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=ProfileResponse)
@limiter.limit(settings.user_rate_limit, key_func=user_rate_limit_key)
async def get_me(
    request: Request,
    profile: Dict = Depends(get_current_profile),
):
    """Current user with subscription state and credit balances (for the dashboard)."""
    balance = CreditBalance.from_profile(profile)
    return ProfileResponse(
        id=profile["id"],
        email=profile.get("email"),
        subscription_status=profile.get("subscription_status"),
        subscription_tier=profile.get("subscription_tier"),
        effective_tier=resolve_user_tier(profile),
        subscription_credits_balance=balance.subscription_credits,
        purchased_credits_balance=balance.purchased_credits,
        total_credits=balance.total_credits,
        low_credits=balance.low_credits,
    )

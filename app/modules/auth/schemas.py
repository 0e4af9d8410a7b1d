from pydantic import BaseModel, EmailStr
from typing import Optional


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    message: str


class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_tier: Optional[str] = None
    effective_tier: str = "free"
    subscription_credits_balance: int = 0
    purchased_credits_balance: int = 0
    total_credits: int = 0
    low_credits: bool = False

import hashlib
import logging
import time
from typing import Any, Dict, Optional

from supabase import Client

from app.core.errors import AppError, ErrorCode
from app.modules.auth.schemas import LoginRequest, RegisterRequest, TokenResponse, RegisterResponse

logger = logging.getLogger(__name__)

TOKEN_CACHE_TTL_SECONDS = 60
TOKEN_CACHE_MAX_ENTRIES = 500


class TokenCache:
    """Verified users keyed by the SHA-256 of their bearer token."""

    def __init__(self, ttl_seconds: int = TOKEN_CACHE_TTL_SECONDS, max_entries: int = TOKEN_CACHE_MAX_ENTRIES):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: Dict[str, tuple] = {}

    @staticmethod
    def key_for(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        key = self.key_for(token)
        entry = self._entries.get(key)
        if entry is None:
            return None
        user, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return user

    def put(self, token: str, user: Dict[str, Any]) -> None:
        if len(self._entries) >= self.max_entries:
            now = time.monotonic()
            self._entries = {k: v for k, v in self._entries.items() if v[1] > now}
            if len(self._entries) >= self.max_entries:
                return
        self._entries[self.key_for(token)] = (user, time.monotonic() + self.ttl_seconds)

    def discard(self, token: str) -> None:
        self._entries.pop(self.key_for(token), None)

    def clear(self) -> None:
        self._entries.clear()


token_cache = TokenCache()


def clear_auth_cache() -> None:
    token_cache.clear()


def _looks_like(error: Exception, *needles: str) -> bool:
    text = str(error).lower()
    return any(needle in text for needle in needles)


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Sign up through Supabase Auth. The profiles row (with its free credits) comes from a DB trigger."""
        metadata = {"full_name": register_data.full_name} if register_data.full_name else {}
        try:
            response = self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {"data": metadata},
            })
        except Exception as e:
            if _looks_like(e, "already registered", "already exists"):
                raise AppError(ErrorCode.INVALID_REQUEST, "An account with this email already exists")
            logger.error(f"Sign up failed for {register_data.email}: {e}")
            raise AppError(ErrorCode.INTERNAL_ERROR, "Registration failed")

        if not response.user:
            raise AppError(ErrorCode.INVALID_REQUEST, "Registration was not accepted")

        logger.info(f"Registered user {response.user.id}")
        return RegisterResponse(
            user_id=response.user.id,
            email=response.user.email or register_data.email,
            message="Check your inbox to confirm your email address",
        )

    def login(self, login_data: LoginRequest) -> TokenResponse:
        try:
            response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password,
            })
        except Exception as e:
            if _looks_like(e, "invalid", "credentials"):
                raise AppError(ErrorCode.UNAUTHORIZED, "Invalid email or password")
            logger.error(f"Sign in failed: {e}")
            raise AppError(ErrorCode.INTERNAL_ERROR, "Login failed")

        if not response.user or not response.session:
            raise AppError(ErrorCode.UNAUTHORIZED, "Invalid email or password")

        return TokenResponse(
            access_token=response.session.access_token,
            user_id=response.user.id,
            email=response.user.email or login_data.email,
        )

    def get_current_user(self, token: str) -> Dict[str, Any]:
        cached = token_cache.get(token)
        if cached is not None:
            return cached

        try:
            response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            logger.debug(f"Token verification failed: {e}")
            raise AppError(ErrorCode.UNAUTHORIZED, "Invalid or expired token")

        if not response or not response.user:
            raise AppError(ErrorCode.UNAUTHORIZED, "Invalid or expired token")

        user = {
            "id": response.user.id,
            "email": response.user.email,
            "user_metadata": response.user.user_metadata or {},
        }
        token_cache.put(token, user)
        return user

    def logout(self, token: str) -> bool:
        token_cache.discard(token)
        try:
            self.supabase.auth.sign_out()
        except Exception as e:
            logger.warning(f"Supabase sign out failed: {e}")
            return False
        return True

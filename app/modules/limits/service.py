"""
Per-tier processing limits backed by in-memory sliding-window counters.

Counters are process-local and approximate. They guard calls to the external inference
providers. They are not a billing record; credits are the billing record.
"""

import threading
import time
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel

from app.core.errors import AppError, ErrorCode

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60 * 60

# Max images in a single batch request
BATCH_LIMITS: Dict[str, int] = {
    "free": 1,
    "starter": 5,
    "hobby": 10,
    "pro": 50,
    "business": 500,
}

# Max images processed per sliding hour
HOURLY_PROCESSING_LIMITS: Dict[str, int] = {
    "free": 5,
    "starter": 20,
    "hobby": 40,
    "pro": 200,
    "business": 2000,
}


def get_batch_limit(tier: Optional[str]) -> int:
    """Tier keys are matched exactly; anything unknown gets the free limit."""
    return BATCH_LIMITS.get(tier, BATCH_LIMITS["free"]) if tier else BATCH_LIMITS["free"]


def get_hourly_processing_limit(tier: Optional[str]) -> int:
    if not tier:
        return HOURLY_PROCESSING_LIMITS["free"]
    return HOURLY_PROCESSING_LIMITS.get(tier, HOURLY_PROCESSING_LIMITS["free"])


class LimitCheckResult(BaseModel):
    allowed: bool
    current: int
    limit: int
    reset_at: datetime


class LimitUsage(BaseModel):
    current: int
    limit: int
    remaining: int


class SlidingWindowCounter:
    """Timestamps per key; a hit counts until it is older than the window."""

    def __init__(self, window_seconds: int = WINDOW_SECONDS, clock=time.time):
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._store: Dict[str, List[float]] = {}

    def _prune(self, key: str, now: float) -> List[float]:
        window_start = now - self.window_seconds
        timestamps = [ts for ts in self._store.get(key, []) if ts > window_start]
        if timestamps:
            self._store[key] = timestamps
        else:
            self._store.pop(key, None)
        return timestamps

    def check(self, key: str, limit: int) -> LimitCheckResult:
        now = self._clock()
        with self._lock:
            timestamps = self._prune(key, now)
        current = len(timestamps)
        oldest = timestamps[0] if timestamps else now
        reset_at = datetime.fromtimestamp(oldest + self.window_seconds, tz=timezone.utc)
        return LimitCheckResult(allowed=current < limit, current=current, limit=limit, reset_at=reset_at)

    def increment(self, key: str, count: int = 1) -> None:
        now = self._clock()
        with self._lock:
            timestamps = self._prune(key, now)
            timestamps.extend([now] * count)
            self._store[key] = timestamps

    def get_usage(self, key: str, limit: int) -> LimitUsage:
        now = self._clock()
        with self._lock:
            current = len(self._prune(key, now))
        return LimitUsage(current=current, limit=limit, remaining=max(0, limit - current))

    def cleanup(self) -> int:
        """Drop keys whose timestamps have all left the window. Returns how many were dropped."""
        now = self._clock()
        with self._lock:
            keys = list(self._store.keys())
            before = len(keys)
            for key in keys:
                self._prune(key, now)
            return before - len(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class BatchLimitService:
    def __init__(self, counter: Optional[SlidingWindowCounter] = None):
        self.counter = counter or SlidingWindowCounter()

    def check(self, user_id: str, tier: Optional[str]) -> LimitCheckResult:
        return self.counter.check(user_id, get_hourly_processing_limit(tier))

    def check_batch_size(self, tier: Optional[str], image_count: int) -> None:
        batch_limit = get_batch_limit(tier)
        if image_count > batch_limit:
            raise AppError(
                ErrorCode.BATCH_LIMIT_EXCEEDED,
                f"Batch of {image_count} images exceeds the {tier or 'free'} tier limit of {batch_limit}",
                details={"requested": image_count, "limit": batch_limit},
            )

    def enforce(self, user_id: str, tier: Optional[str], image_count: int = 1) -> LimitCheckResult:
        """Raise unless the user can process image_count more images within the current hour."""
        self.check_batch_size(tier, image_count)
        result = self.check(user_id, tier)
        if result.current + image_count > result.limit:
            raise AppError(
                ErrorCode.BATCH_LIMIT_EXCEEDED,
                f"Hourly processing limit reached ({result.current}/{result.limit})",
                details={
                    "current": result.current,
                    "limit": result.limit,
                    "reset_at": result.reset_at.isoformat(),
                },
                headers={"Retry-After": str(max(1, int((result.reset_at - datetime.now(timezone.utc)).total_seconds())))},
            )
        return result

    def increment(self, user_id: str, image_count: int = 1) -> None:
        self.counter.increment(user_id, image_count)

    def get_usage(self, user_id: str, tier: Optional[str]) -> LimitUsage:
        return self.counter.get_usage(user_id, get_hourly_processing_limit(tier))

    def cleanup(self) -> int:
        return self.counter.cleanup()

    def reset(self) -> None:
        self.counter.clear()


batch_limit_service = BatchLimitService()

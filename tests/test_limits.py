import pytest

from app.core.errors import AppError, ErrorCode
from app.modules.limits.service import (
    BatchLimitService,
    SlidingWindowCounter,
    get_batch_limit,
    get_hourly_processing_limit,
)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return BatchLimitService(SlidingWindowCounter(window_seconds=3600, clock=clock))


def test_tier_limits():
    assert get_batch_limit("free") == 1
    assert get_batch_limit("starter") == 5
    assert get_batch_limit("pro") == 50
    assert get_batch_limit(None) == 1
    assert get_batch_limit("Pro") == 1
    assert get_hourly_processing_limit("hobby") == 40
    assert get_hourly_processing_limit("business") == 2000
    assert get_hourly_processing_limit("enterprise") == 5


def test_counter_slides(clock):
    counter = SlidingWindowCounter(window_seconds=60, clock=clock)
    counter.increment("u1", 3)
    clock.advance(30)
    counter.increment("u1")
    assert counter.check("u1", 10).current == 4

    clock.advance(31)
    result = counter.check("u1", 10)
    assert result.current == 1
    assert result.allowed


def test_counter_reset_at_is_oldest_plus_window(clock):
    counter = SlidingWindowCounter(window_seconds=60, clock=clock)
    start = clock.now
    counter.increment("u1")
    clock.advance(10)
    counter.increment("u1")
    assert counter.check("u1", 5).reset_at.timestamp() == start + 60


def test_counter_cleanup_drops_expired_keys(clock):
    counter = SlidingWindowCounter(window_seconds=60, clock=clock)
    counter.increment("old")
    clock.advance(45)
    counter.increment("fresh")
    clock.advance(20)
    assert counter.cleanup() == 1
    assert len(counter) == 1
    assert counter.check("fresh", 5).current == 1


def test_enforce_allows_until_hourly_limit(service):
    for _ in range(5):
        service.enforce("user", "free", 1)
        service.increment("user", 1)
    with pytest.raises(AppError) as exc_info:
        service.enforce("user", "free", 1)
    error = exc_info.value
    assert error.code == ErrorCode.BATCH_LIMIT_EXCEEDED
    assert error.status_code == 429
    assert error.details["current"] == 5
    assert error.details["limit"] == 5
    assert "Retry-After" in error.headers


def test_enforce_counts_the_whole_batch(service):
    service.increment("user", 35)
    service.enforce("user", "hobby", 5)
    with pytest.raises(AppError):
        service.enforce("user", "hobby", 6)


def test_batch_size_over_tier_limit(service):
    with pytest.raises(AppError) as exc_info:
        service.enforce("user", "starter", 6)
    assert exc_info.value.details == {"requested": 6, "limit": 5}


def test_usage_resets_after_an_hour(service, clock):
    service.increment("user", 40)
    assert service.get_usage("user", "hobby").remaining == 0
    clock.advance(3601)
    usage = service.get_usage("user", "hobby")
    assert usage.current == 0
    assert usage.remaining == 40


def test_users_are_counted_separately(service):
    service.increment("a", 5)
    assert service.check("b", "free").current == 0
    service.reset()
    assert service.check("a", "free").current == 0

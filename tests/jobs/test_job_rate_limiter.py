"""Tests for JobRateLimiter - per-queue rolling window."""

import pytest

from core.models import JobType
from jobs.rate_limiter import JobRateLimiter, RateLimitedError


@pytest.fixture
def config():
    """Low limit on the register queue for faster tests."""
    from core.config import ProvisioningConfig, QueuePolicy

    return ProvisioningConfig(queues={
        JobType.REGISTER_DOMAIN: QueuePolicy(rate_limit_max=3, rate_limit_window_seconds=60),
    })


@pytest.fixture
def rate_limiter(valkey, config):
    return JobRateLimiter(valkey, config)


class TestCheckRateLimit:

    def test_within_limit_passes(self, rate_limiter):
        for _ in range(3):
            rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1000.0)

    def test_exceeds_limit_raises(self, rate_limiter):
        for _ in range(3):
            rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1000.0)

        with pytest.raises(RateLimitedError) as exc_info:
            rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1010.0)

        assert exc_info.value.job_type == JobType.REGISTER_DOMAIN
        assert exc_info.value.retry_after_seconds == 50

    def test_denied_start_does_not_use_window(self, rate_limiter):
        """A throttled start leaves the window as it was."""
        for _ in range(3):
            rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1000.0)
        for _ in range(5):
            with pytest.raises(RateLimitedError):
                rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1001.0)

        assert rate_limiter.get_remaining(JobType.REGISTER_DOMAIN, now=1001.0) == 0
        rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1061.0)

    def test_window_rolls(self, rate_limiter):
        for _ in range(3):
            rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1000.0)

        rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1061.0)

    def test_queues_tracked_separately(self, rate_limiter):
        for _ in range(3):
            rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1000.0)

        rate_limiter.check_rate_limit(JobType.UPDATE_DNS, now=1000.0)


class TestRemainingAndReset:

    def test_get_remaining(self, rate_limiter):
        assert rate_limiter.get_remaining(JobType.REGISTER_DOMAIN, now=1000.0) == 3
        rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1000.0)
        assert rate_limiter.get_remaining(JobType.REGISTER_DOMAIN, now=1000.0) == 2

    def test_reset_clears_window(self, rate_limiter):
        for _ in range(3):
            rate_limiter.check_rate_limit(JobType.REGISTER_DOMAIN, now=1000.0)

        rate_limiter.reset(JobType.REGISTER_DOMAIN)

        assert rate_limiter.get_remaining(JobType.REGISTER_DOMAIN, now=1000.0) == 3

"""Job queue and throttling for provisioning work."""

from jobs.queue import JobQueue
from jobs.rate_limiter import JobRateLimiter, RateLimitedError

__all__ = ["JobQueue", "JobRateLimiter", "RateLimitedError"]

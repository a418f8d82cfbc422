"""Per-queue throttling of job starts.

Uses a Valkey sorted set as a rolling window: each started job adds a
member stamped with the current time, members older than the window are
dropped, and the remaining count is compared against the queue's limit.
A denied start removes its own member so it does not use up the window.
"""

import time
from uuid import uuid4

from clients.valkey_client import ValkeyClient
from core.config import ProvisioningConfig
from core.models import JobType


class RateLimitedError(Exception):
    """Queue is at its limit. Worker should wait before claiming again."""

    def __init__(self, job_type: JobType, retry_after_seconds: int):
        self.job_type = job_type
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"{job_type.value} rate limited. Retry after {retry_after_seconds} seconds.")


class JobRateLimiter:
    """Rolling-window rate limiting for job queues using Valkey."""

    KEY_PREFIX = "ratelimit:jobs:"

    def __init__(self, valkey: ValkeyClient, config: ProvisioningConfig):
        self._valkey = valkey
        self._config = config

    def _key(self, job_type: JobType) -> str:
        return f"{self.KEY_PREFIX}{job_type.value}"

    def check_rate_limit(self, job_type: JobType, now: float | None = None) -> None:
        """Record one job start.

        Raises:
            RateLimitedError: If the window is already full.
        """
        policy = self._config.policy(job_type)
        now = time.time() if now is None else now
        key = self._key(job_type)
        member = uuid4().hex

        count = self._valkey.sliding_window_add(key, member, now, policy.rate_limit_window_seconds)

        if count > policy.rate_limit_max:
            self._valkey.zrem(key, member)
            oldest = self._valkey.zrange_by_score(key, "-inf", "+inf", limit=1)
            retry_after = policy.rate_limit_window_seconds
            if oldest:
                started = self._valkey.zscore(key, oldest[0]) or now
                retry_after = int(started + policy.rate_limit_window_seconds - now)
            raise RateLimitedError(job_type, retry_after_seconds=max(retry_after, 1))

    def reset(self, job_type: JobType) -> None:
        self._valkey.delete(self._key(job_type))

    def get_remaining(self, job_type: JobType, now: float | None = None) -> int:
        """Job starts left in the current window."""
        policy = self._config.policy(job_type)
        now = time.time() if now is None else now
        in_window = self._valkey.zrange_by_score(
            self._key(job_type), now - policy.rate_limit_window_seconds, "+inf"
        )
        return max(policy.rate_limit_max - len(in_window), 0)

"""Provisioning configuration.

Durations are in seconds for queue settings and in days/hours for sweep
thresholds, matching how each is usually reasoned about.
"""

from typing import Literal

from pydantic import BaseModel, Field

from core.models.job import JobType


class QueuePolicy(BaseModel):
    """Retry, concurrency and throttling policy for one job type."""

    max_attempts: int = Field(default=3, description="Attempts before the job is terminal", ge=1, le=20)
    backoff: Literal["exponential", "fixed"] = Field(
        default="exponential",
        description="exponential: delay * 2^(attempt-1); fixed: delay every time",
    )
    backoff_delay_seconds: int = Field(default=5, description="Base retry delay", ge=1)
    concurrency: int = Field(default=3, description="Worker threads for this queue", ge=1, le=64)
    rate_limit_max: int = Field(default=10, description="Max jobs started per window", ge=1)
    rate_limit_window_seconds: int = Field(default=60, description="Rate limit window", ge=1)
    default_priority: int = Field(default=5, description="1 runs first", ge=1, le=10)
    completed_retention_seconds: int = Field(default=86400, description="Keep completed job records", ge=60)
    failed_retention_seconds: int = Field(default=604800, description="Keep failed job records", ge=60)

    def retry_delay_seconds(self, attempt: int) -> int:
        """Delay before the next try, after `attempt` attempts have failed."""
        if self.backoff == "fixed":
            return self.backoff_delay_seconds
        return self.backoff_delay_seconds * 2 ** (max(attempt, 1) - 1)


def _default_queue_policies() -> dict[JobType, QueuePolicy]:
    return {
        JobType.REGISTER_DOMAIN: QueuePolicy(
            max_attempts=3, backoff="exponential", backoff_delay_seconds=5,
            concurrency=3, rate_limit_max=10,
        ),
        JobType.RENEW_DOMAIN: QueuePolicy(
            max_attempts=3, backoff="exponential", backoff_delay_seconds=10,
            concurrency=2, rate_limit_max=5,
        ),
        JobType.UPDATE_DNS: QueuePolicy(
            max_attempts=5, backoff="exponential", backoff_delay_seconds=3,
            concurrency=5, rate_limit_max=30,
        ),
        JobType.CHECK_TRANSFER_STATUS: QueuePolicy(
            max_attempts=2, backoff="fixed", backoff_delay_seconds=30,
            concurrency=3, rate_limit_max=10,
        ),
        JobType.INITIATE_TRANSFER: QueuePolicy(
            max_attempts=3, backoff="fixed", backoff_delay_seconds=30,
            concurrency=2, rate_limit_max=10,
        ),
        JobType.SEND_NOTIFICATION: QueuePolicy(
            max_attempts=5, backoff="exponential", backoff_delay_seconds=2,
            concurrency=10, rate_limit_max=100,
        ),
    }


class SweepConfig(BaseModel):
    """Thresholds and run intervals for the scheduled sweeps."""

    # Expiry
    expiry_reminder_days: list[int] = Field(
        default=[30, 7, 1],
        description="Days-before-expiry windows that trigger a reminder",
    )
    expiry_reminder_cooldown_hours: int = Field(default=23, ge=1)

    # Auto-renewal
    auto_renew_horizon_days: int = Field(default=7, description="Renew domains expiring within", ge=1)
    auto_renew_max_attempts: int = Field(default=3, ge=1)

    # Transfers
    transfer_check_interval_minutes: int = Field(default=60, ge=1)
    transfer_stalled_after_days: int = Field(default=14, ge=1)
    transfer_failed_after_days: int = Field(default=30, ge=1)

    # Payments
    invoice_due_soon_days: int = Field(default=3, ge=0)
    payment_reminder_cooldown_hours: int = Field(default=24, ge=1)
    suspend_after_days_overdue: int = Field(default=7, ge=1)
    terminate_after_days_overdue: int = Field(default=30, ge=1)

    # Run intervals (seconds)
    expiry_interval_seconds: int = Field(default=86400, ge=60)
    auto_renew_interval_seconds: int = Field(default=86400, ge=60)
    transfer_interval_seconds: int = Field(default=3600, ge=60)
    payment_reminder_interval_seconds: int = Field(default=86400, ge=60)
    suspension_interval_seconds: int = Field(default=21600, ge=60)
    termination_interval_seconds: int = Field(default=86400, ge=60)


class ProvisioningConfig(BaseModel):
    """Top-level tunables for checkout, billing, queues and sweeps."""

    queues: dict[JobType, QueuePolicy] = Field(default_factory=_default_queue_policies)
    sweeps: SweepConfig = Field(default_factory=SweepConfig)

    external_call_timeout_seconds: int = Field(
        default=30,
        description="Timeout applied to every registrar and gateway call",
        ge=1,
        le=300,
    )
    job_lease_seconds: int = Field(
        default=300,
        description="How long a worker may hold a job before it is reclaimed",
        ge=30,
    )
    cart_ttl_seconds: int = Field(
        default=7 * 86400,
        description="Idle carts expire after this long",
        ge=60,
    )
    default_due_days: int = Field(default=7, description="Invoice due date offset", ge=0)
    tax_rate_bps: int = Field(default=0, description="Basis points: 1000 = 10%", ge=0, le=10000)
    currency: str = Field(default="USD", min_length=3, max_length=3)

    def policy(self, job_type: JobType) -> QueuePolicy:
        return self.queues.get(job_type) or QueuePolicy()

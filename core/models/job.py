"""Job queue models.

A JobRecord is owned by the queue and references its target entity by id.
Each job type has its own payload model; workers validate the payload
against it before doing anything else.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.domain import DnsRecord


class JobType(str, Enum):
    """Operation type. Each one is a separate queue."""

    REGISTER_DOMAIN = "register-domain"
    RENEW_DOMAIN = "renew-domain"
    CHECK_TRANSFER_STATUS = "check-transfer-status"
    INITIATE_TRANSFER = "initiate-transfer"
    UPDATE_DNS = "update-dns"
    SEND_NOTIFICATION = "send-notification"


class JobState(str, Enum):
    """Job delivery state."""

    PENDING = "pending"      # Waiting for its run time
    ACTIVE = "active"        # Leased by a worker
    COMPLETED = "completed"
    FAILED = "failed"        # Attempts exhausted

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobRecord(BaseModel):
    """A job as stored in the queue."""

    id: str
    job_type: JobType
    target_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(5, ge=1, le=10)  # 1 runs first
    state: JobState = JobState.PENDING
    attempts: int = 0
    max_attempts: int = Field(3, ge=1)
    idempotency_key: str | None = None
    run_at: datetime
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime
    finished_at: datetime | None = None

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.attempts)


# =============================================================================
# PAYLOADS
# =============================================================================


class RegisterDomainPayload(BaseModel):
    domain_id: UUID
    order_id: UUID | None = None


class RenewDomainPayload(BaseModel):
    domain_id: UUID
    years: int = Field(1, ge=1, le=10)
    invoice_id: UUID | None = None
    auto_triggered: bool = False


class CheckTransferPayload(BaseModel):
    domain_id: UUID


class InitiateTransferPayload(BaseModel):
    domain_id: UUID
    order_id: UUID | None = None


class UpsertDnsChange(BaseModel):
    operation: Literal["upsert"] = "upsert"
    record: DnsRecord


class DeleteDnsChange(BaseModel):
    operation: Literal["delete"] = "delete"
    record_type: str
    name: str


class BulkDnsChange(BaseModel):
    operation: Literal["bulk"] = "bulk"
    records: list[DnsRecord] = Field(..., min_length=1)


DnsChange = Annotated[
    Union[UpsertDnsChange, DeleteDnsChange, BulkDnsChange],
    Field(discriminator="operation"),
]


class UpdateDnsPayload(BaseModel):
    domain_id: UUID
    change: DnsChange


class NotificationPayload(BaseModel):
    recipient_id: str
    event_type: str
    data: dict[str, Any] = Field(default_factory=dict)

"""Domain name models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class DomainStatus(str, Enum):
    """Domain lifecycle status. Transitions live in core.lifecycle."""

    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    PENDING_TRANSFER = "pending_transfer"
    TRANSFER_INITIATED = "transfer_initiated"
    TRANSFER_FAILED = "transfer_failed"
    FAILED = "failed"

    @property
    def is_transferring(self) -> bool:
        return self in (DomainStatus.PENDING_TRANSFER, DomainStatus.TRANSFER_INITIATED)


class DnsRecord(BaseModel):
    """A single DNS record as the registrar stores it."""

    type: str = Field(..., pattern="^(A|AAAA|CNAME|MX|TXT|NS|SRV)$")
    name: str = Field(..., min_length=1)
    data: str = Field(..., min_length=1)
    ttl: int = Field(3600, ge=60)
    priority: int = Field(0, ge=0)


class Domain(BaseModel):
    """Full domain entity as stored."""

    id: UUID
    client_id: UUID
    order_id: UUID | None = None
    domain_name: str
    tld: str
    registrar: str = "godaddy"
    status: DomainStatus
    years: int = Field(1, ge=1, le=10)

    registered_at: datetime | None = None
    expires_at: datetime | None = None
    last_renewed_at: datetime | None = None

    auto_renew: bool = True
    auto_renew_attempts: int = Field(0, ge=0)
    privacy_protection: bool = True
    nameservers: list[str] = Field(default_factory=list)
    registrar_order_id: str | None = None

    last_expiry_reminder_at: datetime | None = None
    last_dns_update_at: datetime | None = None

    # Transfer metadata
    auth_code: str | None = None
    transfer_status: str | None = None  # Last status reported by the registrar
    transfer_last_checked_at: datetime | None = None
    transfer_stalled: bool = False
    transfer_failure_reason: str | None = None

    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def days_until_expiry(self) -> int | None:
        if self.expires_at is None:
            return None
        return (self.expires_at - now_utc()).days

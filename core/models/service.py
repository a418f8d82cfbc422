"""Subscription service models (hosting, VPS)."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.line_item import BillingCycle, LineItemKind


class ServiceStatus(str, Enum):
    """Service lifecycle status."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class Service(BaseModel):
    """Full service entity as stored."""

    id: UUID
    client_id: UUID
    order_id: UUID | None = None
    product_id: str
    kind: LineItemKind
    billing_cycle: BillingCycle
    price_cents: int = Field(..., ge=0)
    status: ServiceStatus
    activated_at: datetime | None = None
    next_due_at: datetime | None = None
    next_invoice_id: UUID | None = None
    suspended_at: datetime | None = None
    suspension_reason: str | None = None
    terminated_at: datetime | None = None
    termination_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

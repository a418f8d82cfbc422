"""Invoice domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents. Totals are derived from items by core.invoicing,
never set directly.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.line_item import LineItemKind


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def is_open(self) -> bool:
        """Still expecting money."""
        return self in (
            InvoiceStatus.UNPAID,
            InvoiceStatus.PARTIALLY_PAID,
            InvoiceStatus.OVERDUE,
        )


class InvoiceItem(BaseModel):
    """A billed line. Mirrors an order line item, or is entered by an admin."""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(1, ge=1)
    unit_price_cents: int = Field(..., ge=0)
    kind: LineItemKind | None = None
    reference_id: UUID | None = None

    @property
    def amount_cents(self) -> int:
        return self.unit_price_cents * self.quantity


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    invoice_number: str
    client_id: UUID
    order_id: UUID | None = None
    service_id: UUID | None = None
    items: list[InvoiceItem]
    subtotal_cents: int = 0
    discount_cents: int = Field(0, ge=0)
    credit_cents: int = Field(0, ge=0)
    tax_cents: int = Field(0, ge=0)
    total_cents: int = 0
    paid_cents: int = 0
    refunded_cents: int = 0
    currency: str = "USD"
    status: InvoiceStatus
    due_at: datetime
    paid_at: datetime | None = None
    paid_via_credit: bool = False
    applied_transaction_ids: list[str] = Field(default_factory=list)
    reminders_sent: int = 0
    last_reminder_at: datetime | None = None
    cancelled_at: datetime | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def balance_due_cents(self) -> int:
        """Remaining amount to be paid in cents."""
        return max(0, self.total_cents - self.paid_cents)

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

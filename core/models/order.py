"""Order domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.line_item import LineItem


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    """How an order or invoice is paid."""

    WALLET = "wallet"
    RAZORPAY = "razorpay"
    STRIPE = "stripe"

    @property
    def is_gateway(self) -> bool:
        return self != PaymentMethod.WALLET


class BillingDetails(BaseModel):
    """Registrant / billing contact captured at checkout."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    phone: str = "+1.0000000000"
    organization: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    country: str = Field("US", min_length=2, max_length=2)
    postal_code: str = ""


class Order(BaseModel):
    """Full order entity as stored."""

    id: UUID
    order_number: str
    client_id: UUID
    items: list[LineItem]
    subtotal_cents: int = Field(..., ge=0)
    discount_cents: int = Field(0, ge=0)
    tax_cents: int = Field(0, ge=0)
    total_cents: int = Field(..., ge=0)
    currency: str = "USD"
    status: OrderStatus
    payment_method: PaymentMethod
    billing_details: BillingDetails
    invoice_id: UUID | None = None
    gateway_order_id: str | None = None
    paid_cents: int = 0
    paid_at: datetime | None = None
    completed_at: datetime | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_paid(self) -> bool:
        return self.status in (OrderStatus.PAID, OrderStatus.COMPLETED)


class OrderSummary(BaseModel):
    """What checkout returns to the caller."""

    order_id: UUID
    order_number: str
    invoice_id: UUID
    invoice_number: str
    status: OrderStatus
    payment_method: PaymentMethod
    total_cents: int
    domain_ids: list[UUID] = Field(default_factory=list)
    service_ids: list[UUID] = Field(default_factory=list)
    wallet_balance_cents: int | None = None

"""Ledger transaction and wallet models.

Transactions are append-only. After a status of success or failed is
recorded, the only permitted change is adding to refunded_cents.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.order import PaymentMethod


class TransactionType(str, Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    CREDIT = "credit"  # Wallet top-up or admin credit
    DEBIT = "debit"    # Admin wallet debit


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class Transaction(BaseModel):
    """Full transaction entity as stored."""

    id: UUID
    transaction_number: str
    client_id: UUID
    type: TransactionType
    gateway: PaymentMethod
    amount_cents: int = Field(..., gt=0)
    currency: str = "USD"
    status: TransactionStatus
    invoice_id: UUID | None = None
    order_id: UUID | None = None
    original_transaction_id: UUID | None = None  # Refunds point at the payment
    gateway_payment_id: str | None = None
    gateway_refund_id: str | None = None
    refunded_cents: int = 0
    description: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @property
    def refundable_cents(self) -> int:
        return self.amount_cents - self.refunded_cents


class Wallet(BaseModel):
    """Per-client prepaid balance."""

    client_id: UUID
    balance_cents: int = Field(0, ge=0)
    currency: str = "USD"
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

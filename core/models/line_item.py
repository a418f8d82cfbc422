"""Line item models shared by carts, orders and invoices.

All prices are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents. For domain kinds the unit price covers the whole
purchased period (`years`), not a single year.
"""

from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator


class LineItemKind(str, Enum):
    """What a line item provisions."""

    DOMAIN_REGISTRATION = "domain_registration"
    DOMAIN_RENEWAL = "domain_renewal"
    DOMAIN_TRANSFER = "domain_transfer"
    HOSTING = "hosting"
    VPS = "vps"

    @property
    def is_domain(self) -> bool:
        return self in (
            LineItemKind.DOMAIN_REGISTRATION,
            LineItemKind.DOMAIN_RENEWAL,
            LineItemKind.DOMAIN_TRANSFER,
        )

    @property
    def is_subscription(self) -> bool:
        return self in (LineItemKind.HOSTING, LineItemKind.VPS)


class BillingCycle(str, Enum):
    """Subscription billing period."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUALLY = "semi_annually"
    ANNUALLY = "annually"

    @property
    def days(self) -> int:
        return {
            BillingCycle.MONTHLY: 30,
            BillingCycle.QUARTERLY: 90,
            BillingCycle.SEMI_ANNUALLY: 180,
            BillingCycle.ANNUALLY: 365,
        }[self]


class LineItem(BaseModel):
    """One purchasable item in a cart or order."""

    id: UUID = Field(default_factory=uuid4)
    kind: LineItemKind
    description: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(1, ge=1)
    unit_price_cents: int = Field(..., ge=0)

    # Domain kinds
    domain_name: str | None = Field(None, max_length=253)
    years: int = Field(1, ge=1, le=10)
    auth_code: str | None = None
    nameservers: list[str] = Field(default_factory=list)
    privacy_protection: bool = True
    auto_renew: bool = True
    domain_id: UUID | None = None  # Existing domain, renewals only

    # Subscription kinds
    product_id: str | None = None
    billing_cycle: BillingCycle | None = None

    # Set at checkout: the Domain or Service this item created or renews
    reference_id: UUID | None = None

    @model_validator(mode="after")
    def validate_kind_fields(self) -> "LineItem":
        """Each kind carries the fields its provisioning step needs."""
        if self.kind.is_domain and not self.domain_name:
            raise ValueError(f"{self.kind.value} requires domain_name")
        if self.kind == LineItemKind.DOMAIN_RENEWAL and self.domain_id is None:
            raise ValueError("domain_renewal requires domain_id")
        if self.kind == LineItemKind.DOMAIN_TRANSFER and not self.auth_code:
            raise ValueError("domain_transfer requires auth_code")
        if self.kind.is_subscription:
            if not self.product_id:
                raise ValueError(f"{self.kind.value} requires product_id")
            if self.billing_cycle is None:
                raise ValueError(f"{self.kind.value} requires billing_cycle")
        if self.domain_name:
            self.domain_name = self.domain_name.strip().lower()
        return self

    @property
    def total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @property
    def tld(self) -> str | None:
        if not self.domain_name or "." not in self.domain_name:
            return None
        return self.domain_name.split(".", 1)[1]

"""
Domain events for provisioning and billing.

Immutable event objects that represent committed state changes. Services,
workers and sweeps publish what happened (always after the atomic unit
commits, via the outbox) and handlers react without the publisher knowing
who's listening.

Event Categories:
- OrderEvent: Order lifecycle (placed, paid)
- DomainEvent: Domain lifecycle (registration, renewal, expiry, transfer, DNS)
- InvoiceEvent: Invoice lifecycle (paid, reminder)
- ServiceEvent: Service lifecycle (suspended, terminated)
- WalletEvent: Wallet movements (adjusted, refund)

Events carry the full domain object so handlers don't need to re-fetch state.
Each category names its subject (the entity carried) and the client the
event concerns, which is who notifications go to.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class ProvisioningEvent:
    """Base class for all provisioning domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)

    @property
    def subject(self) -> Any:
        """Entity the event is about; None for events without one."""
        return None

    @property
    def recipient_id(self) -> UUID | None:
        return getattr(self.subject, "client_id", None)


# =============================================================================
# ORDER EVENTS
# =============================================================================


@dataclass(frozen=True)
class OrderEvent(ProvisioningEvent):
    """Events related to order lifecycle."""
    order: Any = None  # Order; Any avoids a circular import

    @property
    def subject(self) -> Any:
        return self.order


@dataclass(frozen=True)
class OrderPlaced(OrderEvent):
    """Checkout committed an order (paid or awaiting payment)."""
    invoice: Any = None

    @classmethod
    def create(cls, order: Any, invoice: Any) -> "OrderPlaced":
        return cls(order=order, invoice=invoice)


@dataclass(frozen=True)
class OrderPaid(OrderEvent):
    """Order moved to paid."""

    @classmethod
    def create(cls, order: Any) -> "OrderPaid":
        return cls(order=order)


# =============================================================================
# DOMAIN EVENTS
# =============================================================================


@dataclass(frozen=True)
class DomainEvent(ProvisioningEvent):
    """Events related to domain lifecycle."""
    domain: Any = None

    @property
    def subject(self) -> Any:
        return self.domain


@dataclass(frozen=True)
class DomainRegistered(DomainEvent):
    """Registrar accepted the registration; domain is active."""

    @classmethod
    def create(cls, domain: Any) -> "DomainRegistered":
        return cls(domain=domain)


@dataclass(frozen=True)
class DomainRegistrationFailed(DomainEvent):
    """Registration attempts exhausted; domain is failed."""
    reason: str | None = None

    @classmethod
    def create(cls, domain: Any, reason: str | None) -> "DomainRegistrationFailed":
        return cls(domain=domain, reason=reason)


@dataclass(frozen=True)
class DomainRenewed(DomainEvent):
    """Renewal succeeded; expiry extended."""
    years: int = 1

    @classmethod
    def create(cls, domain: Any, years: int) -> "DomainRenewed":
        return cls(domain=domain, years=years)


@dataclass(frozen=True)
class DomainRenewalFailed(DomainEvent):
    """Renewal attempts exhausted."""
    reason: str | None = None

    @classmethod
    def create(cls, domain: Any, reason: str | None) -> "DomainRenewalFailed":
        return cls(domain=domain, reason=reason)


@dataclass(frozen=True)
class DomainExpiring(DomainEvent):
    """Domain entered a reminder window."""
    days_left: int = 0

    @classmethod
    def create(cls, domain: Any, days_left: int) -> "DomainExpiring":
        return cls(domain=domain, days_left=days_left)


@dataclass(frozen=True)
class DomainExpired(DomainEvent):
    """Domain passed its expiry date without renewal."""

    @classmethod
    def create(cls, domain: Any) -> "DomainExpired":
        return cls(domain=domain)


@dataclass(frozen=True)
class AutoRenewFailed(DomainEvent):
    """An auto-renewal attempt could not be charged or completed."""
    reason: str | None = None
    disabled: bool = False  # auto_renew was switched off by this failure

    @classmethod
    def create(cls, domain: Any, reason: str | None, disabled: bool) -> "AutoRenewFailed":
        return cls(domain=domain, reason=reason, disabled=disabled)


@dataclass(frozen=True)
class TransferCompleted(DomainEvent):
    """Inbound transfer finished; domain is active."""

    @classmethod
    def create(cls, domain: Any) -> "TransferCompleted":
        return cls(domain=domain)


@dataclass(frozen=True)
class TransferFailed(DomainEvent):
    """Inbound transfer failed, was cancelled, or timed out."""
    reason: str | None = None

    @classmethod
    def create(cls, domain: Any, reason: str | None) -> "TransferFailed":
        return cls(domain=domain, reason=reason)


@dataclass(frozen=True)
class DnsUpdateFailed(DomainEvent):
    """DNS change attempts exhausted."""
    reason: str | None = None

    @classmethod
    def create(cls, domain: Any, reason: str | None) -> "DnsUpdateFailed":
        return cls(domain=domain, reason=reason)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(ProvisioningEvent):
    """Events related to invoice lifecycle."""
    invoice: Any = None

    @property
    def subject(self) -> Any:
        return self.invoice


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Invoice was fully paid."""

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceReminder(InvoiceEvent):
    """Invoice is overdue or due soon."""
    overdue: bool = False
    days: int = 0  # Days overdue, or days until due

    @classmethod
    def create(cls, invoice: Any, overdue: bool, days: int) -> "InvoiceReminder":
        return cls(invoice=invoice, overdue=overdue, days=days)


# =============================================================================
# SERVICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class ServiceEvent(ProvisioningEvent):
    """Events related to subscription service lifecycle."""
    service: Any = None

    @property
    def subject(self) -> Any:
        return self.service


@dataclass(frozen=True)
class ServiceSuspended(ServiceEvent):

    @classmethod
    def create(cls, service: Any) -> "ServiceSuspended":
        return cls(service=service)


@dataclass(frozen=True)
class ServiceTerminated(ServiceEvent):

    @classmethod
    def create(cls, service: Any) -> "ServiceTerminated":
        return cls(service=service)


# =============================================================================
# WALLET EVENTS
# =============================================================================


@dataclass(frozen=True)
class WalletEvent(ProvisioningEvent):
    """Events related to wallet and refund movements."""
    transaction: Any = None

    @property
    def subject(self) -> Any:
        return self.transaction


@dataclass(frozen=True)
class WalletAdjusted(WalletEvent):
    """Wallet credited or debited (admin adjustment or top-up)."""
    balance_cents: int = 0

    @classmethod
    def create(cls, transaction: Any, balance_cents: int) -> "WalletAdjusted":
        return cls(transaction=transaction, balance_cents=balance_cents)


@dataclass(frozen=True)
class RefundProcessed(WalletEvent):
    """A refund transaction was recorded."""

    @classmethod
    def create(cls, transaction: Any) -> "RefundProcessed":
        return cls(transaction=transaction)

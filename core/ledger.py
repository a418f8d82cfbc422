"""
Ledger store port.

The ledger store is the only mutation path for financial and domain-status
fields. Every multi-entity write happens inside `unit_of_work()`:

    with store.unit_of_work() as unit:
        wallet = unit.get_wallet(client_id, for_update=True)
        ...
        unit.save_wallet(wallet)
        unit.save_transaction(txn)
        unit.outbox.add("enqueue register-domain", enqueue)
    # committed here; outbox steps run after the commit

Reads made with for_update=True lock the row until the unit ends.
An exception inside the block rolls back every write and discards the
outbox.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator
from uuid import UUID

from core.audit import AuditEntry, AuditLogger
from core.models import Domain, Invoice, Order, PaymentMethod, Service, Transaction, Wallet
from core.outbox import Outbox
from utils.timezone import now_utc


class LedgerUnit(ABC):
    """One atomic unit of reads and writes against the ledger."""

    def __init__(self, outbox: Outbox):
        self.outbox = outbox
        self.audit = AuditLogger(self)

    # Orders

    @abstractmethod
    def get_order(self, order_id: UUID, for_update: bool = False) -> Order | None: ...

    @abstractmethod
    def save_order(self, order: Order) -> None: ...

    # Invoices

    @abstractmethod
    def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None: ...

    @abstractmethod
    def save_invoice(self, invoice: Invoice) -> None: ...

    @abstractmethod
    def find_paid_renewal_invoice(self, domain_id: UUID) -> Invoice | None:
        """Most recently paid invoice without an order that bills a renewal of this domain."""

    # Domains

    @abstractmethod
    def get_domain(self, domain_id: UUID, for_update: bool = False) -> Domain | None: ...

    @abstractmethod
    def save_domain(self, domain: Domain) -> None: ...

    @abstractmethod
    def domain_name_exists(self, domain_name: str) -> bool:
        """True if any domain record, in any status, holds this name."""

    @abstractmethod
    def list_domains_for_order(self, order_id: UUID) -> list[Domain]: ...

    # Services

    @abstractmethod
    def get_service(self, service_id: UUID, for_update: bool = False) -> Service | None: ...

    @abstractmethod
    def save_service(self, service: Service) -> None: ...

    @abstractmethod
    def list_services_for_order(self, order_id: UUID) -> list[Service]: ...

    @abstractmethod
    def list_services_for_invoice(self, invoice: Invoice) -> list[Service]:
        """Services billed by this invoice: same order, next_invoice_id, or service_id link."""

    # Transactions and wallets

    @abstractmethod
    def get_transaction(self, transaction_id: UUID, for_update: bool = False) -> Transaction | None: ...

    @abstractmethod
    def save_transaction(self, transaction: Transaction) -> None: ...

    @abstractmethod
    def find_gateway_transaction(self, gateway: PaymentMethod, gateway_payment_id: str) -> Transaction | None:
        """The payment or credit already recorded for this gateway payment, if any. Refunds are ignored."""

    @abstractmethod
    def get_wallet(self, client_id: UUID, for_update: bool = False) -> Wallet:
        """Client wallet; a zero-balance wallet if the client has none yet."""

    @abstractmethod
    def save_wallet(self, wallet: Wallet) -> None: ...

    # Audit and numbering

    @abstractmethod
    def insert_audit(self, entry: AuditEntry) -> None: ...

    @abstractmethod
    def list_audit(self, entity_type: str, entity_id: str) -> list[AuditEntry]: ...

    @abstractmethod
    def next_sequence(self, name: str) -> int:
        """Next value (starting at 1) of a named counter."""

    # Sweep selections

    @abstractmethod
    def list_active_domains_expiring(self, start: datetime, end: datetime) -> list[Domain]:
        """Active domains with start <= expires_at < end."""

    @abstractmethod
    def list_auto_renew_candidates(self, now: datetime, until: datetime, max_attempts: int) -> list[Domain]:
        """Active, auto_renew domains with now <= expires_at <= until and attempts below max."""

    @abstractmethod
    def list_transferring_domains(self) -> list[Domain]:
        """Domains in pending_transfer or transfer_initiated."""

    @abstractmethod
    def list_invoices_for_reminder(self, due_before: datetime, reminded_before: datetime) -> list[Invoice]:
        """Open (unpaid, partially paid or overdue) invoices due by due_before, not reminded since reminded_before."""

    @abstractmethod
    def list_overdue_invoices(self, due_before: datetime) -> list[Invoice]:
        """Open (unpaid, partially paid or overdue) invoices with due_at < due_before."""

    # Numbering helpers

    def next_order_number(self) -> str:
        """ORD-YYYY-NNNNNN"""
        year = now_utc().strftime("%Y")
        return f"ORD-{year}-{self.next_sequence(f'order:{year}'):06d}"

    def next_invoice_number(self) -> str:
        """INV-YYYYMM-NNNNNN"""
        month = now_utc().strftime("%Y%m")
        return f"INV-{month}-{self.next_sequence(f'invoice:{month}'):06d}"

    def next_transaction_number(self) -> str:
        """TXN-YYYY-NNNNNNNN"""
        year = now_utc().strftime("%Y")
        return f"TXN-{year}-{self.next_sequence(f'transaction:{year}'):08d}"


class LedgerStore(ABC):
    """Factory for atomic units."""

    @abstractmethod
    def _begin(self, outbox: Outbox):
        """
        Context manager yielding a LedgerUnit.

        Must commit on clean exit and roll back then re-raise on exception.
        """

    @contextmanager
    def unit_of_work(self) -> Iterator[LedgerUnit]:
        outbox = Outbox()
        try:
            with self._begin(outbox) as unit:
                yield unit
        except BaseException:
            outbox.discard()
            raise
        outbox.flush()

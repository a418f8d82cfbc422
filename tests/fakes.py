"""In-process stand-ins for the ledger database and external APIs."""

import copy
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from clients.payment_gateway_client import GatewayOrder, GatewayPayment, GatewayRefund, PaymentGatewayError
from clients.registrar_client import RegistrarError, RenewalResult, RegistrationResult, TransferStatus
from core.audit import AuditEntry
from core.ledger import LedgerStore, LedgerUnit
from core.models import (
    Domain, DomainStatus, Invoice, InvoiceStatus, LineItemKind, Order, PaymentMethod, Service, Transaction,
    TransactionType, Wallet,
)
from core.outbox import Outbox

OPEN_INVOICE_STATUSES = (InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.OVERDUE)


class InMemoryLedgerUnit(LedgerUnit):

    def __init__(self, tables: dict, outbox: Outbox):
        super().__init__(outbox)
        self._t = tables

    def _get(self, table: str, key):
        entity = self._t[table].get(key)
        return entity.model_copy(deep=True) if entity is not None else None

    def _put(self, table: str, key, entity) -> None:
        self._t[table][key] = entity.model_copy(deep=True)

    def _values(self, table: str) -> list:
        return [e.model_copy(deep=True) for e in self._t[table].values()]

    def get_order(self, order_id: UUID, for_update: bool = False) -> Order | None:
        return self._get("orders", order_id)

    def save_order(self, order: Order) -> None:
        self._put("orders", order.id, order)

    def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        return self._get("invoices", invoice_id)

    def save_invoice(self, invoice: Invoice) -> None:
        self._put("invoices", invoice.id, invoice)

    def find_paid_renewal_invoice(self, domain_id: UUID) -> Invoice | None:
        def renews(invoice: Invoice) -> bool:
            return any(
                item.kind == LineItemKind.DOMAIN_RENEWAL and item.reference_id == domain_id for item in invoice.items
            )

        paid = [
            i for i in self._values("invoices")
            if i.status == InvoiceStatus.PAID and i.order_id is None and renews(i)
        ]
        return max(paid, key=lambda i: i.paid_at, default=None)

    def get_domain(self, domain_id: UUID, for_update: bool = False) -> Domain | None:
        return self._get("domains", domain_id)

    def save_domain(self, domain: Domain) -> None:
        self._put("domains", domain.id, domain)

    def domain_name_exists(self, domain_name: str) -> bool:
        return any(d.domain_name == domain_name.lower() for d in self._t["domains"].values())

    def list_domains_for_order(self, order_id: UUID) -> list[Domain]:
        return sorted(
            (d for d in self._values("domains") if d.order_id == order_id), key=lambda d: d.created_at
        )

    def get_service(self, service_id: UUID, for_update: bool = False) -> Service | None:
        return self._get("services", service_id)

    def save_service(self, service: Service) -> None:
        self._put("services", service.id, service)

    def list_services_for_order(self, order_id: UUID) -> list[Service]:
        return sorted(
            (s for s in self._values("services") if s.order_id == order_id), key=lambda s: s.created_at
        )

    def list_services_for_invoice(self, invoice: Invoice) -> list[Service]:
        def billed(service: Service) -> bool:
            return (
                (invoice.order_id is not None and service.order_id == invoice.order_id)
                or service.next_invoice_id == invoice.id
                or (invoice.service_id is not None and service.id == invoice.service_id)
            )

        return sorted((s for s in self._values("services") if billed(s)), key=lambda s: s.created_at)

    def get_transaction(self, transaction_id: UUID, for_update: bool = False) -> Transaction | None:
        return self._get("transactions", transaction_id)

    def save_transaction(self, transaction: Transaction) -> None:
        self._put("transactions", transaction.id, transaction)

    def find_gateway_transaction(self, gateway: PaymentMethod, gateway_payment_id: str) -> Transaction | None:
        for txn in self._values("transactions"):
            if (
                txn.gateway == gateway
                and txn.gateway_payment_id == gateway_payment_id
                and txn.type in (TransactionType.PAYMENT, TransactionType.CREDIT)
            ):
                return txn
        return None

    def get_wallet(self, client_id: UUID, for_update: bool = False) -> Wallet:
        return self._get("wallets", client_id) or Wallet(client_id=client_id)

    def save_wallet(self, wallet: Wallet) -> None:
        self._put("wallets", wallet.client_id, wallet)

    def insert_audit(self, entry: AuditEntry) -> None:
        self._t["audit"].append(entry)

    def list_audit(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        entries = [e for e in self._t["audit"] if e.entity_type == entity_type and e.entity_id == entity_id]
        return list(reversed(entries))

    def next_sequence(self, name: str) -> int:
        value = self._t["sequences"].get(name, 0) + 1
        self._t["sequences"][name] = value
        return value

    def list_active_domains_expiring(self, start: datetime, end: datetime) -> list[Domain]:
        return sorted(
            (
                d for d in self._values("domains")
                if d.status == DomainStatus.ACTIVE and d.expires_at is not None and start <= d.expires_at < end
            ),
            key=lambda d: d.expires_at,
        )

    def list_auto_renew_candidates(self, now: datetime, until: datetime, max_attempts: int) -> list[Domain]:
        return [
            d for d in self.list_active_domains_expiring(now, until + timedelta(microseconds=1))
            if d.auto_renew and d.auto_renew_attempts < max_attempts
        ]

    def list_transferring_domains(self) -> list[Domain]:
        return sorted(
            (d for d in self._values("domains") if d.status.is_transferring), key=lambda d: d.created_at
        )

    def list_invoices_for_reminder(self, due_before: datetime, reminded_before: datetime) -> list[Invoice]:
        return sorted(
            (
                i for i in self._values("invoices")
                if i.status in OPEN_INVOICE_STATUSES
                and i.due_at <= due_before
                and (i.last_reminder_at is None or i.last_reminder_at < reminded_before)
            ),
            key=lambda i: i.due_at,
        )

    def list_overdue_invoices(self, due_before: datetime) -> list[Invoice]:
        return sorted(
            (i for i in self._values("invoices") if i.status in OPEN_INVOICE_STATUSES and i.due_at < due_before),
            key=lambda i: i.due_at,
        )


class InMemoryLedgerStore(LedgerStore):
    """
    Ledger held in dicts. A unit works on a deep copy of every table and
    swaps it in on commit, so a raising unit leaves nothing behind.
    Units are serialized by one re-entrant lock.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.tables = {
            "orders": {},
            "invoices": {},
            "domains": {},
            "services": {},
            "transactions": {},
            "wallets": {},
            "audit": [],
            "sequences": {},
        }

    @contextmanager
    def _begin(self, outbox: Outbox):
        with self._lock:
            working = copy.deepcopy(self.tables)
            yield InMemoryLedgerUnit(working, outbox)
            self.tables = working

    # Direct access for test setup and assertions

    def put(self, entity) -> None:
        table = {
            Order: "orders", Invoice: "invoices", Domain: "domains",
            Service: "services", Transaction: "transactions",
        }[type(entity)]
        with self._lock:
            self.tables[table][entity.id] = entity.model_copy(deep=True)

    def set_balance(self, client_id: UUID, balance_cents: int) -> None:
        with self._lock:
            self.tables["wallets"][client_id] = Wallet(client_id=client_id, balance_cents=balance_cents)

    def balance(self, client_id: UUID) -> int:
        wallet = self.tables["wallets"].get(client_id)
        return wallet.balance_cents if wallet else 0

    def order(self, order_id: UUID) -> Order | None:
        return self.tables["orders"].get(order_id)

    def invoice(self, invoice_id: UUID) -> Invoice | None:
        return self.tables["invoices"].get(invoice_id)

    def domain(self, domain_id: UUID) -> Domain | None:
        return self.tables["domains"].get(domain_id)

    def service(self, service_id: UUID) -> Service | None:
        return self.tables["services"].get(service_id)

    def transactions(self, client_id: UUID | None = None) -> list[Transaction]:
        return [t for t in self.tables["transactions"].values() if client_id is None or t.client_id == client_id]

    def audit_entries(self, entity_type: str | None = None) -> list[AuditEntry]:
        return [e for e in self.tables["audit"] if entity_type is None or e.entity_type == entity_type]

    def count(self, table: str) -> int:
        return len(self.tables[table])


class FakeRegistrar:
    """Records calls; `fail_with` makes every call raise until cleared."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None
        self.renewal_price_cents = 1500
        self.transfer_status = TransferStatus(status="pending")
        self.failing_records: set[str] = set()

    def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if self.fail_with is not None:
            raise self.fail_with

    def calls_to(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def get_renewal_price_cents(self, tld: str) -> int:
        self._call("get_renewal_price_cents", tld)
        return self.renewal_price_cents

    def register_domain(self, request) -> RegistrationResult:
        self._call("register_domain", request)
        return RegistrationResult(order_id=f"reg-{request.domain}")

    def renew_domain(self, domain: str, years: int) -> RenewalResult:
        self._call("renew_domain", domain, years)
        return RenewalResult(order_id=f"renew-{domain}")

    def initiate_transfer(self, request) -> str:
        self._call("initiate_transfer", request)
        return f"xfer-{request.domain}"

    def get_transfer_status(self, domain: str) -> TransferStatus:
        self._call("get_transfer_status", domain)
        return self.transfer_status

    def upsert_dns_record(self, domain: str, record) -> None:
        self._call("upsert_dns_record", domain, record)
        if record.name in self.failing_records:
            raise RegistrarError(f"record {record.name} rejected")

    def delete_dns_record(self, domain: str, record_type: str, name: str) -> None:
        self._call("delete_dns_record", domain, record_type, name)


class FakeGateway:
    """Payment gateway that knows the payments registered with `settle()`."""

    def __init__(self, name: str = "razorpay"):
        self.name = name
        self.payments: dict[str, GatewayPayment] = {}
        self.orders: list[GatewayOrder] = []
        self.refunds: list[GatewayRefund] = []
        self.fail_create_order = False

    def settle(self, amount_cents: int, order_id: str | None = None, currency: str = "USD") -> str:
        payment_id = f"pay_{uuid4().hex[:12]}"
        self.payments[payment_id] = GatewayPayment(
            id=payment_id, order_id=order_id, amount_cents=amount_cents, currency=currency, status="captured",
        )
        return payment_id

    def create_order(self, amount_cents: int, currency: str, receipt: str, notes: dict | None = None) -> GatewayOrder:
        if self.fail_create_order:
            raise PaymentGatewayError("gateway down")
        order = GatewayOrder(id=f"order_{len(self.orders) + 1}", amount_cents=amount_cents, currency=currency)
        self.orders.append(order)
        return order

    def verify_payment(self, payment_data: dict) -> GatewayPayment:
        payment = self.payments.get(payment_data.get("payment_id", ""))
        if payment is None:
            raise PaymentGatewayError("unknown payment", retryable=False)
        return payment

    def refund(self, payment_id: str, amount_cents: int, reason: str | None = None) -> GatewayRefund:
        refund = GatewayRefund(
            id=f"rfnd_{len(self.refunds) + 1}", payment_id=payment_id, amount_cents=amount_cents, status="processed",
        )
        self.refunds.append(refund)
        return refund


class RecordingNotifier:

    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []
        self.fail_with: Exception | None = None

    def dispatch(self, recipient_id: str, event_type: str, payload: dict) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((recipient_id, event_type, payload))


def run_next(queue, handler, hours_ahead: int = 0):
    """Claim the handler's next due job and execute it. Retries need hours_ahead > 0."""
    from utils.timezone import now_utc
    from workers.base import execute

    job = queue.claim(handler.job_type, now=now_utc() + timedelta(hours=hours_ahead))
    assert job is not None, f"no {handler.job_type.value} job due"
    return execute(queue, handler, job)

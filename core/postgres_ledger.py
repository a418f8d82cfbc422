"""
PostgreSQL implementation of the ledger store.

One pooled psycopg2 connection per unit of work. Entities are written with
a generic upsert built from the pydantic model's JSON dump; list and dict
fields go to JSONB columns. Table layout lives in db/schema.sql.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Type, TypeVar
from uuid import UUID

import psycopg2.errors
from psycopg2.extras import Json
from pydantic import BaseModel

from clients.postgres_client import PostgresClient, convert_params
from core.audit import AuditEntry
from core.errors import ConflictError
from core.ledger import LedgerStore, LedgerUnit
from core.models import (
    Domain, DomainStatus, Invoice, InvoiceStatus, LineItemKind, Order, PaymentMethod, Service, Transaction,
    TransactionType, Wallet,
)
from core.outbox import Outbox
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# table -> JSONB columns
_JSON_COLUMNS = {
    "orders": {"items", "billing_details"},
    "invoices": {"items", "applied_transaction_ids"},
    "domains": {"nameservers"},
    "services": set(),
    "transactions": set(),
}


class PostgresLedgerUnit(LedgerUnit):

    def __init__(self, cursor, outbox: Outbox):
        super().__init__(outbox)
        self._cur = cursor

    def _execute(self, query: str, params: tuple | None = None) -> list[dict[str, Any]]:
        self._cur.execute(query, convert_params(params))
        if self._cur.description is None:
            return []
        return [dict(row) for row in self._cur.fetchall()]

    def _get(self, model: Type[M], table: str, entity_id: UUID, for_update: bool) -> M | None:
        query = f"SELECT * FROM {table} WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        rows = self._execute(query, (entity_id,))
        return model.model_validate(rows[0]) if rows else None

    def _list(self, model: Type[M], query: str, params: tuple) -> list[M]:
        return [model.model_validate(row) for row in self._execute(query, params)]

    def _upsert(self, table: str, entity: BaseModel, key: str = "id") -> None:
        row = entity.model_dump(mode="json")
        json_columns = _JSON_COLUMNS.get(table, set())
        columns = list(row)
        values = tuple(Json(row[c]) if c in json_columns else row[c] for c in columns)
        assignments = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns if c != key)

        query = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) "
            f"ON CONFLICT ({key}) DO UPDATE SET {assignments}"
        )
        try:
            self._cur.execute(query, values)
        except psycopg2.errors.UniqueViolation as e:
            raise ConflictError(f"{table}: {e.diag.message_detail or e}")

    # Orders

    def get_order(self, order_id: UUID, for_update: bool = False) -> Order | None:
        return self._get(Order, "orders", order_id, for_update)

    def save_order(self, order: Order) -> None:
        self._upsert("orders", order)

    # Invoices

    def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        return self._get(Invoice, "invoices", invoice_id, for_update)

    def save_invoice(self, invoice: Invoice) -> None:
        self._upsert("invoices", invoice)

    def find_paid_renewal_invoice(self, domain_id: UUID) -> Invoice | None:
        renewal = [{"kind": LineItemKind.DOMAIN_RENEWAL.value, "reference_id": str(domain_id)}]
        rows = self._list(
            Invoice,
            """
            SELECT * FROM invoices
            WHERE status = %s AND order_id IS NULL AND items @> %s
            ORDER BY paid_at DESC
            LIMIT 1
            """,
            (InvoiceStatus.PAID.value, Json(renewal))
        )
        return rows[0] if rows else None

    # Domains

    def get_domain(self, domain_id: UUID, for_update: bool = False) -> Domain | None:
        return self._get(Domain, "domains", domain_id, for_update)

    def save_domain(self, domain: Domain) -> None:
        self._upsert("domains", domain)

    def domain_name_exists(self, domain_name: str) -> bool:
        rows = self._execute(
            "SELECT 1 FROM domains WHERE domain_name = %s LIMIT 1",
            (domain_name.lower(),)
        )
        return bool(rows)

    def list_domains_for_order(self, order_id: UUID) -> list[Domain]:
        return self._list(
            Domain,
            "SELECT * FROM domains WHERE order_id = %s ORDER BY created_at",
            (order_id,)
        )

    # Services

    def get_service(self, service_id: UUID, for_update: bool = False) -> Service | None:
        return self._get(Service, "services", service_id, for_update)

    def save_service(self, service: Service) -> None:
        self._upsert("services", service)

    def list_services_for_order(self, order_id: UUID) -> list[Service]:
        return self._list(
            Service,
            "SELECT * FROM services WHERE order_id = %s ORDER BY created_at",
            (order_id,)
        )

    def list_services_for_invoice(self, invoice: Invoice) -> list[Service]:
        return self._list(
            Service,
            """
            SELECT * FROM services
            WHERE order_id = %s OR next_invoice_id = %s OR id = %s
            ORDER BY created_at
            """,
            (invoice.order_id, invoice.id, invoice.service_id)
        )

    # Transactions and wallets

    def get_transaction(self, transaction_id: UUID, for_update: bool = False) -> Transaction | None:
        return self._get(Transaction, "transactions", transaction_id, for_update)

    def save_transaction(self, transaction: Transaction) -> None:
        self._upsert("transactions", transaction)

    def find_gateway_transaction(self, gateway: PaymentMethod, gateway_payment_id: str) -> Transaction | None:
        rows = self._list(
            Transaction,
            """
            SELECT * FROM transactions
            WHERE gateway = %s AND gateway_payment_id = %s AND type IN (%s, %s)
            LIMIT 1
            """,
            (gateway.value, gateway_payment_id, TransactionType.PAYMENT.value, TransactionType.CREDIT.value)
        )
        return rows[0] if rows else None

    def get_wallet(self, client_id: UUID, for_update: bool = False) -> Wallet:
        if for_update:
            # Materialize the row so there is something to lock
            self._execute(
                """
                INSERT INTO wallets (client_id, balance_cents, currency, updated_at)
                VALUES (%s, 0, 'USD', %s)
                ON CONFLICT (client_id) DO NOTHING
                """,
                (client_id, now_utc())
            )
        query = "SELECT * FROM wallets WHERE client_id = %s"
        if for_update:
            query += " FOR UPDATE"
        rows = self._execute(query, (client_id,))
        if not rows:
            return Wallet(client_id=client_id)
        return Wallet.model_validate(rows[0])

    def save_wallet(self, wallet: Wallet) -> None:
        self._upsert("wallets", wallet, key="client_id")

    # Audit and numbering

    def insert_audit(self, entry: AuditEntry) -> None:
        self._execute(
            """
            INSERT INTO audit_log (id, actor, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                entry.id,
                entry.actor,
                entry.entity_type,
                entry.entity_id,
                entry.action.value,
                Json(entry.changes),
                entry.created_at,
            )
        )

    def list_audit(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        return self._list(
            AuditEntry,
            """
            SELECT id, actor, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, entity_id)
        )

    def next_sequence(self, name: str) -> int:
        rows = self._execute(
            """
            INSERT INTO number_sequences (name, value) VALUES (%s, 1)
            ON CONFLICT (name) DO UPDATE SET value = number_sequences.value + 1
            RETURNING value
            """,
            (name,)
        )
        return rows[0]["value"]

    # Sweep selections

    def list_active_domains_expiring(self, start: datetime, end: datetime) -> list[Domain]:
        return self._list(
            Domain,
            """
            SELECT * FROM domains
            WHERE status = %s AND expires_at >= %s AND expires_at < %s
            ORDER BY expires_at
            """,
            (DomainStatus.ACTIVE.value, start, end)
        )

    def list_auto_renew_candidates(self, now: datetime, until: datetime, max_attempts: int) -> list[Domain]:
        return self._list(
            Domain,
            """
            SELECT * FROM domains
            WHERE status = %s AND auto_renew = TRUE
              AND expires_at >= %s AND expires_at <= %s
              AND auto_renew_attempts < %s
            ORDER BY expires_at
            """,
            (DomainStatus.ACTIVE.value, now, until, max_attempts)
        )

    def list_transferring_domains(self) -> list[Domain]:
        return self._list(
            Domain,
            "SELECT * FROM domains WHERE status IN (%s, %s) ORDER BY created_at",
            (DomainStatus.PENDING_TRANSFER.value, DomainStatus.TRANSFER_INITIATED.value)
        )

    def list_invoices_for_reminder(self, due_before: datetime, reminded_before: datetime) -> list[Invoice]:
        return self._list(
            Invoice,
            """
            SELECT * FROM invoices
            WHERE status IN (%s, %s, %s) AND due_at <= %s
              AND (last_reminder_at IS NULL OR last_reminder_at < %s)
            ORDER BY due_at
            """,
            (
                InvoiceStatus.UNPAID.value,
                InvoiceStatus.PARTIALLY_PAID.value,
                InvoiceStatus.OVERDUE.value,
                due_before,
                reminded_before,
            )
        )

    def list_overdue_invoices(self, due_before: datetime) -> list[Invoice]:
        return self._list(
            Invoice,
            "SELECT * FROM invoices WHERE status IN (%s, %s, %s) AND due_at < %s ORDER BY due_at",
            (
                InvoiceStatus.UNPAID.value,
                InvoiceStatus.PARTIALLY_PAID.value,
                InvoiceStatus.OVERDUE.value,
                due_before,
            )
        )


class PostgresLedgerStore(LedgerStore):
    """
    Usage:
        store = PostgresLedgerStore(PostgresClient(get_database_url()))
        with store.unit_of_work() as unit:
            ...
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    @contextmanager
    def _begin(self, outbox: Outbox) -> Iterator[PostgresLedgerUnit]:
        with self.postgres.transaction() as cur:
            yield PostgresLedgerUnit(cur, outbox)

"""
Billing service for invoice administration.

Invoices are created at checkout or by an admin (e.g. a service's next
billing period). Totals are recomputed only when items or credit change.
"""

import logging
from uuid import UUID

from core.config import ProvisioningConfig
from core.errors import NotFoundError
from core.invoicing import apply_credit, build_invoice, cancel_invoice, replace_items
from core.ledger import LedgerStore
from core.models import Invoice, InvoiceItem, InvoiceStatus
from core.services.provisioning_service import ProvisioningService
from utils.actor_context import actor_context
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class BillingService:
    """Service for invoice operations."""

    def __init__(self, store: LedgerStore, provisioning: ProvisioningService, config: ProvisioningConfig):
        self.store = store
        self.provisioning = provisioning
        self.config = config

    def create_invoice(
        self,
        client_id: UUID,
        items: list[InvoiceItem],
        admin_id: str,
        service_id: UUID | None = None,
        due_days: int | None = None,
        discount_cents: int = 0,
        notes: str | None = None,
    ) -> Invoice:
        """
        Create an unpaid invoice.

        Args:
            client_id: Client being billed
            items: Invoice lines
            admin_id: Admin creating the invoice
            service_id: Optional Service this invoice bills; it becomes the
                service's next invoice so overdue sweeps can act on it
            due_days: Days until due (defaults to config)
            discount_cents: Flat discount
            notes: Optional notes

        Returns:
            Created invoice
        """
        now = now_utc()
        with actor_context(f"admin:{admin_id}"):
            with self.store.unit_of_work() as unit:
                service = None
                if service_id is not None:
                    service = unit.get_service(service_id, for_update=True)
                    if service is None or service.client_id != client_id:
                        raise NotFoundError(f"Service {service_id} not found")

                invoice = build_invoice(
                    invoice_number=unit.next_invoice_number(),
                    client_id=client_id,
                    items=items,
                    now=now,
                    due_days=self.config.default_due_days if due_days is None else due_days,
                    service_id=service_id,
                    discount_cents=discount_cents,
                    tax_rate_bps=self.config.tax_rate_bps,
                    currency=self.config.currency,
                    notes=notes,
                )
                unit.save_invoice(invoice)
                unit.audit.log_create("invoice", invoice)

                if service is not None:
                    linked = service.model_copy(update={"next_invoice_id": invoice.id, "updated_at": now})
                    unit.save_service(linked)
                    unit.audit.log_update("service", service, linked)

        logger.info(f"Created invoice {invoice.invoice_number} for client {client_id}: {invoice.total_cents} cents")
        return invoice

    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        with self.store.unit_of_work() as unit:
            return unit.get_invoice(invoice_id)

    def update_items(self, invoice_id: UUID, items: list[InvoiceItem], admin_id: str) -> Invoice:
        """Replace an unpaid invoice's items; totals are recomputed."""
        with actor_context(f"admin:{admin_id}"):
            with self.store.unit_of_work() as unit:
                invoice = self._get_for_update(unit, invoice_id)
                updated = replace_items(invoice, items, now_utc(), self.config.tax_rate_bps)
                unit.save_invoice(updated)
                unit.audit.log_update("invoice", invoice, updated)
        return updated

    def cancel_invoice(self, invoice_id: UUID, admin_id: str) -> Invoice:
        """
        Raises:
            ValidationError: Invoice is paid
        """
        with actor_context(f"admin:{admin_id}"):
            with self.store.unit_of_work() as unit:
                invoice = self._get_for_update(unit, invoice_id)
                updated = cancel_invoice(invoice, now_utc())
                if updated is not invoice:
                    unit.save_invoice(updated)
                    unit.audit.log_update("invoice", invoice, updated)

        logger.info(f"Invoice {invoice.invoice_number} cancelled by admin {admin_id}")
        return updated

    def apply_credit(self, invoice_id: UUID, amount_cents: int, admin_id: str) -> Invoice:
        """
        Reduce an invoice's total by a credit.

        A credit that brings the total to zero (or to what is already paid)
        settles the invoice, with the same follow-ups as a payment.
        """
        now = now_utc()
        with actor_context(f"admin:{admin_id}"):
            with self.store.unit_of_work() as unit:
                invoice = self._get_for_update(unit, invoice_id)
                updated = apply_credit(invoice, amount_cents, now)
                unit.save_invoice(updated)
                unit.audit.log_update("invoice", invoice, updated)
                if updated.status == InvoiceStatus.PAID:
                    self.provisioning.after_invoice_settled(unit, updated, now)
        return updated

    def _get_for_update(self, unit, invoice_id: UUID) -> Invoice:
        invoice = unit.get_invoice(invoice_id, for_update=True)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

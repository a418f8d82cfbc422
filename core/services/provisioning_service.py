"""
Provisioning follow-ups for paid orders.

Shared by checkout (wallet orders are paid at once) and payment
confirmation (gateway orders are paid later). Job enqueues are registered
as outbox steps so they run strictly after the paying unit commits; each
one carries its own compensation when the queue is unreachable.
"""

import logging
from datetime import datetime
from uuid import UUID

from core import lifecycle
from core.event_bus import EventBus
from core.events import InvoicePaid, OrderPaid
from core.ledger import LedgerStore, LedgerUnit
from core.lifecycle import apply_transition
from core.models import (
    DomainStatus,
    Invoice,
    InvoiceStatus,
    InitiateTransferPayload,
    JobType,
    LineItemKind,
    Order,
    RegisterDomainPayload,
    RenewDomainPayload,
    ServiceStatus,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def registration_key(domain_id: UUID) -> str:
    return f"register-domain:{domain_id}"


def transfer_key(domain_id: UUID) -> str:
    return f"initiate-transfer:{domain_id}"


def renewal_key(domain_id: UUID) -> str:
    return f"renew-domain:{domain_id}"


class ProvisioningService:
    """Enqueues provisioning jobs and activates services for paid orders."""

    def __init__(self, store: LedgerStore, queue, event_bus: EventBus):
        self.store = store
        self.queue = queue
        self.event_bus = event_bus

    def schedule_order_jobs(self, unit: LedgerUnit, order: Order) -> None:
        """Register post-commit enqueues for every domain item on a paid order."""
        for domain in unit.list_domains_for_order(order.id):
            if domain.status == DomainStatus.PENDING:
                self._add_registration(unit, domain.id, order.id)
            elif domain.status == DomainStatus.PENDING_TRANSFER:
                self._add_transfer(unit, domain.id, order.id)

        for item in order.items:
            if item.kind == LineItemKind.DOMAIN_RENEWAL and item.reference_id is not None:
                self.schedule_renewal(unit, item.reference_id, item.years, order.invoice_id)

    def _add_registration(self, unit: LedgerUnit, domain_id: UUID, order_id: UUID) -> None:
        unit.outbox.add(
            f"enqueue register-domain {domain_id}",
            lambda: self.queue.enqueue(
                JobType.REGISTER_DOMAIN,
                str(domain_id),
                RegisterDomainPayload(domain_id=domain_id, order_id=order_id),
                idempotency_key=registration_key(domain_id),
            ),
            on_failure=lambda e: self._mark_unqueued(domain_id, e),
        )

    def _add_transfer(self, unit: LedgerUnit, domain_id: UUID, order_id: UUID) -> None:
        unit.outbox.add(
            f"enqueue initiate-transfer {domain_id}",
            lambda: self.queue.enqueue(
                JobType.INITIATE_TRANSFER,
                str(domain_id),
                InitiateTransferPayload(domain_id=domain_id, order_id=order_id),
                idempotency_key=transfer_key(domain_id),
            ),
            on_failure=lambda e: self._mark_unqueued(domain_id, e),
        )

    def schedule_renewal(
        self,
        unit: LedgerUnit,
        domain_id: UUID,
        years: int,
        invoice_id: UUID | None,
        auto_triggered: bool = False,
    ) -> None:
        """Register a post-commit renew-domain enqueue for an already paid renewal."""
        unit.outbox.add(
            f"enqueue renew-domain {domain_id}",
            lambda: self.queue.enqueue(
                JobType.RENEW_DOMAIN,
                str(domain_id),
                RenewDomainPayload(
                    domain_id=domain_id, years=years, invoice_id=invoice_id, auto_triggered=auto_triggered,
                ),
                priority=2,
                idempotency_key=renewal_key(domain_id),
            ),
            on_failure=lambda e: self._note_unqueued_renewal(domain_id, e),
        )

    def _mark_unqueued(self, domain_id: UUID, error: Exception) -> None:
        """Compensation: a domain whose first job never got queued is failed."""
        now = now_utc()
        reason = f"Could not queue provisioning job: {error}"
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(domain_id, for_update=True)
            if domain is None:
                return
            if domain.status == DomainStatus.PENDING:
                updated = apply_transition(lifecycle.fail_registration, domain, reason, now)
            else:
                updated = apply_transition(lifecycle.fail_transfer, domain, reason, now)
            if updated is None:
                return
            unit.save_domain(updated)
            unit.audit.log_update("domain", domain, updated)
        logger.error(f"Domain {domain_id} marked failed: {reason}")

    def _note_unqueued_renewal(self, domain_id: UUID, error: Exception) -> None:
        now = now_utc()
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(domain_id, for_update=True)
            if domain is None:
                return
            updated = domain.model_copy(update={
                "notes": f"Paid renewal could not be queued: {error}",
                "updated_at": now,
            })
            unit.save_domain(updated)
            unit.audit.log_update("domain", domain, updated)
        logger.error(f"Paid renewal for domain {domain_id} could not be queued: {error}")

    def activate_order_services(self, unit: LedgerUnit, order: Order, now: datetime) -> None:
        for service in unit.list_services_for_order(order.id):
            if service.status != ServiceStatus.PENDING:
                continue
            activated = lifecycle.activate_service(service, now)
            unit.save_service(activated)
            unit.audit.log_update("service", service, activated)

    def after_invoice_settled(self, unit: LedgerUnit, invoice: Invoice, now: datetime) -> None:
        """
        Follow-ups for an invoice that just became paid, inside the paying unit.

        Moves the linked order to paid (once), schedules its jobs, activates
        its services, and brings back services suspended for this invoice.
        """
        if invoice.status != InvoiceStatus.PAID:
            return

        unit.outbox.publish(self.event_bus, InvoicePaid.create(invoice))

        if invoice.order_id is not None:
            order = unit.get_order(invoice.order_id, for_update=True)
            if order is not None:
                paid = apply_transition(lifecycle.mark_order_paid, order, invoice.paid_cents, now)
                if paid is not None:
                    unit.save_order(paid)
                    unit.audit.log_update("order", order, paid)
                    self.schedule_order_jobs(unit, paid)
                    self.activate_order_services(unit, paid, now)
                    unit.outbox.publish(self.event_bus, OrderPaid.create(paid))

        for service in unit.list_services_for_invoice(invoice):
            if service.status != ServiceStatus.SUSPENDED:
                continue
            restored = lifecycle.reactivate_service(service, now)
            unit.save_service(restored)
            unit.audit.log_update("service", service, restored)
            logger.info(f"Service {service.id} reactivated after payment of {invoice.invoice_number}")

"""Suspension sweep: services behind on payment get suspended."""

import logging
from datetime import datetime, timedelta

from core import lifecycle
from core.config import ProvisioningConfig
from core.event_bus import EventBus
from core.events import ServiceSuspended
from core.invoicing import mark_overdue
from core.ledger import LedgerStore
from core.lifecycle import apply_transition
from core.models import Invoice, ServiceStatus
from sweeps.base import Sweep

logger = logging.getLogger(__name__)


class SuspensionSweep(Sweep):
    """Every 6 hours: active services billed by an invoice overdue past the threshold."""

    name = "suspension"

    def __init__(self, store: LedgerStore, event_bus: EventBus, config: ProvisioningConfig):
        self.store = store
        self.event_bus = event_bus
        self.config = config.sweeps

    @property
    def interval_seconds(self) -> int:
        return self.config.suspension_interval_seconds

    def run(self, now: datetime) -> dict[str, int]:
        threshold = now - timedelta(days=self.config.suspend_after_days_overdue)
        with self.store.unit_of_work() as unit:
            invoices = unit.list_overdue_invoices(due_before=threshold)
        return self.each(invoices, lambda i: self._suspend_for(i, now), lambda i: i.invoice_number)

    def _suspend_for(self, invoice: Invoice, now: datetime) -> str | None:
        reason = f"Invoice {invoice.invoice_number} overdue"
        suspended = 0

        with self.store.unit_of_work() as unit:
            current = unit.get_invoice(invoice.id, for_update=True)
            if current is None or not current.status.is_open:
                return None
            overdue = mark_overdue(current, now)
            if overdue is not current:
                unit.save_invoice(overdue)
                unit.audit.log_update("invoice", current, overdue)

            for service in unit.list_services_for_invoice(overdue):
                if service.status != ServiceStatus.ACTIVE:
                    continue
                updated = apply_transition(lifecycle.suspend_service, service, reason, now)
                if updated is None:
                    continue
                unit.save_service(updated)
                unit.audit.log_update("service", service, updated)
                unit.outbox.publish(self.event_bus, ServiceSuspended.create(updated))
                suspended += 1

        if suspended:
            logger.info(f"Suspended {suspended} service(s) for {invoice.invoice_number}")
            return "suspended"
        return None

"""Termination sweep: long-overdue services are terminated and their invoice cancelled."""

import logging
from datetime import datetime, timedelta

from core import lifecycle
from core.config import ProvisioningConfig
from core.event_bus import EventBus
from core.events import ServiceTerminated
from core.invoicing import cancel_invoice
from core.ledger import LedgerStore
from core.lifecycle import apply_transition
from core.models import Invoice, ServiceStatus
from sweeps.base import Sweep

logger = logging.getLogger(__name__)


class TerminationSweep(Sweep):
    name = "termination"

    def __init__(self, store: LedgerStore, event_bus: EventBus, config: ProvisioningConfig):
        self.store = store
        self.event_bus = event_bus
        self.config = config.sweeps

    @property
    def interval_seconds(self) -> int:
        return self.config.termination_interval_seconds

    def run(self, now: datetime) -> dict[str, int]:
        threshold = now - timedelta(days=self.config.terminate_after_days_overdue)
        with self.store.unit_of_work() as unit:
            invoices = unit.list_overdue_invoices(due_before=threshold)
        return self.each(invoices, lambda i: self._terminate_for(i, now), lambda i: i.invoice_number)

    def _terminate_for(self, invoice: Invoice, now: datetime) -> str | None:
        reason = f"Invoice {invoice.invoice_number} unpaid for {self.config.terminate_after_days_overdue} days"

        with self.store.unit_of_work() as unit:
            current = unit.get_invoice(invoice.id, for_update=True)
            if current is None or not current.status.is_open:
                return None

            services = unit.list_services_for_invoice(current)
            if not services:
                return None

            for service in services:
                if service.status not in (ServiceStatus.ACTIVE, ServiceStatus.SUSPENDED):
                    continue
                terminated = apply_transition(lifecycle.terminate_service, service, reason, now)
                if terminated is None:
                    continue
                unit.save_service(terminated)
                unit.audit.log_update("service", service, terminated)
                unit.outbox.publish(self.event_bus, ServiceTerminated.create(terminated))

            cancelled = cancel_invoice(current, now)
            unit.save_invoice(cancelled)
            unit.audit.log_update("invoice", current, cancelled)

        logger.info(f"Terminated services and cancelled {invoice.invoice_number}")
        return "terminated"

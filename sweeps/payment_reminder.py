"""Payment reminder sweep: due-soon and overdue reminders, open -> overdue."""

import logging
from datetime import datetime, timedelta

from core.config import ProvisioningConfig
from core.event_bus import EventBus
from core.events import InvoiceReminder
from core.invoicing import mark_overdue, record_reminder
from core.ledger import LedgerStore
from core.models import Invoice
from sweeps.base import Sweep
from utils.timezone import days_between

logger = logging.getLogger(__name__)


class PaymentReminderSweep(Sweep):
    name = "payment-reminder"

    def __init__(self, store: LedgerStore, event_bus: EventBus, config: ProvisioningConfig):
        self.store = store
        self.event_bus = event_bus
        self.config = config.sweeps

    @property
    def interval_seconds(self) -> int:
        return self.config.payment_reminder_interval_seconds

    def run(self, now: datetime) -> dict[str, int]:
        with self.store.unit_of_work() as unit:
            invoices = unit.list_invoices_for_reminder(
                due_before=now + timedelta(days=self.config.invoice_due_soon_days),
                reminded_before=now - timedelta(hours=self.config.payment_reminder_cooldown_hours),
            )
        return self.each(invoices, lambda i: self._remind(i, now), lambda i: i.invoice_number)

    def _remind(self, invoice: Invoice, now: datetime) -> str | None:
        cooldown = timedelta(hours=self.config.payment_reminder_cooldown_hours)
        with self.store.unit_of_work() as unit:
            current = unit.get_invoice(invoice.id, for_update=True)
            if current is None or not current.status.is_open or current.balance_due_cents <= 0:
                return None
            if current.last_reminder_at and now - current.last_reminder_at < cooldown:
                return None

            overdue = current.due_at < now
            if overdue:
                days = days_between(current.due_at, now)
                updated = mark_overdue(current, now)
            else:
                days = max(0, days_between(now, current.due_at))
                updated = current
            updated = record_reminder(updated, now)

            unit.save_invoice(updated)
            unit.audit.log_update("invoice", current, updated)
            unit.outbox.publish(self.event_bus, InvoiceReminder.create(updated, overdue, days))

        return "overdue" if overdue else "due_soon"

"""Tests for notification handlers.

Each notifying event becomes one send-notification job. Uses the real
JobQueue over fakeredis.
"""


import pytest

from core.events import (
    DomainExpiring, DomainRegistered, InvoiceReminder, ServiceSuspended, TransferFailed,
)
from core.models import JobType
from utils.timezone import now_utc


def _claim_notification(queue):
    job = queue.claim(JobType.SEND_NOTIFICATION)
    assert job is not None, "expected a send-notification job"
    return job


class TestDomainNotifications:

    def test_registered_enqueues_template(self, event_bus, queue, make_domain, client_id):
        domain = make_domain()

        event_bus.publish(DomainRegistered.create(domain))

        job = _claim_notification(queue)
        assert job.payload["event_type"] == "domain-registered"
        assert job.payload["recipient_id"] == str(client_id)
        assert job.payload["data"]["domain_name"] == "example.com"
        assert job.target_id == str(domain.id)

    def test_failure_reason_included(self, event_bus, queue, make_domain):
        domain = make_domain()

        event_bus.publish(TransferFailed.create(domain, "auth code rejected"))

        job = _claim_notification(queue)
        assert job.payload["event_type"] == "domain-transfer-failed"
        assert job.payload["data"]["reason"] == "auth code rejected"
        assert job.priority == 1

    @pytest.mark.parametrize("days_left,priority", [(1, 1), (7, 2), (30, 3)])
    def test_expiry_priority_by_days_left(self, event_bus, queue, make_domain, days_left, priority):
        domain = make_domain(expires_in_days=days_left)

        event_bus.publish(DomainExpiring.create(domain, days_left))

        job = _claim_notification(queue)
        assert job.payload["event_type"] == "domain-expiring"
        assert job.payload["data"]["days_left"] == days_left
        assert job.priority == priority

    def test_same_event_enqueued_once(self, event_bus, queue, make_domain):
        """Republishing the same event object does not double notify."""
        event = DomainRegistered.create(make_domain())

        event_bus.publish(event)
        event_bus.publish(event)

        assert queue.pending_count(JobType.SEND_NOTIFICATION) == 1


class TestInvoiceNotifications:

    def test_overdue_reminder(self, event_bus, queue, make_invoice):
        invoice = make_invoice(due_in_days=-10)

        event_bus.publish(InvoiceReminder.create(invoice, overdue=True, days=10))

        job = _claim_notification(queue)
        assert job.payload["event_type"] == "invoice-overdue"
        assert job.payload["data"]["days_overdue"] == 10
        assert job.priority == 1

    def test_due_soon_reminder(self, event_bus, queue, make_invoice):
        invoice = make_invoice(due_in_days=2)

        event_bus.publish(InvoiceReminder.create(invoice, overdue=False, days=2))

        job = _claim_notification(queue)
        assert job.payload["event_type"] == "payment-warning"
        assert job.payload["data"]["days_until_due"] == 2
        assert job.payload["data"]["invoice_number"] == invoice.invoice_number


class TestServiceNotifications:

    def test_suspension(self, event_bus, queue, make_service):
        from core.lifecycle import suspend_service

        service = suspend_service(make_service(), "Invoice INV-1 overdue", now_utc())

        event_bus.publish(ServiceSuspended.create(service))

        job = _claim_notification(queue)
        assert job.payload["event_type"] == "service-suspended"
        assert job.payload["data"]["reason"] == "Invoice INV-1 overdue"


class TestEnqueueFailure:

    def test_queue_error_does_not_reach_publisher(self, make_domain):
        """A failed enqueue is logged by the bus, never raised."""
        from core.event_bus import EventBus
        from core.handlers.notification_handlers import register_notification_handlers

        class BrokenQueue:
            def enqueue(self, *args, **kwargs):
                raise ConnectionError("valkey down")

        bus = EventBus()
        register_notification_handlers(bus, BrokenQueue())

        bus.publish(DomainRegistered.create(make_domain()))


class TestRecipient:

    def test_invoice_notification_addressed_to_invoice_owner(self, event_bus, queue, make_invoice, client_b_id):
        from core.events import InvoicePaid

        invoice = make_invoice(client_id=client_b_id)

        event_bus.publish(InvoicePaid.create(invoice))

        job = _claim_notification(queue)
        assert job.payload["recipient_id"] == str(client_b_id)
        assert job.target_id == str(invoice.id)

    def test_event_without_recipient_not_queued(self, event_bus, queue):
        from core.events import InvoicePaid

        event_bus.publish(InvoicePaid.create(None))

        assert queue.pending_count(JobType.SEND_NOTIFICATION) == 0

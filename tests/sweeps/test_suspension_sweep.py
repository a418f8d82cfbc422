"""Tests for the suspension sweep."""

import pytest

from core.models import InvoiceStatus, ServiceStatus
from utils.timezone import now_utc


@pytest.fixture
def sweep(services):
    from sweeps.suspension import SuspensionSweep
    return SuspensionSweep(services["store"], services["event_bus"], services["config"])


class TestSuspension:

    def test_eight_days_overdue_suspends(self, sweep, store, make_invoice, make_service, published):
        invoice = make_invoice(due_in_days=-8)
        service = make_service(next_invoice_id=invoice.id)

        assert sweep.run(now_utc()) == {"suspended": 1}

        suspended = store.service(service.id)
        assert suspended.status == ServiceStatus.SUSPENDED
        assert suspended.suspension_reason == f"Invoice {invoice.invoice_number} overdue"
        assert store.invoice(invoice.id).status == InvoiceStatus.OVERDUE
        assert [e.__class__.__name__ for e in published] == ["ServiceSuspended"]

    def test_within_grace_period(self, sweep, store, make_invoice, make_service):
        invoice = make_invoice(due_in_days=-6)
        service = make_service(next_invoice_id=invoice.id)

        assert sweep.run(now_utc()) == {}
        assert store.service(service.id).status == ServiceStatus.ACTIVE

    def test_invoice_without_services(self, sweep, make_invoice):
        make_invoice(due_in_days=-8)
        assert sweep.run(now_utc()) == {}

    def test_already_suspended_not_repeated(self, sweep, make_invoice, make_service, published):
        invoice = make_invoice(due_in_days=-8)
        make_service(next_invoice_id=invoice.id)

        sweep.run(now_utc())
        assert sweep.run(now_utc()) == {}
        assert len(published) == 1

    def test_payment_after_suspension_reactivates(self, sweep, services, store, make_invoice, make_service, client_id):
        from core.models import PaymentMethod

        invoice = make_invoice(amount_cents=1000, due_in_days=-8)
        service = make_service(next_invoice_id=invoice.id)
        sweep.run(now_utc())
        store.set_balance(client_id, 1000)

        services["payment"].pay_invoice(invoice.id, PaymentMethod.WALLET)

        assert store.service(service.id).status == ServiceStatus.ACTIVE

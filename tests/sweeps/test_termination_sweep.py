"""Tests for the termination sweep."""

import pytest

from core.models import InvoiceStatus, ServiceStatus
from utils.timezone import now_utc


@pytest.fixture
def sweep(services):
    from sweeps.termination import TerminationSweep
    return TerminationSweep(services["store"], services["event_bus"], services["config"])


class TestTermination:

    def test_thirty_one_days_overdue_terminates(self, sweep, store, make_invoice, make_service, published):
        from core.lifecycle import suspend_service

        invoice = make_invoice(due_in_days=-31)
        service = make_service(next_invoice_id=invoice.id)
        store.put(suspend_service(store.service(service.id), "overdue", now_utc()))

        assert sweep.run(now_utc()) == {"terminated": 1}

        terminated = store.service(service.id)
        assert terminated.status == ServiceStatus.TERMINATED
        assert "30 days" in terminated.termination_reason
        assert store.invoice(invoice.id).status == InvoiceStatus.CANCELLED
        assert [e.__class__.__name__ for e in published] == ["ServiceTerminated"]

    def test_active_service_also_terminated(self, sweep, store, make_invoice, make_service):
        invoice = make_invoice(due_in_days=-40)
        service = make_service(next_invoice_id=invoice.id)

        sweep.run(now_utc())

        assert store.service(service.id).status == ServiceStatus.TERMINATED

    def test_twenty_nine_days_left_alone(self, sweep, store, make_invoice, make_service):
        invoice = make_invoice(due_in_days=-29)
        make_service(next_invoice_id=invoice.id)

        assert sweep.run(now_utc()) == {}
        assert store.invoice(invoice.id).status == InvoiceStatus.UNPAID

    def test_invoice_without_services_not_cancelled(self, sweep, store, make_invoice):
        invoice = make_invoice(due_in_days=-45)

        assert sweep.run(now_utc()) == {}
        assert store.invoice(invoice.id).status == InvoiceStatus.UNPAID

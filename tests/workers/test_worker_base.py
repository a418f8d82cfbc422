"""Tests for single-job execution and order completion helpers."""

from uuid import uuid4

import pytest

from core.models import JobState, JobType, OrderStatus, RegisterDomainPayload
from fakes import run_next
from workers.base import JobHandler


class FlakyHandler(JobHandler):
    """Register-queue handler that fails a set number of times."""

    job_type = JobType.REGISTER_DOMAIN
    payload_model = RegisterDomainPayload

    def __init__(self, failures: int):
        super().__init__(store=None, event_bus=None)
        self.failures = failures
        self.handled = 0
        self.exhausted: list[str] = []

    def handle(self, job, payload):
        self.handled += 1
        if self.handled <= self.failures:
            raise RuntimeError(f"boom {self.handled}")

    def on_exhausted(self, job, payload, error):
        self.exhausted.append(error)


@pytest.fixture
def enqueue_register(queue):
    def _enqueue(payload=None):
        return queue.enqueue(
            JobType.REGISTER_DOMAIN, "d1",
            payload if payload is not None else RegisterDomainPayload(domain_id=uuid4()),
        )
    return _enqueue


class TestExecute:

    def test_success_completes(self, queue, enqueue_register):
        enqueue_register()
        handler = FlakyHandler(failures=0)

        result = run_next(queue, handler)

        assert result.state == JobState.COMPLETED
        assert handler.exhausted == []

    def test_failure_then_success(self, queue, enqueue_register):
        enqueue_register()
        handler = FlakyHandler(failures=1)

        first = run_next(queue, handler)
        second = run_next(queue, handler, hours_ahead=1)

        assert first.state == JobState.PENDING
        assert first.last_error == "boom 1"
        assert second.state == JobState.COMPLETED

    def test_exhaustion_runs_terminal_handling_once(self, queue, enqueue_register):
        enqueue_register()
        handler = FlakyHandler(failures=99)

        results = [run_next(queue, handler, hours_ahead=i) for i in range(3)]

        assert [r.state for r in results] == [JobState.PENDING, JobState.PENDING, JobState.FAILED]
        assert handler.exhausted == ["boom 3"]
        assert queue.claim(JobType.REGISTER_DOMAIN) is None

    def test_invalid_payload_exhausted_immediately(self, queue, enqueue_register):
        enqueue_register({"domain_id": "not-a-uuid"})
        handler = FlakyHandler(failures=0)

        result = run_next(queue, handler)

        assert result.state == JobState.FAILED
        assert "invalid payload" in result.last_error
        assert handler.handled == 0
        assert len(queue.dead_jobs(JobType.REGISTER_DOMAIN)) == 1

    def test_failing_terminal_handling_is_contained(self, queue, enqueue_register, caplog):
        enqueue_register()
        handler = FlakyHandler(failures=99)

        def broken(*_):
            raise RuntimeError("terminal broke")

        handler.on_exhausted = broken

        results = [run_next(queue, handler, hours_ahead=i) for i in range(3)]

        assert results[-1].state == JobState.FAILED
        assert "Terminal handling" in caplog.text


class TestOrderHelpers:

    def _order(self, store, client_id, billing_details, status=OrderStatus.PAID):
        from core.models import Order, PaymentMethod
        from utils.timezone import now_utc

        now = now_utc()
        order = Order(
            id=uuid4(), order_number="ORD-2025-000009", client_id=client_id, items=[],
            subtotal_cents=0, total_cents=0, status=status, payment_method=PaymentMethod.WALLET,
            billing_details=billing_details, created_at=now, updated_at=now,
        )
        store.put(order)
        return order

    def test_completes_when_everything_active(self, store, make_domain, make_service, client_id, billing_details):
        from utils.timezone import now_utc
        from workers.base import complete_order_if_provisioned

        order = self._order(store, client_id, billing_details)
        make_domain("a.com", order_id=order.id)
        make_service(order_id=order.id)

        with store.unit_of_work() as unit:
            complete_order_if_provisioned(unit, order.id, now_utc())

        assert store.order(order.id).status == OrderStatus.COMPLETED

    def test_waits_for_pending_domain(self, store, make_domain, client_id, billing_details):
        from core.models import DomainStatus
        from utils.timezone import now_utc
        from workers.base import complete_order_if_provisioned

        order = self._order(store, client_id, billing_details)
        make_domain("a.com", order_id=order.id)
        make_domain("b.com", status=DomainStatus.PENDING, expires_in_days=None, order_id=order.id)

        with store.unit_of_work() as unit:
            complete_order_if_provisioned(unit, order.id, now_utc())

        assert store.order(order.id).status == OrderStatus.PAID

    def test_fail_order_leaves_completed_alone(self, store, client_id, billing_details):
        from utils.timezone import now_utc
        from workers.base import fail_order

        order = self._order(store, client_id, billing_details, status=OrderStatus.COMPLETED)

        with store.unit_of_work() as unit:
            fail_order(unit, order.id, "late failure", now_utc())

        assert store.order(order.id).status == OrderStatus.COMPLETED

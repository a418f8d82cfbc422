"""Tests for PaymentService - invoice payments, gateway confirmation and refunds."""

import pytest

from core.errors import InsufficientFunds, InvalidRefund, NotFoundError, ValidationError
from core.models import (
    InvoiceStatus, JobType, LineItem, LineItemKind, OrderStatus, PaymentMethod,
    ServiceStatus, TransactionType,
)


@pytest.fixture
def payments(services):
    return services["payment"]


@pytest.fixture
def gateway_order(services, client_id, billing_details):
    """A $30 registration ordered through the gateway, awaiting payment."""
    item = LineItem(
        kind=LineItemKind.DOMAIN_REGISTRATION, description="Register paid.com",
        unit_price_cents=3000, domain_name="paid.com",
    )
    return services["checkout"].checkout(client_id, PaymentMethod.RAZORPAY, billing_details, [item])


class TestPayInvoice:

    def test_wallet_pays_balance_due(self, payments, store, make_invoice, client_id):
        invoice = make_invoice(amount_cents=2000)
        store.set_balance(client_id, 2500)

        paid = payments.pay_invoice(invoice.id, PaymentMethod.WALLET)

        assert paid.status == InvoiceStatus.PAID
        assert store.balance(client_id) == 500
        [txn] = store.transactions(client_id)
        assert txn.type == TransactionType.PAYMENT
        assert paid.applied_transaction_ids == [str(txn.id)]

    def test_wallet_short_leaves_invoice_unpaid(self, payments, store, make_invoice, client_id):
        invoice = make_invoice(amount_cents=2000)
        store.set_balance(client_id, 1999)

        with pytest.raises(InsufficientFunds):
            payments.pay_invoice(invoice.id, PaymentMethod.WALLET)

        assert store.invoice(invoice.id).status == InvoiceStatus.UNPAID
        assert store.balance(client_id) == 1999
        assert store.transactions() == []

    def test_gateway_payment_applied_once(self, payments, store, gateway, make_invoice):
        """A redelivered confirmation is a no-op."""
        invoice = make_invoice(amount_cents=2000)
        payment_id = gateway.settle(2000)

        first = payments.pay_invoice(invoice.id, PaymentMethod.RAZORPAY, {"payment_id": payment_id})
        second = payments.pay_invoice(invoice.id, PaymentMethod.RAZORPAY, {"payment_id": payment_id})

        assert first.status == InvoiceStatus.PAID
        assert second.paid_cents == 2000
        assert second.applied_transaction_ids == [f"razorpay:{payment_id}"]
        assert len(store.transactions()) == 1

    def test_gateway_payment_not_reused_for_second_invoice(self, payments, store, gateway, make_invoice):
        from core.errors import ConflictError

        first = make_invoice(amount_cents=2000)
        second = make_invoice(amount_cents=2000)
        payment_id = gateway.settle(2000)
        payments.pay_invoice(first.id, PaymentMethod.RAZORPAY, {"payment_id": payment_id})

        with pytest.raises(ConflictError, match=payment_id):
            payments.pay_invoice(second.id, PaymentMethod.RAZORPAY, {"payment_id": payment_id})

        assert store.invoice(second.id).status == InvoiceStatus.UNPAID
        assert store.invoice(second.id).paid_cents == 0
        assert len(store.transactions()) == 1

    def test_top_up_payment_cannot_pay_invoice(self, payments, services, store, gateway, make_invoice, client_id):
        from core.errors import ConflictError

        invoice = make_invoice(amount_cents=2000)
        payment_id = gateway.settle(2000)
        services["wallet"].add_funds(client_id, PaymentMethod.RAZORPAY, {"payment_id": payment_id})

        with pytest.raises(ConflictError):
            payments.pay_invoice(invoice.id, PaymentMethod.RAZORPAY, {"payment_id": payment_id})

        assert store.invoice(invoice.id).paid_cents == 0
        assert store.balance(client_id) == 2000

    def test_partial_gateway_payment(self, payments, gateway, make_invoice):
        invoice = make_invoice(amount_cents=2000)
        payment_id = gateway.settle(500)

        updated = payments.pay_invoice(invoice.id, PaymentMethod.RAZORPAY, {"payment_id": payment_id})

        assert updated.status == InvoiceStatus.PARTIALLY_PAID
        assert updated.balance_due_cents == 1500

    def test_unknown_invoice(self, payments):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            payments.pay_invoice(uuid4(), PaymentMethod.WALLET)

    def test_unverified_gateway_payment_writes_nothing(self, payments, store, make_invoice):
        from clients.payment_gateway_client import PaymentGatewayError

        invoice = make_invoice()

        with pytest.raises(PaymentGatewayError):
            payments.pay_invoice(invoice.id, PaymentMethod.RAZORPAY, {"payment_id": "pay_forged"})

        assert store.invoice(invoice.id).paid_cents == 0

    def test_paying_reactivates_suspended_service(self, payments, store, make_invoice, make_service, client_id):
        from core.lifecycle import suspend_service
        from utils.timezone import now_utc

        invoice = make_invoice(amount_cents=1000, due_in_days=-10)
        service = make_service(next_invoice_id=invoice.id)
        store.put(suspend_service(service, "overdue", now_utc()))
        store.set_balance(client_id, 1000)

        payments.pay_invoice(invoice.id, PaymentMethod.WALLET)

        restored = store.service(service.id)
        assert restored.status == ServiceStatus.ACTIVE
        assert restored.suspension_reason is None


class TestConfirmOrderPayment:

    def test_confirmation_pays_order_and_queues_jobs(self, payments, store, queue, gateway, gateway_order):
        payment_id = gateway.settle(3000, order_id="order_1")

        invoice = payments.confirm_order_payment(gateway_order.order_id, {"payment_id": payment_id})

        assert invoice.status == InvoiceStatus.PAID
        order = store.order(gateway_order.order_id)
        assert order.status == OrderStatus.PAID
        assert order.paid_cents == 3000
        [domain_id] = gateway_order.domain_ids
        assert queue.is_pending(JobType.REGISTER_DOMAIN, f"register-domain:{domain_id}")

    def test_duplicate_confirmation_queues_once(self, payments, queue, gateway, gateway_order):
        payment_id = gateway.settle(3000, order_id="order_1")

        payments.confirm_order_payment(gateway_order.order_id, {"payment_id": payment_id})
        payments.confirm_order_payment(gateway_order.order_id, {"payment_id": payment_id})

        assert queue.pending_count(JobType.REGISTER_DOMAIN) == 1

    def test_payment_for_other_gateway_order_rejected(self, payments, store, gateway, gateway_order):
        payment_id = gateway.settle(3000, order_id="order_999")

        with pytest.raises(ValidationError, match="belongs to gateway order"):
            payments.confirm_order_payment(gateway_order.order_id, {"payment_id": payment_id})

        assert store.order(gateway_order.order_id).status == OrderStatus.PROCESSING

    def test_wallet_order_is_not_confirmable(self, payments, services, store, client_id, billing_details):
        store.set_balance(client_id, 1000)
        item = LineItem(
            kind=LineItemKind.DOMAIN_REGISTRATION, description="Register w.com",
            unit_price_cents=1000, domain_name="w.com",
        )
        summary = services["checkout"].checkout(client_id, PaymentMethod.WALLET, billing_details, [item])

        with pytest.raises(ValidationError, match="not a gateway order"):
            payments.confirm_order_payment(summary.order_id, {"payment_id": "pay_x"})


class TestRefunds:

    def test_wallet_refund_credits_wallet(self, payments, store, make_invoice, client_id, admin_id):
        invoice = make_invoice(amount_cents=2000)
        store.set_balance(client_id, 2000)
        payments.pay_invoice(invoice.id, PaymentMethod.WALLET)
        [payment] = store.transactions(client_id)

        refund = payments.refund_transaction(payment.id, 500, reason="goodwill", admin_id=admin_id)

        assert refund.type == TransactionType.REFUND
        assert refund.original_transaction_id == payment.id
        assert store.balance(client_id) == 500
        assert store.invoice(invoice.id).status == InvoiceStatus.PARTIALLY_PAID

    def test_gateway_refund_goes_through_gateway(self, payments, store, gateway, make_invoice, admin_id):
        invoice = make_invoice(amount_cents=2000)
        payment_id = gateway.settle(2000)
        payments.pay_invoice(invoice.id, PaymentMethod.RAZORPAY, {"payment_id": payment_id})
        [payment] = store.transactions()

        refund = payments.refund_transaction(payment.id, admin_id=admin_id)

        assert gateway.refunds[0].payment_id == payment_id
        assert gateway.refunds[0].amount_cents == 2000
        assert refund.gateway_refund_id == "rfnd_1"
        assert store.invoice(invoice.id).status == InvoiceStatus.REFUNDED

    def test_refund_beyond_paid_rejected(self, payments, store, make_invoice, client_id, admin_id):
        invoice = make_invoice(amount_cents=2000)
        store.set_balance(client_id, 2000)
        payments.pay_invoice(invoice.id, PaymentMethod.WALLET)
        [payment] = store.transactions(client_id)

        payments.refund_transaction(payment.id, 1500, admin_id=admin_id)
        with pytest.raises(InvalidRefund):
            payments.refund_transaction(payment.id, 600, admin_id=admin_id)

        assert store.balance(client_id) == 1500

    def test_refund_of_refund_rejected(self, payments, store, make_invoice, client_id, admin_id):
        invoice = make_invoice(amount_cents=2000)
        store.set_balance(client_id, 2000)
        payments.pay_invoice(invoice.id, PaymentMethod.WALLET)
        [payment] = store.transactions(client_id)
        refund = payments.refund_transaction(payment.id, 500, admin_id=admin_id)

        with pytest.raises(InvalidRefund, match="not a successful payment"):
            payments.refund_transaction(refund.id, admin_id=admin_id)

    def test_full_refund_marks_order_refunded(self, payments, services, store, client_id, billing_details, admin_id):
        store.set_balance(client_id, 1000)
        item = LineItem(
            kind=LineItemKind.DOMAIN_REGISTRATION, description="Register r.com",
            unit_price_cents=1000, domain_name="r.com",
        )
        summary = services["checkout"].checkout(client_id, PaymentMethod.WALLET, billing_details, [item])
        [payment] = store.transactions(client_id)

        payments.refund_transaction(payment.id, admin_id=admin_id)

        assert store.order(summary.order_id).status == OrderStatus.REFUNDED
        assert store.balance(client_id) == 1000

    def test_refund_is_audited_as_admin(self, payments, store, make_invoice, client_id, admin_id):
        invoice = make_invoice(amount_cents=2000)
        store.set_balance(client_id, 2000)
        payments.pay_invoice(invoice.id, PaymentMethod.WALLET)
        [payment] = store.transactions(client_id)

        refund = payments.refund_transaction(payment.id, 500, admin_id=admin_id)

        [entry] = [e for e in store.audit_entries("transaction") if e.entity_id == str(refund.id)]
        assert entry.actor == f"admin:{admin_id}"

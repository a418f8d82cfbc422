"""
Payment confirmation and refunds.

Gateway payments are verified with the gateway before any ledger write.
Each payment is applied to its invoice under a reference that makes the
application idempotent:

    wallet:   the wallet Transaction id
    gateway:  "<gateway>:<gateway payment id>"

A redelivered confirmation for the same gateway payment is a no-op; the
same payment offered for a different invoice is a conflict.
"""

import logging
from uuid import UUID

from core import lifecycle
from core.errors import ConflictError, InvalidRefund, NotFoundError, ValidationError
from core.event_bus import EventBus
from core.events import RefundProcessed
from core.invoicing import apply_payment, apply_refund
from core.ledger import LedgerStore, LedgerUnit
from core.lifecycle import apply_transition
from core.models import (
    Invoice,
    InvoiceStatus,
    OrderStatus,
    PaymentMethod,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from core.services.provisioning_service import ProvisioningService
from core.services.wallet_service import credit_wallet, debit_wallet, record_transaction
from utils.actor_context import actor_context
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def gateway_reference(gateway: PaymentMethod, payment_id: str) -> str:
    return f"{gateway.value}:{payment_id}"


class PaymentService:
    """Service for paying invoices and refunding payments."""

    def __init__(
        self,
        store: LedgerStore,
        event_bus: EventBus,
        provisioning: ProvisioningService,
        gateways: dict | None = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self.provisioning = provisioning
        self.gateways = gateways or {}

    def _gateway(self, method: PaymentMethod):
        client = self.gateways.get(method)
        if client is None:
            raise ValidationError(f"Payment method {method.value} is not available")
        return client

    def pay_invoice(self, invoice_id: UUID, gateway: PaymentMethod, payment_data: dict | None = None) -> Invoice:
        """
        Pay an invoice.

        Wallet payments settle the full balance due. Gateway payments apply
        the amount the gateway reports for the verified payment.

        Raises:
            NotFoundError: Unknown invoice
            ValidationError: Invoice not payable, or gateway unavailable
            ConflictError: Gateway payment already used for another invoice or a top-up
            InsufficientFunds: Wallet cannot cover the balance due
            PaymentGatewayError: Gateway verification failed
        """
        payment = None
        if gateway.is_gateway:
            payment = self._gateway(gateway).verify_payment(payment_data or {})

        with self.store.unit_of_work() as unit:
            invoice = unit.get_invoice(invoice_id, for_update=True)
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")

            with actor_context(f"client:{invoice.client_id}"):
                if payment is None:
                    updated = self._pay_from_wallet(unit, invoice)
                else:
                    updated = self._apply_gateway_payment(unit, invoice, gateway, payment)

        return updated

    def confirm_order_payment(self, order_id: UUID, payment_data: dict) -> Invoice:
        """
        Gateway callback for an order placed with a gateway payment method.

        Raises:
            NotFoundError: Unknown order or order without invoice
            ValidationError: Order was not placed with a gateway, or the
                payment belongs to another gateway order
            ConflictError: Payment already used for another invoice or a top-up
        """
        with self.store.unit_of_work() as unit:
            order = unit.get_order(order_id)
        if order is None or order.invoice_id is None:
            raise NotFoundError(f"Order {order_id} not found")
        if not order.payment_method.is_gateway:
            raise ValidationError(f"Order {order.order_number} is not a gateway order")

        payment = self._gateway(order.payment_method).verify_payment(payment_data)
        if order.gateway_order_id and payment.order_id and payment.order_id != order.gateway_order_id:
            raise ValidationError(
                f"Payment {payment.id} belongs to gateway order {payment.order_id}, "
                f"not {order.gateway_order_id}"
            )

        with self.store.unit_of_work() as unit:
            invoice = unit.get_invoice(order.invoice_id, for_update=True)
            if invoice is None:
                raise NotFoundError(f"Invoice {order.invoice_id} not found")
            with actor_context(f"client:{order.client_id}"):
                updated = self._apply_gateway_payment(unit, invoice, order.payment_method, payment)

        logger.info(f"Confirmed payment {payment.id} for order {order.order_number}")
        return updated

    def _pay_from_wallet(self, unit: LedgerUnit, invoice: Invoice) -> Invoice:
        if not invoice.status.is_open:
            raise ValidationError(f"Invoice {invoice.invoice_number} is {invoice.status.value}")
        amount = invoice.balance_due_cents
        if amount <= 0:
            raise ValidationError(f"Invoice {invoice.invoice_number} has nothing due")

        now = now_utc()
        debit_wallet(unit, invoice.client_id, amount)
        txn = record_transaction(
            unit, invoice.client_id, TransactionType.PAYMENT, PaymentMethod.WALLET, amount,
            currency=invoice.currency,
            invoice_id=invoice.id,
            order_id=invoice.order_id,
            description=f"Payment for {invoice.invoice_number}",
        )
        return self._settle(unit, invoice, amount, str(txn.id), now)

    def _apply_gateway_payment(self, unit: LedgerUnit, invoice: Invoice, gateway: PaymentMethod, payment) -> Invoice:
        reference = gateway_reference(gateway, payment.id)
        if reference in invoice.applied_transaction_ids:
            logger.info(f"Payment {reference} already applied to {invoice.invoice_number}")
            return invoice
        existing = unit.find_gateway_transaction(gateway, payment.id)
        if existing is not None:
            if existing.invoice_id != invoice.id:
                raise ConflictError(f"Payment {reference} was already used by {existing.transaction_number}")
            return invoice
        if not invoice.status.is_open:
            raise ValidationError(f"Invoice {invoice.invoice_number} is {invoice.status.value}")

        now = now_utc()
        record_transaction(
            unit, invoice.client_id, TransactionType.PAYMENT, gateway, payment.amount_cents,
            currency=payment.currency,
            invoice_id=invoice.id,
            order_id=invoice.order_id,
            gateway_payment_id=payment.id,
            description=f"Payment for {invoice.invoice_number}",
        )
        return self._settle(unit, invoice, payment.amount_cents, reference, now)

    def _settle(self, unit: LedgerUnit, invoice: Invoice, amount: int, reference: str, now) -> Invoice:
        updated = apply_payment(invoice, amount, reference, now)
        unit.save_invoice(updated)
        unit.audit.log_update("invoice", invoice, updated)
        self.provisioning.after_invoice_settled(unit, updated, now)
        logger.info(
            f"Applied {amount} cents to {invoice.invoice_number} ({reference}), "
            f"status {updated.status.value}"
        )
        return updated

    def refund_transaction(
        self,
        transaction_id: UUID,
        amount_cents: int | None = None,
        reason: str | None = None,
        admin_id: str = "",
    ) -> Transaction:
        """
        Refund (part of) a successful payment.

        Gateway payments are refunded through the gateway first; the ledger
        is only written once the gateway accepted the refund. Wallet
        payments are credited back to the wallet in the same unit.

        Raises:
            NotFoundError: Unknown transaction
            InvalidRefund: Not a refundable payment, or amount too large
            PaymentGatewayError: Gateway rejected the refund
        """
        with self.store.unit_of_work() as unit:
            original = unit.get_transaction(transaction_id)
        if original is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if original.type != TransactionType.PAYMENT or original.status != TransactionStatus.SUCCESS:
            raise InvalidRefund(f"Transaction {original.transaction_number} is not a successful payment")

        amount = original.refundable_cents if amount_cents is None else amount_cents
        if amount <= 0 or amount > original.refundable_cents:
            raise InvalidRefund(
                f"Refund of {amount} cents is not possible; {original.refundable_cents} cents refundable "
                f"on {original.transaction_number}"
            )

        gateway_refund_id = None
        if original.gateway.is_gateway:
            if not original.gateway_payment_id:
                raise InvalidRefund(f"Transaction {original.transaction_number} has no gateway payment id")
            refund = self._gateway(original.gateway).refund(original.gateway_payment_id, amount, reason)
            gateway_refund_id = refund.id

        with actor_context(f"admin:{admin_id}"):
            with self.store.unit_of_work() as unit:
                refund_txn = self._record_refund(unit, transaction_id, amount, reason, gateway_refund_id)

        logger.info(f"Refunded {amount} cents of {refund_txn.original_transaction_id} by admin {admin_id}")
        return refund_txn

    def _record_refund(
        self,
        unit: LedgerUnit,
        transaction_id: UUID,
        amount: int,
        reason: str | None,
        gateway_refund_id: str | None,
    ) -> Transaction:
        now = now_utc()
        original = unit.get_transaction(transaction_id, for_update=True)
        if amount > original.refundable_cents:
            raise InvalidRefund(f"Transaction {original.transaction_number} was refunded concurrently")

        updated_original = original.model_copy(update={"refunded_cents": original.refunded_cents + amount})
        unit.save_transaction(updated_original)
        unit.audit.log_update("transaction", original, updated_original)

        if original.gateway == PaymentMethod.WALLET:
            credit_wallet(unit, original.client_id, amount)

        refund_txn = record_transaction(
            unit, original.client_id, TransactionType.REFUND, original.gateway, amount,
            currency=original.currency,
            invoice_id=original.invoice_id,
            order_id=original.order_id,
            original_transaction_id=original.id,
            gateway_payment_id=original.gateway_payment_id,
            gateway_refund_id=gateway_refund_id,
            description=reason or f"Refund of {original.transaction_number}",
        )

        if original.invoice_id is not None:
            invoice = unit.get_invoice(original.invoice_id, for_update=True)
            if invoice is not None:
                refunded = apply_refund(invoice, amount, now)
                unit.save_invoice(refunded)
                unit.audit.log_update("invoice", invoice, refunded)
                if refunded.status == InvoiceStatus.REFUNDED:
                    self._refund_order(unit, refunded, now)

        unit.outbox.publish(self.event_bus, RefundProcessed.create(refund_txn))
        return refund_txn

    def _refund_order(self, unit: LedgerUnit, invoice: Invoice, now) -> None:
        if invoice.order_id is None:
            return
        order = unit.get_order(invoice.order_id, for_update=True)
        if order is None or order.status == OrderStatus.REFUNDED:
            return
        refunded = apply_transition(lifecycle.mark_order_refunded, order, now)
        if refunded is not None:
            unit.save_order(refunded)
            unit.audit.log_update("order", order, refunded)

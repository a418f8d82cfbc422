"""
Wallet service: balances, admin adjustments and gateway top-ups.

A wallet balance only changes inside a ledger unit that also writes the
Transaction explaining the change. The module-level helpers below are the
one place that pairs the two; other services call them with their own unit.
"""

import logging
from uuid import UUID, uuid4

from core.errors import ConflictError, InsufficientFunds, ValidationError
from core.event_bus import EventBus
from core.events import WalletAdjusted
from core.ledger import LedgerStore, LedgerUnit
from core.models import (
    PaymentMethod, Transaction, TransactionStatus, TransactionType, Wallet,
)
from utils.actor_context import actor_context
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def record_transaction(
    unit: LedgerUnit,
    client_id: UUID,
    type: TransactionType,
    gateway: PaymentMethod,
    amount_cents: int,
    **fields,
) -> Transaction:
    """Append a successful transaction (plus its audit entry) to the unit."""
    txn = Transaction(
        id=uuid4(),
        transaction_number=unit.next_transaction_number(),
        client_id=client_id,
        type=type,
        gateway=gateway,
        amount_cents=amount_cents,
        status=TransactionStatus.SUCCESS,
        created_at=now_utc(),
        **fields,
    )
    unit.save_transaction(txn)
    unit.audit.log_create("transaction", txn)
    return txn


def debit_wallet(unit: LedgerUnit, client_id: UUID, amount_cents: int) -> Wallet:
    """
    Lock and debit a wallet.

    Raises:
        InsufficientFunds: Balance below amount. Nothing was written.
    """
    wallet = unit.get_wallet(client_id, for_update=True)
    if wallet.balance_cents < amount_cents:
        raise InsufficientFunds(required_cents=amount_cents, available_cents=wallet.balance_cents)

    updated = wallet.model_copy(update={
        "balance_cents": wallet.balance_cents - amount_cents,
        "updated_at": now_utc(),
    })
    unit.save_wallet(updated)
    unit.audit.log_update("wallet", wallet, updated, entity_id=client_id)
    return updated


def credit_wallet(unit: LedgerUnit, client_id: UUID, amount_cents: int) -> Wallet:
    wallet = unit.get_wallet(client_id, for_update=True)
    updated = wallet.model_copy(update={
        "balance_cents": wallet.balance_cents + amount_cents,
        "updated_at": now_utc(),
    })
    unit.save_wallet(updated)
    unit.audit.log_update("wallet", wallet, updated, entity_id=client_id)
    return updated


class WalletService:
    """Service for wallet operations."""

    def __init__(self, store: LedgerStore, event_bus: EventBus, gateways: dict | None = None):
        self.store = store
        self.event_bus = event_bus
        self.gateways = gateways or {}

    def get_balance(self, client_id: UUID) -> int:
        with self.store.unit_of_work() as unit:
            return unit.get_wallet(client_id).balance_cents

    def adjust_wallet(
        self,
        client_id: UUID,
        amount_cents: int,
        type: TransactionType,
        reason: str,
        admin_id: str,
    ) -> Transaction:
        """
        Admin credit or debit.

        Raises:
            ValidationError: Bad amount, type or missing reason
            InsufficientFunds: Debit larger than the balance
        """
        if amount_cents <= 0:
            raise ValidationError("Amount must be positive")
        if type not in (TransactionType.CREDIT, TransactionType.DEBIT):
            raise ValidationError("Adjustment type must be credit or debit")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for wallet adjustments")

        with actor_context(f"admin:{admin_id}"):
            with self.store.unit_of_work() as unit:
                if type == TransactionType.DEBIT:
                    wallet = debit_wallet(unit, client_id, amount_cents)
                else:
                    wallet = credit_wallet(unit, client_id, amount_cents)

                txn = record_transaction(
                    unit, client_id, type, PaymentMethod.WALLET, amount_cents,
                    description=f"Admin adjustment: {reason.strip()}",
                )
                unit.outbox.publish(self.event_bus, WalletAdjusted.create(txn, wallet.balance_cents))

        logger.info(f"Wallet {type.value} of {amount_cents} cents for client {client_id} by admin {admin_id}")
        return txn

    def add_funds(
        self,
        client_id: UUID,
        gateway: PaymentMethod,
        payment_data: dict,
    ) -> Transaction:
        """
        Top up a wallet with a gateway payment.

        The payment is verified with the gateway before anything is written;
        the credited amount is what the gateway reports, not what the client sent.
        Submitting the same gateway payment again returns the original credit.

        Raises:
            ValidationError: Unknown or unsupported gateway
            ConflictError: The payment was already used elsewhere
            PaymentGatewayError: Verification failed
        """
        client = self.gateways.get(gateway)
        if gateway == PaymentMethod.WALLET or client is None:
            raise ValidationError(f"Cannot add funds via {gateway.value}")

        payment = client.verify_payment(payment_data)

        with actor_context(f"client:{client_id}"):
            with self.store.unit_of_work() as unit:
                existing = unit.find_gateway_transaction(gateway, payment.id)
                if existing is not None:
                    if existing.type != TransactionType.CREDIT or existing.client_id != client_id:
                        raise ConflictError(
                            f"Payment {payment.id} was already used by {existing.transaction_number}"
                        )
                    logger.info(f"Payment {payment.id} already credited as {existing.transaction_number}")
                    return existing

                wallet = credit_wallet(unit, client_id, payment.amount_cents)
                txn = record_transaction(
                    unit, client_id, TransactionType.CREDIT, gateway, payment.amount_cents,
                    currency=payment.currency,
                    gateway_payment_id=payment.id,
                    description="Wallet top-up",
                )
                unit.outbox.publish(self.event_bus, WalletAdjusted.create(txn, wallet.balance_cents))

        logger.info(f"Added {payment.amount_cents} cents to wallet of client {client_id} via {gateway.value}")
        return txn

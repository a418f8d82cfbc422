"""
Checkout orchestration: cart -> Order + Invoice + pending Domains/Services.

Everything financial happens in one ledger unit:

    wallet debit, Transaction, Order, Invoice, Domain/Service records, audit

Either all of it commits or none of it does. Registrar work is never done
here; jobs are enqueued from the outbox after the commit, and the cart is
cleared the same way.
"""

import logging
from uuid import UUID, uuid4

from core import lifecycle
from core.config import ProvisioningConfig
from core.errors import ConflictError, InsufficientFunds, NotFoundError, ValidationError
from core.event_bus import EventBus
from core.events import InvoicePaid, OrderPaid, OrderPlaced
from core.invoicing import apply_payment, build_invoice, compute_tax_cents
from core.ledger import LedgerStore, LedgerUnit
from core.lifecycle import apply_transition
from core.models import (
    BillingDetails,
    Domain,
    DomainStatus,
    InvoiceItem,
    InvoiceStatus,
    LineItem,
    LineItemKind,
    Order,
    OrderStatus,
    OrderSummary,
    PaymentMethod,
    Service,
    ServiceStatus,
    TransactionType,
)
from core.services.provisioning_service import ProvisioningService
from core.services.wallet_service import debit_wallet, record_transaction
from utils.actor_context import actor_context
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class CheckoutService:
    """Service for turning a cart into a committed order."""

    def __init__(
        self,
        store: LedgerStore,
        event_bus: EventBus,
        provisioning: ProvisioningService,
        config: ProvisioningConfig,
        cart_service=None,
        gateways: dict | None = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self.provisioning = provisioning
        self.config = config
        self.cart_service = cart_service
        self.gateways = gateways or {}

    def checkout(
        self,
        client_id: UUID,
        payment_method: PaymentMethod,
        billing_details: BillingDetails,
        items: list[LineItem] | None = None,
    ) -> OrderSummary:
        """
        Place an order.

        Args:
            client_id: Buyer
            payment_method: wallet pays now; gateways leave the order pending
            billing_details: Registrant contact for domain items
            items: Line items; defaults to the client's stored cart

        Returns:
            OrderSummary of the committed order

        Raises:
            ValidationError: Empty cart, bad item, unknown gateway
            InsufficientFunds: Wallet cannot cover the total
            ConflictError: A domain name is already held by another record
        """
        if items is None:
            if self.cart_service is None:
                raise ValidationError("No items given and no cart store configured")
            items = self.cart_service.get_cart(client_id).items
        if not items:
            raise ValidationError("Cart is empty")
        if payment_method.is_gateway and payment_method not in self.gateways:
            raise ValidationError(f"Payment method {payment_method.value} is not available")

        self._check_duplicate_names(items)

        subtotal = sum(item.total_cents for item in items)
        tax = compute_tax_cents(subtotal, self.config.tax_rate_bps)
        total = subtotal + tax

        with actor_context(f"client:{client_id}"):
            with self.store.unit_of_work() as unit:
                summary = self._place(unit, client_id, payment_method, billing_details, items, subtotal, tax, total)

        logger.info(
            f"Checkout {summary.order_number} for client {client_id}: "
            f"{total} cents via {payment_method.value}, status {summary.status.value}"
        )
        return summary

    def _check_duplicate_names(self, items: list[LineItem]) -> None:
        seen = set()
        for item in items:
            if not item.kind.is_domain or item.kind == LineItemKind.DOMAIN_RENEWAL:
                continue
            if item.domain_name in seen:
                raise ValidationError(f"{item.domain_name} appears more than once")
            seen.add(item.domain_name)

    def _place(
        self,
        unit: LedgerUnit,
        client_id: UUID,
        payment_method: PaymentMethod,
        billing_details: BillingDetails,
        items: list[LineItem],
        subtotal: int,
        tax: int,
        total: int,
    ) -> OrderSummary:
        now = now_utc()
        is_wallet = payment_method == PaymentMethod.WALLET

        # Checks first: nothing below this block may fail for business reasons
        wallet = unit.get_wallet(client_id, for_update=True) if is_wallet else None
        if wallet is not None and wallet.balance_cents < total:
            raise InsufficientFunds(required_cents=total, available_cents=wallet.balance_cents)
        self._validate_items(unit, client_id, items)

        order_id = uuid4()
        invoice_id = uuid4()
        domains: list[Domain] = []
        services: list[Service] = []
        order_items: list[LineItem] = []

        for item in items:
            if item.kind in (LineItemKind.DOMAIN_REGISTRATION, LineItemKind.DOMAIN_TRANSFER):
                domain = self._new_domain(item, client_id, order_id, now)
                domains.append(domain)
                order_items.append(item.model_copy(update={"reference_id": domain.id}))
            elif item.kind == LineItemKind.DOMAIN_RENEWAL:
                order_items.append(item.model_copy(update={"reference_id": item.domain_id}))
            else:
                service = self._new_service(item, client_id, order_id, invoice_id, now)
                services.append(service)
                order_items.append(item.model_copy(update={"reference_id": service.id}))

        order = Order(
            id=order_id,
            order_number=unit.next_order_number(),
            client_id=client_id,
            items=order_items,
            subtotal_cents=subtotal,
            tax_cents=tax,
            total_cents=total,
            currency=self.config.currency,
            status=OrderStatus.PAID if is_wallet else OrderStatus.PENDING,
            payment_method=payment_method,
            billing_details=billing_details,
            invoice_id=invoice_id,
            paid_cents=total if is_wallet else 0,
            paid_at=now if is_wallet else None,
            created_at=now,
            updated_at=now,
        )

        invoice = build_invoice(
            invoice_number=unit.next_invoice_number(),
            client_id=client_id,
            items=[
                InvoiceItem(
                    description=item.description,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    kind=item.kind,
                    reference_id=item.reference_id,
                )
                for item in order_items
            ],
            now=now,
            due_days=self.config.default_due_days,
            order_id=order_id,
            tax_rate_bps=self.config.tax_rate_bps,
            currency=self.config.currency,
        ).model_copy(update={"id": invoice_id})

        if is_wallet:
            if total > 0:
                wallet = debit_wallet(unit, client_id, total)
                txn = record_transaction(
                    unit, client_id, TransactionType.PAYMENT, PaymentMethod.WALLET, total,
                    currency=self.config.currency,
                    invoice_id=invoice_id,
                    order_id=order_id,
                    description=f"Payment for {order.order_number}",
                )
                invoice = apply_payment(invoice, total, str(txn.id), now)
            else:
                invoice = invoice.model_copy(update={"status": InvoiceStatus.PAID, "paid_at": now})

        for domain in domains:
            unit.save_domain(domain)
            unit.audit.log_create("domain", domain)
        for service in services:
            unit.save_service(service)
            unit.audit.log_create("service", service)
        unit.save_order(order)
        unit.audit.log_create("order", order)
        unit.save_invoice(invoice)
        unit.audit.log_create("invoice", invoice)

        if is_wallet:
            self.provisioning.schedule_order_jobs(unit, order)
            self.provisioning.activate_order_services(unit, order, now)
        else:
            unit.outbox.add(
                f"create gateway order for {order.order_number}",
                lambda: self._open_gateway_order(order),
            )

        if self.cart_service is not None:
            unit.outbox.add(f"clear cart {client_id}", lambda: self.cart_service.clear(client_id))

        unit.outbox.publish(self.event_bus, OrderPlaced.create(order, invoice))
        if is_wallet:
            unit.outbox.publish(self.event_bus, OrderPaid.create(order))
            unit.outbox.publish(self.event_bus, InvoicePaid.create(invoice))

        return OrderSummary(
            order_id=order.id,
            order_number=order.order_number,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            status=order.status,
            payment_method=payment_method,
            total_cents=total,
            domain_ids=[d.id for d in domains],
            service_ids=[s.id for s in services],
            wallet_balance_cents=wallet.balance_cents if wallet is not None else None,
        )

    def _validate_items(self, unit: LedgerUnit, client_id: UUID, items: list[LineItem]) -> None:
        for item in items:
            if item.kind in (LineItemKind.DOMAIN_REGISTRATION, LineItemKind.DOMAIN_TRANSFER):
                if item.tld is None:
                    raise ValidationError(f"Invalid domain name: {item.domain_name}")
                if unit.domain_name_exists(item.domain_name):
                    raise ConflictError(f"Domain {item.domain_name} is already registered")
            elif item.kind == LineItemKind.DOMAIN_RENEWAL:
                domain = unit.get_domain(item.domain_id)
                if domain is None or domain.client_id != client_id:
                    raise NotFoundError(f"Domain {item.domain_id} not found")
                if domain.status != DomainStatus.ACTIVE:
                    raise ValidationError(
                        f"Domain {domain.domain_name} cannot be renewed (status: {domain.status.value})"
                    )

    def _new_domain(self, item: LineItem, client_id: UUID, order_id: UUID, now) -> Domain:
        is_transfer = item.kind == LineItemKind.DOMAIN_TRANSFER
        return Domain(
            id=uuid4(),
            client_id=client_id,
            order_id=order_id,
            domain_name=item.domain_name,
            tld=item.tld,
            status=DomainStatus.PENDING_TRANSFER if is_transfer else DomainStatus.PENDING,
            years=item.years,
            auto_renew=item.auto_renew,
            privacy_protection=item.privacy_protection,
            nameservers=item.nameservers,
            auth_code=item.auth_code if is_transfer else None,
            created_at=now,
            updated_at=now,
        )

    def _new_service(self, item: LineItem, client_id: UUID, order_id: UUID, invoice_id: UUID, now) -> Service:
        return Service(
            id=uuid4(),
            client_id=client_id,
            order_id=order_id,
            product_id=item.product_id,
            kind=item.kind,
            billing_cycle=item.billing_cycle,
            price_cents=item.total_cents,
            status=ServiceStatus.PENDING,
            next_invoice_id=invoice_id,
            created_at=now,
            updated_at=now,
        )

    def _open_gateway_order(self, order: Order) -> None:
        """Post-commit: create the gateway order and move the order to processing."""
        gateway = self.gateways[order.payment_method]
        gateway_order = gateway.create_order(
            amount_cents=order.total_cents,
            currency=order.currency,
            receipt=order.order_number,
            notes={"order_id": str(order.id)},
        )

        with self.store.unit_of_work() as unit:
            current = unit.get_order(order.id, for_update=True)
            if current is None:
                return
            updated = apply_transition(lifecycle.mark_order_processing, current, gateway_order.id, now_utc())
            if updated is None:
                return
            unit.save_order(updated)
            unit.audit.log_update("order", current, updated)

"""
Invoice arithmetic and status rules.

Pure functions over Invoice values. Totals are recomputed only when items
(or the credit applied against them) change; payment and refund fields
never trigger a recompute.

    total = max(0, subtotal - discount - credit + tax)
"""

from datetime import datetime, timedelta
from uuid import UUID, uuid4

from core.errors import InvalidRefund, ValidationError
from core.models import Invoice, InvoiceItem, InvoiceStatus


def compute_tax_cents(taxable_cents: int, tax_rate_bps: int) -> int:
    """Tax rate is basis points (10000 = 100%). Rounds down."""
    return (max(0, taxable_cents) * tax_rate_bps) // 10000


def compute_total_cents(subtotal: int, discount: int, credit: int, tax: int) -> int:
    return max(0, subtotal - discount - credit + tax)


def build_invoice(
    invoice_number: str,
    client_id: UUID,
    items: list[InvoiceItem],
    now: datetime,
    due_days: int,
    order_id: UUID | None = None,
    service_id: UUID | None = None,
    discount_cents: int = 0,
    tax_rate_bps: int = 0,
    currency: str = "USD",
    notes: str | None = None,
) -> Invoice:
    """New unpaid invoice with totals derived from items."""
    if not items:
        raise ValidationError("Invoice needs at least one item")

    subtotal = sum(item.amount_cents for item in items)
    tax = compute_tax_cents(subtotal - discount_cents, tax_rate_bps)
    return Invoice(
        id=uuid4(),
        invoice_number=invoice_number,
        client_id=client_id,
        order_id=order_id,
        service_id=service_id,
        items=items,
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        tax_cents=tax,
        total_cents=compute_total_cents(subtotal, discount_cents, 0, tax),
        currency=currency,
        status=InvoiceStatus.UNPAID,
        due_at=now + timedelta(days=due_days),
        notes=notes,
        created_at=now,
        updated_at=now,
    )


def replace_items(invoice: Invoice, items: list[InvoiceItem], now: datetime, tax_rate_bps: int | None = None) -> Invoice:
    """Swap the item list and recompute subtotal, tax and total."""
    if invoice.status != InvoiceStatus.UNPAID or invoice.paid_cents:
        raise ValidationError(f"Invoice {invoice.invoice_number} already has payments; items are locked")
    if not items:
        raise ValidationError("Invoice needs at least one item")

    subtotal = sum(item.amount_cents for item in items)
    tax = invoice.tax_cents if tax_rate_bps is None else compute_tax_cents(subtotal - invoice.discount_cents, tax_rate_bps)
    return invoice.model_copy(update={
        "items": items,
        "subtotal_cents": subtotal,
        "tax_cents": tax,
        "total_cents": compute_total_cents(subtotal, invoice.discount_cents, invoice.credit_cents, tax),
        "updated_at": now,
    })


def _settled_status(invoice: Invoice, paid_cents: int) -> InvoiceStatus:
    return InvoiceStatus.PAID if paid_cents >= invoice.total_cents else InvoiceStatus.PARTIALLY_PAID


def apply_payment(invoice: Invoice, amount_cents: int, transaction_id: str, now: datetime) -> Invoice:
    """
    Add a payment to paid_cents.

    Idempotent per transaction: a transaction id already applied returns
    the invoice unchanged.
    """
    if transaction_id in invoice.applied_transaction_ids:
        return invoice
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive")
    if invoice.status in (InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED):
        raise ValidationError(f"Invoice {invoice.invoice_number} is {invoice.status.value}")

    paid = invoice.paid_cents + amount_cents
    status = _settled_status(invoice, paid)
    return invoice.model_copy(update={
        "paid_cents": paid,
        "status": status,
        "paid_at": now if status == InvoiceStatus.PAID else invoice.paid_at,
        "applied_transaction_ids": [*invoice.applied_transaction_ids, transaction_id],
        "updated_at": now,
    })


def apply_refund(invoice: Invoice, amount_cents: int, now: datetime) -> Invoice:
    """
    Take a refund out of paid_cents.

    Raises:
        InvalidRefund: amount is not positive or exceeds what was paid
    """
    if amount_cents <= 0:
        raise InvalidRefund("Refund amount must be positive")
    if amount_cents > invoice.paid_cents:
        raise InvalidRefund(
            f"Refund of {amount_cents} cents exceeds {invoice.paid_cents} cents paid "
            f"on invoice {invoice.invoice_number}"
        )

    paid = invoice.paid_cents - amount_cents
    return invoice.model_copy(update={
        "paid_cents": paid,
        "refunded_cents": invoice.refunded_cents + amount_cents,
        "status": InvoiceStatus.REFUNDED if paid == 0 else InvoiceStatus.PARTIALLY_PAID,
        "updated_at": now,
    })


def apply_credit(invoice: Invoice, amount_cents: int, now: datetime) -> Invoice:
    """
    Reduce the total directly. No transaction is involved.

    An invoice whose total reaches zero is paid via credit.
    """
    if amount_cents <= 0:
        raise ValidationError("Credit amount must be positive")
    if not invoice.status.is_open:
        raise ValidationError(f"Invoice {invoice.invoice_number} is {invoice.status.value}")

    credit = invoice.credit_cents + amount_cents
    total = compute_total_cents(invoice.subtotal_cents, invoice.discount_cents, credit, invoice.tax_cents)
    update = {"credit_cents": credit, "total_cents": total, "updated_at": now}

    if total == 0:
        update.update(status=InvoiceStatus.PAID, paid_at=now, paid_via_credit=True)
    elif invoice.paid_cents >= total:
        update.update(status=InvoiceStatus.PAID, paid_at=now)
    return invoice.model_copy(update=update)


def cancel_invoice(invoice: Invoice, now: datetime) -> Invoice:
    if invoice.status == InvoiceStatus.PAID:
        raise ValidationError(f"Invoice {invoice.invoice_number} is paid and cannot be cancelled")
    if invoice.status == InvoiceStatus.CANCELLED:
        return invoice
    return invoice.model_copy(update={
        "status": InvoiceStatus.CANCELLED,
        "cancelled_at": now,
        "updated_at": now,
    })


def mark_overdue(invoice: Invoice, now: datetime) -> Invoice:
    """unpaid/partially_paid past due -> overdue. Other states are left alone."""
    if invoice.status not in (InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID):
        return invoice
    if invoice.due_at >= now:
        return invoice
    return invoice.model_copy(update={"status": InvoiceStatus.OVERDUE, "updated_at": now})


def record_reminder(invoice: Invoice, now: datetime) -> Invoice:
    return invoice.model_copy(update={
        "reminders_sent": invoice.reminders_sent + 1,
        "last_reminder_at": now,
        "updated_at": now,
    })

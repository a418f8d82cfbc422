"""
Handlers that turn domain events into send-notification jobs.

Notification delivery is fire-and-forget from the publisher's side: these
handlers only enqueue. A failed enqueue is logged by the event bus and
never touches the committed change that produced the event.
"""

import logging
from typing import Any, Callable

from core.event_bus import EventBus
from core.events import (
    AutoRenewFailed,
    DnsUpdateFailed,
    DomainExpired,
    DomainExpiring,
    DomainRegistered,
    DomainRegistrationFailed,
    DomainRenewalFailed,
    DomainRenewed,
    InvoicePaid,
    InvoiceReminder,
    OrderPlaced,
    ProvisioningEvent,
    RefundProcessed,
    ServiceSuspended,
    ServiceTerminated,
    TransferCompleted,
    TransferFailed,
    WalletAdjusted,
)
from core.models import JobType, NotificationPayload

logger = logging.getLogger(__name__)

# Expiry reminder priority by days left: closest expiry goes first
EXPIRY_PRIORITY = {1: 1, 7: 2, 30: 3}


def _domain_data(event) -> dict[str, Any]:
    domain = event.domain
    data = {
        "domain_id": str(domain.id),
        "domain_name": domain.domain_name,
        "status": domain.status.value,
        "expires_at": domain.expires_at.isoformat() if domain.expires_at else None,
        "auto_renew": domain.auto_renew,
    }
    reason = getattr(event, "reason", None)
    if reason:
        data["reason"] = reason
    return data


def _invoice_data(invoice) -> dict[str, Any]:
    return {
        "invoice_id": str(invoice.id),
        "invoice_number": invoice.invoice_number,
        "total_cents": invoice.total_cents,
        "balance_due_cents": invoice.balance_due_cents,
        "currency": invoice.currency,
        "due_at": invoice.due_at.isoformat(),
    }


def _service_data(event) -> dict[str, Any]:
    service = event.service
    return {
        "service_id": str(service.id),
        "product_id": service.product_id,
        "status": service.status.value,
        "reason": service.suspension_reason or service.termination_reason,
    }


def _transaction_data(event) -> dict[str, Any]:
    txn = event.transaction
    data = {
        "transaction_number": txn.transaction_number,
        "type": txn.type.value,
        "amount_cents": txn.amount_cents,
        "currency": txn.currency,
    }
    if isinstance(event, WalletAdjusted):
        data["balance_cents"] = event.balance_cents
    return data


def notify(
    queue,
    template: str,
    build_data: Callable[[Any], dict[str, Any]],
    priority: int | Callable[[Any], int] | None = None,
    target: Callable[[Any], Any] | None = None,
) -> Callable:
    """
    Factory that returns a handler enqueueing one send-notification job.

    The job goes to the event's recipient and is keyed on its subject,
    unless target picks another entity.

    Args:
        queue: JobQueue instance
        template: Notification template key sent to the gateway
        build_data: event -> template variables
        priority: Fixed job priority, or event -> priority
        target: event -> id of the entity the notification is about

    Returns:
        Handler callable for the event bus
    """

    def handler(event: ProvisioningEvent):
        if event.recipient_id is None:
            logger.warning(f"{event.__class__.__name__} {event.event_id} has no recipient; {template} not sent")
            return
        target_id = str(target(event) if target else event.subject.id)
        job_priority = priority(event) if callable(priority) else priority
        queue.enqueue(
            JobType.SEND_NOTIFICATION,
            target_id,
            NotificationPayload(
                recipient_id=str(event.recipient_id),
                event_type=template,
                data=build_data(event),
            ),
            priority=job_priority,
            idempotency_key=f"{template}:{target_id}:{event.event_id}",
        )

    handler.__name__ = f"notify_{template.replace('-', '_')}"
    return handler


def register_notification_handlers(event_bus: EventBus, queue) -> None:
    """Wire every notifying event to its template."""
    domain_templates = [
        (DomainRegistered, "domain-registered", 3),
        (DomainRegistrationFailed, "provisioning-failed", 1),
        (DomainRenewed, "domain-renewed", 3),
        (DomainRenewalFailed, "domain-renewal-failed", 1),
        (DomainExpired, "domain-expired", 2),
        (AutoRenewFailed, "auto-renew-failed", 1),
        (TransferCompleted, "domain-transfer-completed", 3),
        (TransferFailed, "domain-transfer-failed", 1),
        (DnsUpdateFailed, "dns-update-failed", 2),
    ]
    for event_class, template, priority in domain_templates:
        event_bus.subscribe(event_class, notify(queue, template, _domain_data, priority))

    event_bus.subscribe(
        DomainExpiring,
        notify(
            queue, "domain-expiring",
            lambda e: {**_domain_data(e), "days_left": e.days_left},
            lambda e: EXPIRY_PRIORITY.get(e.days_left, 3),
        ),
    )

    event_bus.subscribe(
        OrderPlaced,
        notify(
            queue, "invoice-generated",
            lambda e: {"order_number": e.order.order_number, **_invoice_data(e.invoice)},
            5,
            target=lambda e: e.invoice.id,
        ),
    )
    event_bus.subscribe(InvoicePaid, notify(queue, "invoice-paid", lambda e: _invoice_data(e.invoice), 5))

    def reminder_handler(event: InvoiceReminder):
        if event.overdue:
            template, priority = "invoice-overdue", (1 if event.days > 7 else 2)
            data = {**_invoice_data(event.invoice), "days_overdue": event.days}
        else:
            template, priority = "payment-warning", 3
            data = {**_invoice_data(event.invoice), "days_until_due": event.days}
        notify(queue, template, lambda e: data, priority)(event)

    event_bus.subscribe(InvoiceReminder, reminder_handler)

    event_bus.subscribe(ServiceSuspended, notify(queue, "service-suspended", _service_data, 2))
    event_bus.subscribe(ServiceTerminated, notify(queue, "service-terminated", _service_data, 2))
    event_bus.subscribe(RefundProcessed, notify(queue, "refund-processed", _transaction_data, 5))
    event_bus.subscribe(WalletAdjusted, notify(queue, "wallet-adjusted", _transaction_data, 5))

    logger.info("Notification handlers registered")

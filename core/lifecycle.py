"""
Lifecycle rules for domains, services and orders.

Pure functions: each takes an entity value and returns an updated copy, or
raises InvalidStateTransition when the entity is not in a state the
transition accepts. Persistence is the caller's job.

Callers reacting to job deliveries or sweeps wrap rules in
apply_transition(), which turns InvalidStateTransition into a logged
no-op so that duplicate delivery is harmless.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, TypeVar

from core.errors import InvalidStateTransition
from core.models import (
    Domain, DomainStatus,
    Invoice,
    Order, OrderStatus,
    Service, ServiceStatus,
)
from utils.timezone import add_years

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOMAIN_TRANSITIONS: dict[DomainStatus, set[DomainStatus]] = {
    DomainStatus.PENDING: {DomainStatus.ACTIVE, DomainStatus.FAILED},
    DomainStatus.ACTIVE: {DomainStatus.ACTIVE, DomainStatus.EXPIRED},
    DomainStatus.PENDING_TRANSFER: {
        DomainStatus.TRANSFER_INITIATED,
        DomainStatus.ACTIVE,
        DomainStatus.TRANSFER_FAILED,
    },
    DomainStatus.TRANSFER_INITIATED: {DomainStatus.ACTIVE, DomainStatus.TRANSFER_FAILED},
}

SERVICE_TRANSITIONS: dict[ServiceStatus, set[ServiceStatus]] = {
    ServiceStatus.PENDING: {ServiceStatus.ACTIVE},
    ServiceStatus.ACTIVE: {ServiceStatus.SUSPENDED, ServiceStatus.TERMINATED},
    ServiceStatus.SUSPENDED: {ServiceStatus.ACTIVE, ServiceStatus.TERMINATED},
}

# completed and cancelled are immutable
ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.PROCESSING, OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.COMPLETED, OrderStatus.FAILED, OrderStatus.REFUNDED},
    OrderStatus.FAILED: {OrderStatus.REFUNDED},
}


def _check(entity: str, table: dict, current, target) -> None:
    if target not in table.get(current, set()):
        raise InvalidStateTransition(entity, current.value, target.value)


def apply_transition(rule: Callable[..., T], *args, **kwargs) -> T | None:
    """
    Run a lifecycle rule, treating an unexpected current state as a no-op.

    Returns the updated entity, or None (with a warning logged) when the
    rule rejected the transition.
    """
    try:
        return rule(*args, **kwargs)
    except InvalidStateTransition as e:
        logger.warning(f"Ignored transition ({rule.__name__}): {e}")
        return None


# =============================================================================
# DOMAIN
# =============================================================================


def _domain_label(domain: Domain) -> str:
    return f"domain {domain.domain_name}"


def activate_registered_domain(
    domain: Domain,
    now: datetime,
    registrar_order_id: str | None = None,
) -> Domain:
    """pending -> active. Expiry counts purchased years from now."""
    if domain.status != DomainStatus.PENDING:
        raise InvalidStateTransition(_domain_label(domain), domain.status.value, DomainStatus.ACTIVE.value)
    return domain.model_copy(update={
        "status": DomainStatus.ACTIVE,
        "registered_at": now,
        "expires_at": add_years(now, domain.years),
        "registrar_order_id": registrar_order_id or domain.registrar_order_id,
        "updated_at": now,
    })


def fail_registration(domain: Domain, reason: str | None, now: datetime) -> Domain:
    """pending -> failed."""
    _check(_domain_label(domain), DOMAIN_TRANSITIONS, domain.status, DomainStatus.FAILED)
    note = f"Registration failed: {reason}" if reason else "Registration failed"
    return domain.model_copy(update={
        "status": DomainStatus.FAILED,
        "notes": note,
        "updated_at": now,
    })


def expire_domain(domain: Domain, now: datetime) -> Domain:
    """active -> expired, only once expires_at has passed."""
    _check(_domain_label(domain), DOMAIN_TRANSITIONS, domain.status, DomainStatus.EXPIRED)
    if domain.expires_at is None or domain.expires_at >= now:
        raise InvalidStateTransition(_domain_label(domain), "active (not yet expired)", DomainStatus.EXPIRED.value)
    return domain.model_copy(update={"status": DomainStatus.EXPIRED, "updated_at": now})


def renew_domain(domain: Domain, years: int, now: datetime) -> Domain:
    """
    active -> active with expiry extended.

    Extends from the current expiry so unexpired paid time is kept.
    """
    if domain.status != DomainStatus.ACTIVE:
        raise InvalidStateTransition(_domain_label(domain), domain.status.value, "active (renewed)")
    base = domain.expires_at or now
    return domain.model_copy(update={
        "expires_at": add_years(base, years),
        "last_renewed_at": now,
        "auto_renew_attempts": 0,
        "updated_at": now,
    })


def already_renewed(domain: Domain, invoice: Invoice | None) -> bool:
    """A renewal stamped after the invoice was paid means that invoice is used up."""
    if invoice is None or invoice.paid_at is None or domain.last_renewed_at is None:
        return False
    return domain.last_renewed_at >= invoice.paid_at



def record_auto_renew_failure(domain: Domain, max_attempts: int, now: datetime) -> Domain:
    """
    Count a failed auto-renewal. The cap-th failure switches auto_renew off.

    Status is left as it is.
    """
    if domain.status != DomainStatus.ACTIVE:
        raise InvalidStateTransition(_domain_label(domain), domain.status.value, "active (auto-renew failure)")
    attempts = domain.auto_renew_attempts + 1
    return domain.model_copy(update={
        "auto_renew_attempts": attempts,
        "auto_renew": domain.auto_renew and attempts < max_attempts,
        "updated_at": now,
    })


def start_transfer(domain: Domain, registrar_order_id: str, now: datetime) -> Domain:
    """pending_transfer -> transfer_initiated."""
    if domain.status != DomainStatus.PENDING_TRANSFER:
        raise InvalidStateTransition(_domain_label(domain), domain.status.value, DomainStatus.TRANSFER_INITIATED.value)
    return domain.model_copy(update={
        "status": DomainStatus.TRANSFER_INITIATED,
        "registrar_order_id": registrar_order_id,
        "transfer_status": "initiated",
        "updated_at": now,
    })


def complete_transfer(domain: Domain, now: datetime) -> Domain:
    """pending_transfer/transfer_initiated -> active."""
    if not domain.status.is_transferring:
        raise InvalidStateTransition(_domain_label(domain), domain.status.value, DomainStatus.ACTIVE.value)
    return domain.model_copy(update={
        "status": DomainStatus.ACTIVE,
        "registered_at": now,
        "expires_at": domain.expires_at or add_years(now, 1),
        "transfer_stalled": False,
        "updated_at": now,
    })


def fail_transfer(domain: Domain, reason: str, now: datetime) -> Domain:
    """pending_transfer/transfer_initiated -> transfer_failed."""
    _check(_domain_label(domain), DOMAIN_TRANSITIONS, domain.status, DomainStatus.TRANSFER_FAILED)
    return domain.model_copy(update={
        "status": DomainStatus.TRANSFER_FAILED,
        "transfer_failure_reason": reason,
        "updated_at": now,
    })


def flag_transfer_stalled(domain: Domain, now: datetime) -> Domain:
    """Advisory flag; does not change status."""
    if not domain.status.is_transferring:
        raise InvalidStateTransition(_domain_label(domain), domain.status.value, "stalled flag")
    return domain.model_copy(update={"transfer_stalled": True, "updated_at": now})


def record_transfer_check(domain: Domain, registrar_status: str, now: datetime) -> Domain:
    """Stamp a transfer poll with the registrar's reported status."""
    return domain.model_copy(update={
        "transfer_status": registrar_status,
        "transfer_last_checked_at": now,
        "updated_at": now,
    })


# =============================================================================
# SERVICE
# =============================================================================


def activate_service(service: Service, now: datetime) -> Service:
    """pending -> active. First due date is one billing cycle away."""
    if service.status != ServiceStatus.PENDING:
        raise InvalidStateTransition(f"service {service.id}", service.status.value, ServiceStatus.ACTIVE.value)
    return service.model_copy(update={
        "status": ServiceStatus.ACTIVE,
        "activated_at": now,
        "next_due_at": now + timedelta(days=service.billing_cycle.days),
        "updated_at": now,
    })


def suspend_service(service: Service, reason: str, now: datetime) -> Service:
    """active -> suspended."""
    _check(f"service {service.id}", SERVICE_TRANSITIONS, service.status, ServiceStatus.SUSPENDED)
    return service.model_copy(update={
        "status": ServiceStatus.SUSPENDED,
        "suspended_at": now,
        "suspension_reason": reason,
        "updated_at": now,
    })


def reactivate_service(service: Service, now: datetime) -> Service:
    """suspended -> active once the overdue invoice is settled."""
    if service.status != ServiceStatus.SUSPENDED:
        raise InvalidStateTransition(f"service {service.id}", service.status.value, ServiceStatus.ACTIVE.value)
    return service.model_copy(update={
        "status": ServiceStatus.ACTIVE,
        "suspended_at": None,
        "suspension_reason": None,
        "updated_at": now,
    })


def terminate_service(service: Service, reason: str, now: datetime) -> Service:
    """{active, suspended} -> terminated."""
    _check(f"service {service.id}", SERVICE_TRANSITIONS, service.status, ServiceStatus.TERMINATED)
    return service.model_copy(update={
        "status": ServiceStatus.TERMINATED,
        "terminated_at": now,
        "termination_reason": reason,
        "updated_at": now,
    })


# =============================================================================
# ORDER
# =============================================================================


def _order_to(order: Order, target: OrderStatus, now: datetime, **fields) -> Order:
    _check(f"order {order.order_number}", ORDER_TRANSITIONS, order.status, target)
    return order.model_copy(update={"status": target, "updated_at": now, **fields})


def mark_order_processing(order: Order, gateway_order_id: str, now: datetime) -> Order:
    return _order_to(order, OrderStatus.PROCESSING, now, gateway_order_id=gateway_order_id)


def mark_order_paid(order: Order, amount_cents: int, now: datetime) -> Order:
    return _order_to(order, OrderStatus.PAID, now, paid_cents=order.paid_cents + amount_cents, paid_at=now)


def mark_order_completed(order: Order, now: datetime) -> Order:
    return _order_to(order, OrderStatus.COMPLETED, now, completed_at=now)


def mark_order_failed(order: Order, reason: str | None, now: datetime) -> Order:
    return _order_to(order, OrderStatus.FAILED, now, notes=reason or order.notes)


def mark_order_refunded(order: Order, now: datetime) -> Order:
    return _order_to(order, OrderStatus.REFUNDED, now)

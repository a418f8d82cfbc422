"""Registration worker: pending domain -> registrar -> active."""

import logging

from clients.registrar_client import Contact, RegistrarClient, RegistrationRequest
from core import lifecycle
from core.errors import NotFoundError
from core.events import DomainRegistered, DomainRegistrationFailed
from core.lifecycle import apply_transition
from core.models import DomainStatus, JobRecord, JobType, Order, RegisterDomainPayload
from utils.timezone import now_utc
from workers.base import JobHandler, complete_order_if_provisioned, fail_order

logger = logging.getLogger(__name__)


def contact_for(order: Order | None) -> Contact:
    """Registrant contact from the order's billing details."""
    if order is None:
        raise NotFoundError("No order to take the registrant contact from")
    return Contact(**order.billing_details.model_dump())


class RegisterDomainHandler(JobHandler):
    job_type = JobType.REGISTER_DOMAIN
    payload_model = RegisterDomainPayload

    def __init__(self, store, event_bus, registrar: RegistrarClient):
        super().__init__(store, event_bus)
        self.registrar = registrar

    def handle(self, job: JobRecord, payload: RegisterDomainPayload) -> None:
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(payload.domain_id)
            order_id = payload.order_id or (domain.order_id if domain else None)
            order = unit.get_order(order_id) if order_id else None

        if domain is None:
            logger.warning(f"Domain {payload.domain_id} no longer exists; nothing to register")
            return
        if domain.status != DomainStatus.PENDING:
            logger.info(f"Domain {domain.domain_name} is {domain.status.value}; registration already handled")
            return

        result = self.registrar.register_domain(RegistrationRequest(
            domain=domain.domain_name,
            years=domain.years,
            nameservers=domain.nameservers,
            auto_renew=domain.auto_renew,
            privacy=domain.privacy_protection,
            contact=contact_for(order),
        ))

        now = now_utc()
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            registered = apply_transition(lifecycle.activate_registered_domain, current, now, result.order_id)
            if registered is None:
                return
            unit.save_domain(registered)
            unit.audit.log_update("domain", current, registered)
            complete_order_if_provisioned(unit, registered.order_id, now)
            unit.outbox.publish(self.event_bus, DomainRegistered.create(registered))

        logger.info(f"Registered {domain.domain_name} (registrar order {result.order_id})")

    def on_exhausted(self, job: JobRecord, payload: RegisterDomainPayload, error: str) -> None:
        now = now_utc()
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(payload.domain_id, for_update=True)
            if domain is None:
                return
            failed = apply_transition(lifecycle.fail_registration, domain, error, now)
            if failed is None:
                return
            unit.save_domain(failed)
            unit.audit.log_update("domain", domain, failed)
            fail_order(unit, payload.order_id or domain.order_id, f"Registration of {domain.domain_name} failed", now)
            unit.outbox.publish(self.event_bus, DomainRegistrationFailed.create(failed, error))

        logger.error(f"Registration of {domain.domain_name} failed after {job.attempts} attempts: {error}")

"""
Renewal worker.

The renewal is paid before the job is queued (checkout, invoice payment,
or the auto-renewal sweep). The worker only calls the registrar and
extends the expiry from its current value. A job whose invoice is no
longer paid (refunded, or never settled) renews nothing.
"""

import logging

from clients.registrar_client import RegistrarClient
from core import lifecycle
from core.config import ProvisioningConfig
from core.events import AutoRenewFailed, DomainRenewalFailed, DomainRenewed
from core.lifecycle import already_renewed, apply_transition
from core.models import DomainStatus, JobRecord, JobType, RenewDomainPayload
from utils.timezone import now_utc
from workers.base import JobHandler, complete_order_if_provisioned

logger = logging.getLogger(__name__)


class RenewDomainHandler(JobHandler):
    job_type = JobType.RENEW_DOMAIN
    payload_model = RenewDomainPayload

    def __init__(self, store, event_bus, registrar: RegistrarClient, config: ProvisioningConfig):
        super().__init__(store, event_bus)
        self.registrar = registrar
        self.config = config

    def handle(self, job: JobRecord, payload: RenewDomainPayload) -> None:
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(payload.domain_id)
            invoice = unit.get_invoice(payload.invoice_id) if payload.invoice_id else None

        if domain is None:
            logger.warning(f"Domain {payload.domain_id} no longer exists; nothing to renew")
            return
        if domain.status != DomainStatus.ACTIVE:
            logger.warning(f"Domain {domain.domain_name} is {domain.status.value}; renewal skipped")
            return
        if already_renewed(domain, invoice):
            logger.info(f"Domain {domain.domain_name} already renewed for {invoice.invoice_number}")
            return
        if invoice is not None and not invoice.is_paid:
            logger.warning(
                f"Not renewing {domain.domain_name}: invoice {invoice.invoice_number} is {invoice.status.value}"
            )
            return

        result = self.registrar.renew_domain(domain.domain_name, payload.years)

        now = now_utc()
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            if already_renewed(current, invoice):
                return
            renewed = apply_transition(lifecycle.renew_domain, current, payload.years, now)
            if renewed is None:
                return
            renewed = renewed.model_copy(update={"registrar_order_id": result.order_id})
            unit.save_domain(renewed)
            unit.audit.log_update("domain", current, renewed)
            if invoice is not None:
                complete_order_if_provisioned(unit, invoice.order_id, now)
            unit.outbox.publish(self.event_bus, DomainRenewed.create(renewed, payload.years))

        logger.info(f"Renewed {domain.domain_name} for {payload.years} year(s), expires {renewed.expires_at}")

    def on_exhausted(self, job: JobRecord, payload: RenewDomainPayload, error: str) -> None:
        now = now_utc()
        max_attempts = self.config.sweeps.auto_renew_max_attempts
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(payload.domain_id, for_update=True)
            if domain is None:
                return
            unit.outbox.publish(self.event_bus, DomainRenewalFailed.create(domain, error))
            if not payload.auto_triggered:
                return

            counted = apply_transition(lifecycle.record_auto_renew_failure, domain, max_attempts, now)
            if counted is None:
                return
            unit.save_domain(counted)
            unit.audit.log_update("domain", domain, counted)
            disabled = domain.auto_renew and not counted.auto_renew
            unit.outbox.publish(self.event_bus, AutoRenewFailed.create(counted, error, disabled))

        logger.error(f"Renewal of {domain.domain_name} failed after {job.attempts} attempts: {error}")

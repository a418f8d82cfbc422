"""
Inbound transfer workers.

initiate-transfer submits the auth code to the registrar. The transfer
then completes (or fails) on the registrar's side over days, so
check-transfer-status polls it; the transfer sweep queues the polls.
"""

import logging

from clients.registrar_client import RegistrarClient, TransferRequest
from core import lifecycle
from core.events import TransferCompleted, TransferFailed
from core.lifecycle import apply_transition
from core.models import (
    CheckTransferPayload, DomainStatus, InitiateTransferPayload, JobRecord, JobType,
)
from utils.timezone import now_utc
from workers.base import JobHandler, complete_order_if_provisioned, fail_order
from workers.registration import contact_for

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = {"complete", "completed"}
FAILED_STATUSES = {"failed", "cancelled"}


class InitiateTransferHandler(JobHandler):
    job_type = JobType.INITIATE_TRANSFER
    payload_model = InitiateTransferPayload

    def __init__(self, store, event_bus, registrar: RegistrarClient):
        super().__init__(store, event_bus)
        self.registrar = registrar

    def handle(self, job: JobRecord, payload: InitiateTransferPayload) -> None:
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(payload.domain_id)
            order_id = payload.order_id or (domain.order_id if domain else None)
            order = unit.get_order(order_id) if order_id else None

        if domain is None:
            logger.warning(f"Domain {payload.domain_id} no longer exists; nothing to transfer")
            return
        if domain.status != DomainStatus.PENDING_TRANSFER:
            logger.info(f"Domain {domain.domain_name} is {domain.status.value}; transfer already started")
            return

        registrar_order_id = self.registrar.initiate_transfer(TransferRequest(
            domain=domain.domain_name,
            auth_code=domain.auth_code or "",
            years=domain.years,
            privacy=domain.privacy_protection,
            contact=contact_for(order),
        ))

        now = now_utc()
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            started = apply_transition(lifecycle.start_transfer, current, registrar_order_id, now)
            if started is None:
                return
            unit.save_domain(started)
            unit.audit.log_update("domain", current, started)

        logger.info(f"Transfer of {domain.domain_name} initiated (registrar order {registrar_order_id})")

    def on_exhausted(self, job: JobRecord, payload: InitiateTransferPayload, error: str) -> None:
        now = now_utc()
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(payload.domain_id, for_update=True)
            if domain is None:
                return
            failed = apply_transition(lifecycle.fail_transfer, domain, error, now)
            if failed is None:
                return
            unit.save_domain(failed)
            unit.audit.log_update("domain", domain, failed)
            fail_order(unit, payload.order_id or domain.order_id, f"Transfer of {domain.domain_name} failed", now)
            unit.outbox.publish(self.event_bus, TransferFailed.create(failed, error))


class CheckTransferHandler(JobHandler):
    job_type = JobType.CHECK_TRANSFER_STATUS
    payload_model = CheckTransferPayload

    def __init__(self, store, event_bus, registrar: RegistrarClient):
        super().__init__(store, event_bus)
        self.registrar = registrar

    def handle(self, job: JobRecord, payload: CheckTransferPayload) -> None:
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(payload.domain_id)

        if domain is None or not domain.status.is_transferring:
            logger.info(f"Domain {payload.domain_id} is no longer transferring; check skipped")
            return

        reported = self.registrar.get_transfer_status(domain.domain_name)

        now = now_utc()
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            if not current.status.is_transferring:
                return

            changed = reported.status != current.transfer_status
            checked = lifecycle.record_transfer_check(current, reported.status, now)
            event = None

            if changed and reported.status in COMPLETED_STATUSES:
                completed = apply_transition(lifecycle.complete_transfer, checked, now)
                if completed is not None:
                    checked = completed
                    event = TransferCompleted.create(completed)
            elif changed and reported.status in FAILED_STATUSES:
                reason = reported.reason or "Unknown reason"
                failed = apply_transition(lifecycle.fail_transfer, checked, reason, now)
                if failed is not None:
                    checked = failed
                    event = TransferFailed.create(failed, reason)

            unit.save_domain(checked)
            if changed:
                unit.audit.log_update("domain", current, checked)
            if isinstance(event, TransferCompleted):
                complete_order_if_provisioned(unit, checked.order_id, now)
            if event is not None:
                unit.outbox.publish(self.event_bus, event)

        if changed:
            logger.info(f"Transfer of {domain.domain_name}: {current.transfer_status} -> {reported.status}")

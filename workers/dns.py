"""
DNS update worker.

Each change variant is applied by its own method, selected by the
payload's discriminator. A bulk change applies every record and fails the
attempt if any record failed; retries re-apply all of them, which is safe
because upserts are idempotent on the registrar side.
"""

import logging

from clients.registrar_client import RegistrarClient
from core.events import DnsUpdateFailed
from core.models import (
    BulkDnsChange, DeleteDnsChange, Domain, DomainStatus, JobRecord, JobType, UpdateDnsPayload,
    UpsertDnsChange,
)
from core.errors import ExternalServiceError
from utils.timezone import now_utc
from workers.base import JobHandler

logger = logging.getLogger(__name__)


class UpdateDnsHandler(JobHandler):
    job_type = JobType.UPDATE_DNS
    payload_model = UpdateDnsPayload

    def __init__(self, store, event_bus, registrar: RegistrarClient):
        super().__init__(store, event_bus)
        self.registrar = registrar
        self._apply = {
            "upsert": self._upsert,
            "delete": self._delete,
            "bulk": self._bulk,
        }

    def handle(self, job: JobRecord, payload: UpdateDnsPayload) -> None:
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(payload.domain_id)

        if domain is None or domain.status != DomainStatus.ACTIVE:
            logger.warning(f"Domain {payload.domain_id} is not active; DNS update skipped")
            return

        self._apply[payload.change.operation](domain, payload.change)

        now = now_utc()
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            stamped = current.model_copy(update={"last_dns_update_at": now, "updated_at": now})
            unit.save_domain(stamped)
            unit.audit.log_update("domain", current, stamped)

        logger.info(f"DNS {payload.change.operation} applied to {domain.domain_name}")

    def _upsert(self, domain: Domain, change: UpsertDnsChange) -> None:
        self.registrar.upsert_dns_record(domain.domain_name, change.record)

    def _delete(self, domain: Domain, change: DeleteDnsChange) -> None:
        self.registrar.delete_dns_record(domain.domain_name, change.record_type, change.name)

    def _bulk(self, domain: Domain, change: BulkDnsChange) -> None:
        errors = []
        for record in change.records:
            try:
                self.registrar.upsert_dns_record(domain.domain_name, record)
            except ExternalServiceError as e:
                errors.append(f"{record.type} {record.name}: {e}")

        applied = len(change.records) - len(errors)
        logger.info(f"Bulk DNS for {domain.domain_name}: {applied} applied, {len(errors)} failed")
        if errors:
            raise ExternalServiceError(f"{len(errors)} of {len(change.records)} records failed: " + "; ".join(errors))

    def on_exhausted(self, job: JobRecord, payload: UpdateDnsPayload, error: str) -> None:
        with self.store.unit_of_work() as unit:
            domain = unit.get_domain(payload.domain_id)
            if domain is None:
                return
            unit.outbox.publish(self.event_bus, DnsUpdateFailed.create(domain, error))

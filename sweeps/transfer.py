"""Transfer sweep: queue status polls, flag stalled transfers, fail abandoned ones."""

import logging
from datetime import datetime, timedelta

from core import lifecycle
from core.config import ProvisioningConfig
from core.event_bus import EventBus
from core.events import TransferFailed
from core.ledger import LedgerStore
from core.lifecycle import apply_transition
from core.models import CheckTransferPayload, Domain, JobType
from sweeps.base import Sweep

logger = logging.getLogger(__name__)


def check_key(domain: Domain) -> str:
    return f"check-transfer-status:{domain.id}"


class TransferSweep(Sweep):
    """Hourly. Transfer age counts from when the domain record was created."""

    name = "transfer"

    def __init__(self, store: LedgerStore, queue, event_bus: EventBus, config: ProvisioningConfig):
        self.store = store
        self.queue = queue
        self.event_bus = event_bus
        self.config = config.sweeps

    @property
    def interval_seconds(self) -> int:
        return self.config.transfer_interval_seconds

    def run(self, now: datetime) -> dict[str, int]:
        with self.store.unit_of_work() as unit:
            domains = unit.list_transferring_domains()
        return self.each(domains, lambda d: self._process(d, now), lambda d: d.domain_name)

    def _process(self, domain: Domain, now: datetime) -> str | None:
        age = now - domain.created_at

        if age >= timedelta(days=self.config.transfer_failed_after_days):
            return self._fail(domain, now)

        if age >= timedelta(days=self.config.transfer_stalled_after_days) and not domain.transfer_stalled:
            self._flag_stalled(domain, now)

        interval = timedelta(minutes=self.config.transfer_check_interval_minutes)
        if domain.transfer_last_checked_at and now - domain.transfer_last_checked_at < interval:
            return "recently_checked"

        queued = self.queue.enqueue(
            JobType.CHECK_TRANSFER_STATUS,
            str(domain.id),
            CheckTransferPayload(domain_id=domain.id),
            idempotency_key=check_key(domain),
        )
        return "check_queued" if queued else "check_pending"

    def _flag_stalled(self, domain: Domain, now: datetime) -> None:
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            flagged = apply_transition(lifecycle.flag_transfer_stalled, current, now)
            if flagged is None:
                return
            unit.save_domain(flagged)
            unit.audit.log_update("domain", current, flagged)
        logger.warning(f"Transfer of {domain.domain_name} stalled since {domain.created_at.isoformat()}")

    def _fail(self, domain: Domain, now: datetime) -> str | None:
        reason = f"Transfer not resolved within {self.config.transfer_failed_after_days} days"
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            failed = apply_transition(lifecycle.fail_transfer, current, reason, now)
            if failed is None:
                return None
            unit.save_domain(failed)
            unit.audit.log_update("domain", current, failed)
            unit.outbox.publish(self.event_bus, TransferFailed.create(failed, reason))
        return "failed"

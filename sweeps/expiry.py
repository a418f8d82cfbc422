"""Expiry sweep: expiry reminders and active -> expired."""

import logging
from datetime import datetime, timedelta

from core import lifecycle
from core.config import ProvisioningConfig
from core.event_bus import EventBus
from core.events import DomainExpired, DomainExpiring
from core.ledger import LedgerStore
from core.lifecycle import apply_transition
from core.models import Domain, DomainStatus
from sweeps.base import Sweep
from utils.timezone import from_epoch

logger = logging.getLogger(__name__)


class ExpirySweep(Sweep):
    """
    Daily. A domain gets one reminder as it enters each of the
    configured windows (by default 30, 7 and 1 days out): the window for
    d days is expiry in [now + d - 1 days, now + d days).
    """

    name = "expiry"

    def __init__(self, store: LedgerStore, event_bus: EventBus, config: ProvisioningConfig):
        self.store = store
        self.event_bus = event_bus
        self.config = config.sweeps

    @property
    def interval_seconds(self) -> int:
        return self.config.expiry_interval_seconds

    def run(self, now: datetime) -> dict[str, int]:
        results = {}

        for days in sorted(self.config.expiry_reminder_days):
            with self.store.unit_of_work() as unit:
                expiring = unit.list_active_domains_expiring(
                    now + timedelta(days=days - 1), now + timedelta(days=days)
                )
            counts = self.each(expiring, lambda d, days=days: self._remind(d, days, now), lambda d: d.domain_name)
            for outcome, count in counts.items():
                results[outcome] = results.get(outcome, 0) + count

        with self.store.unit_of_work() as unit:
            lapsed = unit.list_active_domains_expiring(from_epoch(0), now)
        for outcome, count in self.each(lapsed, lambda d: self._expire(d, now), lambda d: d.domain_name).items():
            results[outcome] = results.get(outcome, 0) + count

        return results

    def _remind(self, domain: Domain, days: int, now: datetime) -> str | None:
        cooldown = timedelta(hours=self.config.expiry_reminder_cooldown_hours)
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            if current is None or current.status != DomainStatus.ACTIVE:
                return None
            if current.last_expiry_reminder_at and now - current.last_expiry_reminder_at < cooldown:
                return "already_reminded"

            reminded = current.model_copy(update={"last_expiry_reminder_at": now, "updated_at": now})
            unit.save_domain(reminded)
            unit.audit.log_update("domain", current, reminded)
            unit.outbox.publish(self.event_bus, DomainExpiring.create(reminded, days))

        return "reminded"

    def _expire(self, domain: Domain, now: datetime) -> str | None:
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            expired = apply_transition(lifecycle.expire_domain, current, now)
            if expired is None:
                return None
            unit.save_domain(expired)
            unit.audit.log_update("domain", current, expired)
            unit.outbox.publish(self.event_bus, DomainExpired.create(expired))

        logger.info(f"Domain {domain.domain_name} expired")
        return "expired"

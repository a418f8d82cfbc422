"""
Auto-renewal sweep.

For each auto-renew domain close to expiry: price the renewal at the
registrar's current rate, then in one ledger unit debit the wallet, record
the payment and a paid invoice. The renew-domain job is queued after that
unit commits. Any failure before the commit leaves no financial trace and
counts one auto-renew attempt instead.

A paid renewal invoice the domain has not been renewed against yet (its job
ran out of retries, or never got queued) is queued again and not charged.
"""

import logging
from datetime import datetime, timedelta

from clients.registrar_client import RegistrarClient
from core import lifecycle
from core.config import ProvisioningConfig
from core.event_bus import EventBus
from core.events import AutoRenewFailed
from core.errors import InsufficientFunds
from core.invoicing import apply_payment, build_invoice
from core.ledger import LedgerStore
from core.lifecycle import apply_transition
from core.models import (
    Domain, DomainStatus, InvoiceItem, InvoiceStatus, JobType, LineItemKind, PaymentMethod, TransactionType,
)
from core.services.provisioning_service import ProvisioningService, renewal_key
from core.services.wallet_service import debit_wallet, record_transaction
from sweeps.base import Sweep

logger = logging.getLogger(__name__)

RENEWAL_YEARS = 1


class AutoRenewalSweep(Sweep):
    name = "auto-renewal"

    def __init__(
        self,
        store: LedgerStore,
        provisioning: ProvisioningService,
        registrar: RegistrarClient,
        event_bus: EventBus,
        config: ProvisioningConfig,
    ):
        self.store = store
        self.provisioning = provisioning
        self.registrar = registrar
        self.event_bus = event_bus
        self.config = config

    @property
    def interval_seconds(self) -> int:
        return self.config.sweeps.auto_renew_interval_seconds

    def run(self, now: datetime) -> dict[str, int]:
        sweeps = self.config.sweeps
        with self.store.unit_of_work() as unit:
            candidates = unit.list_auto_renew_candidates(
                now, now + timedelta(days=sweeps.auto_renew_horizon_days), sweeps.auto_renew_max_attempts
            )
        return self.each(candidates, lambda d: self._renew(d, now), lambda d: d.domain_name)

    def _renew(self, domain: Domain, now: datetime) -> str | None:
        if self.provisioning.queue.is_pending(JobType.RENEW_DOMAIN, renewal_key(domain.id)):
            return "already_queued"
        if self._requeue_paid_renewal(domain):
            return "requeued"

        try:
            price = self.registrar.get_renewal_price_cents(domain.tld)
            charged = self._charge(domain, price, now)
        except InsufficientFunds as e:
            self._record_failure(domain, str(e), now)
            return "insufficient_funds"
        except Exception as e:
            logger.warning(f"Auto-renewal of {domain.domain_name} failed: {e}")
            self._record_failure(domain, str(e) or e.__class__.__name__, now)
            return "failed_attempt"

        return "charged" if charged else None

    def _requeue_paid_renewal(self, domain: Domain) -> bool:
        """Queue a renewal already paid for but never applied, instead of charging again."""
        with self.store.unit_of_work() as unit:
            invoice = unit.find_paid_renewal_invoice(domain.id)
            if invoice is None or lifecycle.already_renewed(domain, invoice):
                return False
            self.provisioning.schedule_renewal(unit, domain.id, RENEWAL_YEARS, invoice.id, auto_triggered=True)

        logger.info(f"Re-queued paid renewal {invoice.invoice_number} for {domain.domain_name}")
        return True

    def _charge(self, domain: Domain, price_cents: int, now: datetime) -> bool:
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            if (
                current is None
                or current.status != DomainStatus.ACTIVE
                or not current.auto_renew
                or current.auto_renew_attempts >= self.config.sweeps.auto_renew_max_attempts
            ):
                return False

            invoice = build_invoice(
                invoice_number=unit.next_invoice_number(),
                client_id=current.client_id,
                items=[InvoiceItem(
                    description=f"Auto-renewal of {current.domain_name} ({RENEWAL_YEARS} year)",
                    unit_price_cents=price_cents,
                    kind=LineItemKind.DOMAIN_RENEWAL,
                    reference_id=current.id,
                )],
                now=now,
                due_days=0,
                tax_rate_bps=self.config.tax_rate_bps,
                currency=self.config.currency,
            )

            if invoice.total_cents > 0:
                debit_wallet(unit, current.client_id, invoice.total_cents)
                txn = record_transaction(
                    unit, current.client_id, TransactionType.PAYMENT, PaymentMethod.WALLET, invoice.total_cents,
                    currency=invoice.currency,
                    invoice_id=invoice.id,
                    description=f"Auto-renewal of {current.domain_name}",
                )
                invoice = apply_payment(invoice, invoice.total_cents, str(txn.id), now)
            else:
                invoice = invoice.model_copy(update={"status": InvoiceStatus.PAID, "paid_at": now})

            unit.save_invoice(invoice)
            unit.audit.log_create("invoice", invoice)
            self.provisioning.schedule_renewal(
                unit, current.id, RENEWAL_YEARS, invoice.id, auto_triggered=True
            )

        logger.info(f"Charged {invoice.total_cents} cents for auto-renewal of {domain.domain_name}")
        return True

    def _record_failure(self, domain: Domain, reason: str, now: datetime) -> None:
        with self.store.unit_of_work() as unit:
            current = unit.get_domain(domain.id, for_update=True)
            counted = apply_transition(
                lifecycle.record_auto_renew_failure, current, self.config.sweeps.auto_renew_max_attempts, now
            )
            if counted is None:
                return
            unit.save_domain(counted)
            unit.audit.log_update("domain", current, counted)
            disabled = current.auto_renew and not counted.auto_renew
            unit.outbox.publish(self.event_bus, AutoRenewFailed.create(counted, reason, disabled))

        if disabled:
            logger.warning(f"Auto-renew disabled for {domain.domain_name} after {counted.auto_renew_attempts} failures")

"""Scheduled sweeps over the ledger."""

from sweeps.auto_renewal import AutoRenewalSweep
from sweeps.base import Sweep, SweepLock, run_sweep
from sweeps.expiry import ExpirySweep
from sweeps.payment_reminder import PaymentReminderSweep
from sweeps.scheduler import SweepScheduler
from sweeps.suspension import SuspensionSweep
from sweeps.termination import TerminationSweep
from sweeps.transfer import TransferSweep


def build_sweeps(services: dict, registrar) -> list[Sweep]:
    store, event_bus, config = services["store"], services["event_bus"], services["config"]
    return [
        ExpirySweep(store, event_bus, config),
        AutoRenewalSweep(store, services["provisioning"], registrar, event_bus, config),
        TransferSweep(store, services["queue"], event_bus, config),
        PaymentReminderSweep(store, event_bus, config),
        SuspensionSweep(store, event_bus, config),
        TerminationSweep(store, event_bus, config),
    ]


__all__ = [
    "Sweep", "SweepLock", "run_sweep", "SweepScheduler", "build_sweeps",
    "ExpirySweep", "AutoRenewalSweep", "TransferSweep",
    "PaymentReminderSweep", "SuspensionSweep", "TerminationSweep",
]

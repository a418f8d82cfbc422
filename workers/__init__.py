"""Job handlers and worker pools."""

from workers.base import JobHandler, execute
from workers.dns import UpdateDnsHandler
from workers.notification import SendNotificationHandler
from workers.registration import RegisterDomainHandler
from workers.renewal import RenewDomainHandler
from workers.runner import QueueWorker, WorkerRunner
from workers.transfer import CheckTransferHandler, InitiateTransferHandler


def build_handlers(services: dict, registrar, notifier) -> list[JobHandler]:
    """One handler per job type, sharing the process's ledger and event bus."""
    store, event_bus = services["store"], services["event_bus"]
    return [
        RegisterDomainHandler(store, event_bus, registrar),
        RenewDomainHandler(store, event_bus, registrar, services["config"]),
        InitiateTransferHandler(store, event_bus, registrar),
        CheckTransferHandler(store, event_bus, registrar),
        UpdateDnsHandler(store, event_bus, registrar),
        SendNotificationHandler(store, event_bus, notifier),
    ]


__all__ = [
    "JobHandler", "execute", "build_handlers",
    "RegisterDomainHandler", "RenewDomainHandler", "InitiateTransferHandler",
    "CheckTransferHandler", "UpdateDnsHandler", "SendNotificationHandler",
    "QueueWorker", "WorkerRunner",
]

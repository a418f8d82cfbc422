"""Notification worker: hands queued notifications to the gateway."""

import logging

from clients.notification_client import NotificationGatewayClient
from core.models import JobRecord, JobType, NotificationPayload
from workers.base import JobHandler

logger = logging.getLogger(__name__)


class SendNotificationHandler(JobHandler):
    job_type = JobType.SEND_NOTIFICATION
    payload_model = NotificationPayload

    def __init__(self, store, event_bus, notifier: NotificationGatewayClient):
        super().__init__(store, event_bus)
        self.notifier = notifier

    def handle(self, job: JobRecord, payload: NotificationPayload) -> None:
        self.notifier.dispatch(payload.recipient_id, payload.event_type, payload.data)
        logger.info(f"Sent {payload.event_type} notification to {payload.recipient_id}")

    def on_exhausted(self, job: JobRecord, payload: NotificationPayload, error: str) -> None:
        # Dropped notifications never touch the ledger
        logger.error(f"Gave up on {payload.event_type} notification for {payload.recipient_id}: {error}")

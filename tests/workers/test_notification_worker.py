"""Tests for the send-notification worker."""

import pytest

from core.models import JobState, JobType, NotificationPayload
from fakes import run_next


@pytest.fixture
def handler(services, notifier):
    from workers.notification import SendNotificationHandler
    return SendNotificationHandler(services["store"], services["event_bus"], notifier)


def enqueue_notification(queue, event_type="domain-registered"):
    queue.enqueue(
        JobType.SEND_NOTIFICATION, "target-1",
        NotificationPayload(recipient_id="client-1", event_type=event_type, data={"domain_name": "example.com"}),
    )


class TestSendNotification:

    def test_dispatches_to_gateway(self, handler, queue, notifier):
        enqueue_notification(queue)

        assert run_next(queue, handler).state == JobState.COMPLETED
        assert notifier.sent == [("client-1", "domain-registered", {"domain_name": "example.com"})]

    def test_gateway_error_retries(self, handler, queue, notifier):
        from clients.notification_client import NotificationGatewayError

        notifier.fail_with = NotificationGatewayError("Gateway error: busy")
        enqueue_notification(queue)

        result = run_next(queue, handler)

        assert result.state == JobState.PENDING
        assert result.last_error == "Gateway error: busy"

    def test_exhausted_notification_touches_no_ledger(self, handler, queue, store, notifier, caplog):
        """Five failures drop the notification with an error log."""
        notifier.fail_with = ConnectionError("unreachable")
        enqueue_notification(queue)

        results = [run_next(queue, handler, hours_ahead=i) for i in range(5)]

        assert results[-1].state == JobState.FAILED
        assert "Gave up on domain-registered notification" in caplog.text
        assert store.audit_entries() == []

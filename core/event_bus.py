"""
Event bus for provisioning and billing events.

Synchronous in-process pub/sub, driven by the outbox after the unit that
produced an event has committed. Subscriptions are made against event
classes, and a subscriber to a category (DomainEvent, InvoiceEvent, or
ProvisioningEvent itself) receives every event below it. Subscriber
errors are logged with the event's recipient and never reach the
publisher.
"""

import logging
from typing import Callable

from core.events import ProvisioningEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[ProvisioningEvent], None]


class EventBus:
    """
    In-process event bus for provisioning events.

    Delivery goes from the most specific class up to ProvisioningEvent,
    in subscription order within each class.
    """

    def __init__(self):
        self._subscribers: dict[type, list[Subscriber]] = {}

    def subscribe(self, event_class: type[ProvisioningEvent], callback: Subscriber) -> None:
        """
        Args:
            event_class: Event class or category, e.g. DomainRegistered or DomainEvent
            callback: Called with each matching event

        Raises:
            TypeError: event_class is not a ProvisioningEvent class
        """
        if not (isinstance(event_class, type) and issubclass(event_class, ProvisioningEvent)):
            raise TypeError(f"Cannot subscribe to {event_class!r}: not a ProvisioningEvent class")
        self._subscribers.setdefault(event_class, []).append(callback)

    def subscribers_for(self, event_class: type[ProvisioningEvent]) -> list[Subscriber]:
        subscribers = []
        for cls in event_class.__mro__:
            subscribers.extend(self._subscribers.get(cls, ()))
        return subscribers

    def publish(self, event: ProvisioningEvent) -> int:
        """
        Deliver an event to every matching subscriber.

        Returns:
            Number of subscribers that handled the event without raising.
        """
        delivered = 0
        for callback in self.subscribers_for(type(event)):
            try:
                callback(event)
                delivered += 1
            except Exception:
                name = getattr(callback, "__name__", repr(callback))
                logger.exception(
                    f"Handler {name} failed for {event.__class__.__name__} "
                    f"(event_id={event.event_id}, recipient={event.recipient_id})"
                )
        return delivered

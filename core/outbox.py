"""
Post-commit side effects.

Steps registered while an atomic unit is open (job enqueues, event
publication, gateway order creation) run only after that unit commits.
A rolled-back unit discards its steps. Each step is contained: a failing
step is logged, its optional on_failure compensation runs, and the
remaining steps still run. Nothing here can undo the committed unit.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from core.event_bus import EventBus
from core.events import ProvisioningEvent

logger = logging.getLogger(__name__)


@dataclass
class OutboxStep:
    name: str
    action: Callable[[], Any]
    on_failure: Callable[[Exception], Any] | None = None


class Outbox:
    """Ordered list of post-commit steps for one unit of work."""

    def __init__(self):
        self._steps: list[OutboxStep] = []

    def __len__(self) -> int:
        return len(self._steps)

    def add(
        self,
        name: str,
        action: Callable[[], Any],
        on_failure: Callable[[Exception], Any] | None = None,
    ) -> None:
        self._steps.append(OutboxStep(name=name, action=action, on_failure=on_failure))

    def publish(self, event_bus: EventBus, event: ProvisioningEvent) -> None:
        """Publish an event once the unit has committed."""
        self.add(f"publish {event.__class__.__name__}", lambda: event_bus.publish(event))

    def discard(self) -> None:
        self._steps.clear()

    def flush(self) -> list[str]:
        """
        Run every step in registration order.

        Returns:
            Names of the steps that failed.
        """
        steps, self._steps = self._steps, []
        failed = []

        for step in steps:
            try:
                step.action()
            except Exception as e:
                failed.append(step.name)
                logger.exception(f"Outbox step '{step.name}' failed")
                if step.on_failure is None:
                    continue
                try:
                    step.on_failure(e)
                except Exception:
                    logger.exception(f"Compensation for outbox step '{step.name}' failed")

        return failed

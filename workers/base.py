"""
Job handler contract and single-job execution.

One JobHandler per JobType. A handler validates the payload against its
own model, does the external call, and applies the outcome in one ledger
unit. Exceptions escaping handle() count as a failed attempt; the queue
decides between retry and exhaustion, and on exhaustion on_exhausted()
applies the terminal transition.

Handlers must be idempotent: a job for a target that is no longer in the
state the job expects is a no-op that completes successfully.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from uuid import UUID

import pydantic

from core import lifecycle
from core.errors import ExhaustedRetries
from core.event_bus import EventBus
from core.ledger import LedgerStore, LedgerUnit
from core.lifecycle import apply_transition
from core.models import DomainStatus, JobRecord, JobState, JobType, OrderStatus, ServiceStatus
from jobs.queue import JobQueue

logger = logging.getLogger(__name__)


class JobHandler(ABC):
    """Base class for one queue's work."""

    job_type: JobType
    payload_model: type[pydantic.BaseModel]

    def __init__(self, store: LedgerStore, event_bus: EventBus):
        self.store = store
        self.event_bus = event_bus

    def parse(self, job: JobRecord) -> Any:
        return self.payload_model.model_validate(job.payload)

    @abstractmethod
    def handle(self, job: JobRecord, payload: Any) -> None:
        """Do the work. Raise to fail the attempt."""

    def on_exhausted(self, job: JobRecord, payload: Any, error: str) -> None:
        """Terminal handling after the last attempt failed. Default: nothing."""


def execute(queue: JobQueue, handler: JobHandler, job: JobRecord) -> JobRecord:
    """
    Run one claimed job to its next queue state.

    Returns:
        The job as recorded by the queue (completed, retry pending, or failed)
    """
    try:
        payload = handler.parse(job)
    except pydantic.ValidationError as e:
        # A malformed payload never succeeds; exhaust it now
        logger.error(f"{job.job_type.value} job {job.id} has an invalid payload: {e}")
        return queue.fail(job.model_copy(update={"attempts": job.max_attempts}), f"invalid payload: {e}")

    try:
        handler.handle(job, payload)
    except Exception as e:
        error = str(e) or e.__class__.__name__
        logger.exception(f"{job.job_type.value} job {job.id} attempt {job.attempts} failed")
        result = queue.fail(job, error)
        if result.state == JobState.FAILED:
            exhausted = ExhaustedRetries(job.job_type.value, job.target_id, result.attempts, error)
            logger.error(str(exhausted))
            try:
                handler.on_exhausted(result, payload, error)
            except Exception:
                logger.exception(f"Terminal handling for {job.job_type.value} job {job.id} failed")
        return result

    return queue.complete(job)


def complete_order_if_provisioned(unit: LedgerUnit, order_id: UUID | None, now: datetime) -> None:
    """paid -> completed once every domain and service on the order is active."""
    if order_id is None:
        return
    order = unit.get_order(order_id, for_update=True)
    if order is None or order.status != OrderStatus.PAID:
        return
    if any(d.status != DomainStatus.ACTIVE for d in unit.list_domains_for_order(order_id)):
        return
    if any(s.status != ServiceStatus.ACTIVE for s in unit.list_services_for_order(order_id)):
        return

    completed = apply_transition(lifecycle.mark_order_completed, order, now)
    if completed is not None:
        unit.save_order(completed)
        unit.audit.log_update("order", order, completed)
        logger.info(f"Order {order.order_number} completed")


def fail_order(unit: LedgerUnit, order_id: UUID | None, reason: str, now: datetime) -> None:
    if order_id is None:
        return
    order = unit.get_order(order_id, for_update=True)
    if order is None:
        return
    failed = apply_transition(lifecycle.mark_order_failed, order, reason, now)
    if failed is not None:
        unit.save_order(failed)
        unit.audit.log_update("order", order, failed)

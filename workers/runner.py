"""
Worker pools.

Each queue gets its own fixed set of threads (the queue policy's
concurrency). A worker thread loops: claim a job, take a slot from the
queue's rate limiter, execute. A throttled job is released back to the
queue without using an attempt. One maintenance thread reclaims expired
leases and prunes the dead-letter index.
"""

import logging
import threading

from core.config import ProvisioningConfig
from core.models import JobState, JobType
from jobs.queue import JobQueue
from jobs.rate_limiter import JobRateLimiter, RateLimitedError
from workers.base import JobHandler, execute

logger = logging.getLogger(__name__)


class QueueWorker:
    """Fixed pool of threads working one queue."""

    def __init__(
        self,
        queue: JobQueue,
        handler: JobHandler,
        rate_limiter: JobRateLimiter,
        concurrency: int,
        poll_interval: float = 1.0,
    ):
        self.queue = queue
        self.handler = handler
        self.rate_limiter = rate_limiter
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def job_type(self) -> JobType:
        return self.handler.job_type

    def start(self) -> None:
        for i in range(self.concurrency):
            thread = threading.Thread(
                target=self._run,
                name=f"{self.job_type.value}-{i}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info(f"Started {self.concurrency} {self.job_type.value} workers")

    def stop(self, join: bool = True, timeout: float | None = None) -> None:
        """Stop claiming. A job already running finishes first."""
        self._stop_event.set()
        if join:
            for thread in self._threads:
                thread.join(timeout)

    def is_alive(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                worked = self.run_once()
            except Exception:
                logger.exception(f"{self.job_type.value} worker loop error")
                worked = False
            if not worked:
                self._stop_event.wait(self.poll_interval)

    def run_once(self) -> bool:
        """
        Claim and run at most one job.

        Returns:
            True if a job was claimed
        """
        job = self.queue.claim(self.job_type)
        if job is None:
            return False

        try:
            self.rate_limiter.check_rate_limit(self.job_type)
        except RateLimitedError as e:
            self.queue.release(job, delay_seconds=e.retry_after_seconds)
            logger.info(str(e))
            self._stop_event.wait(min(e.retry_after_seconds, self.poll_interval * 5))
            return True

        execute(self.queue, self.handler, job)
        return True


class WorkerRunner:
    """All queue pools plus lease maintenance for one process."""

    def __init__(
        self,
        queue: JobQueue,
        rate_limiter: JobRateLimiter,
        handlers: list[JobHandler],
        config: ProvisioningConfig,
        maintenance_interval: float = 30.0,
    ):
        self.queue = queue
        self.handlers = {handler.job_type: handler for handler in handlers}
        self.maintenance_interval = maintenance_interval
        self.workers = [
            QueueWorker(queue, handler, rate_limiter, config.policy(handler.job_type).concurrency)
            for handler in handlers
        ]
        self._stop_event = threading.Event()
        self._maintenance = threading.Thread(target=self._maintain, name="queue-maintenance", daemon=True)

    def start(self) -> None:
        for worker in self.workers:
            worker.start()
        self._maintenance.start()

    def stop(self, timeout: float | None = None) -> None:
        logger.info("Stopping workers")
        self._stop_event.set()
        for worker in self.workers:
            worker.stop(join=False)
        for worker in self.workers:
            worker.stop(join=True, timeout=timeout)
        self._maintenance.join(timeout)
        logger.info("Workers stopped")

    def wait(self) -> None:
        """Block until stop() is called."""
        self._stop_event.wait()

    def _maintain(self) -> None:
        while not self._stop_event.wait(self.maintenance_interval):
            try:
                self.run_maintenance()
            except Exception:
                logger.exception("Queue maintenance failed")

    def run_maintenance(self) -> None:
        for job_type, handler in self.handlers.items():
            for record in self.queue.requeue_expired_leases(job_type):
                if record.state != JobState.FAILED:
                    continue
                try:
                    handler.on_exhausted(record, handler.parse(record), record.last_error or "lease expired")
                except Exception:
                    logger.exception(f"Terminal handling for reclaimed {job_type.value} job {record.id} failed")
            self.queue.prune_dead(job_type)

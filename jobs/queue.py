"""
Durable Valkey-backed job queue.

One logical queue per JobType. Layout per queue:

    jobs:{type}:job:{id}     JSON JobRecord
    jobs:{type}:ready        zset, score = run_at epoch (pending jobs)
    jobs:{type}:active       zset, score = lease expiry epoch
    jobs:{type}:dead         zset, score = finished epoch (exhausted jobs)
    jobs:{type}:idem:{key}   job id holding the idempotency key

Delivery is at-least-once. A worker claims a job by winning the ZREM from
the ready set; a worker that dies mid-job loses its lease and the job goes
back to ready via requeue_expired_leases(). An idempotency key is held from
enqueue until the job reaches a terminal state, so the same operation for
the same target cannot be queued twice while one is outstanding.
"""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from pydantic import BaseModel

from clients.valkey_client import ValkeyClient
from core.config import ProvisioningConfig
from core.models import JobRecord, JobState, JobType
from utils.timezone import now_utc, to_epoch

logger = logging.getLogger(__name__)


class JobQueue:
    """
    Usage:
        queue = JobQueue(valkey, config)
        queue.enqueue(JobType.REGISTER_DOMAIN, str(domain.id),
                      RegisterDomainPayload(domain_id=domain.id),
                      idempotency_key=f"register:{domain.id}")

        job = queue.claim(JobType.REGISTER_DOMAIN)
        ...
        queue.complete(job)    # or queue.fail(job, str(error))
    """

    KEY_PREFIX = "jobs"

    # How many due jobs to look at when picking the highest priority one
    CLAIM_SCAN = 50

    def __init__(self, valkey: ValkeyClient, config: ProvisioningConfig):
        self._valkey = valkey
        self._config = config

    # Keys

    def _key(self, job_type: JobType, *parts: str) -> str:
        return ":".join([self.KEY_PREFIX, job_type.value, *parts])

    def _job_key(self, job_type: JobType, job_id: str) -> str:
        return self._key(job_type, "job", job_id)

    def _idem_key(self, job_type: JobType, idempotency_key: str) -> str:
        return self._key(job_type, "idem", idempotency_key)

    # Persistence

    def _save(self, record: JobRecord, expire_seconds: int | None = None) -> None:
        self._valkey.set_json(
            self._job_key(record.job_type, record.id),
            record.model_dump(mode="json"),
            expire_seconds,
        )

    def get(self, job_type: JobType, job_id: str) -> JobRecord | None:
        data = self._valkey.get_json(self._job_key(job_type, job_id))
        if data is None:
            return None
        return JobRecord.model_validate(data)

    def _release_idempotency_key(self, record: JobRecord) -> None:
        if record.idempotency_key:
            self._valkey.delete_if_equals(
                self._idem_key(record.job_type, record.idempotency_key), record.id
            )

    # Producer side

    def enqueue(
        self,
        job_type: JobType,
        target_id: str,
        payload: BaseModel | dict[str, Any],
        priority: int | None = None,
        idempotency_key: str | None = None,
        delay_seconds: int = 0,
    ) -> JobRecord | None:
        """
        Add a job.

        Returns:
            The new JobRecord, or None when a job holding the same
            idempotency key is still outstanding.

        Raises:
            pydantic.ValidationError: Priority outside 1-10. Nothing was enqueued.
            redis.RedisError: Valkey unavailable. Nothing was enqueued.
        """
        policy = self._config.policy(job_type)
        job_id = uuid4().hex
        now = now_utc()

        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")

        record = JobRecord(
            id=job_id,
            job_type=job_type,
            target_id=target_id,
            payload=payload,
            priority=policy.default_priority if priority is None else priority,
            max_attempts=policy.max_attempts,
            idempotency_key=idempotency_key,
            run_at=now + timedelta(seconds=delay_seconds),
            created_at=now,
            updated_at=now,
        )

        if idempotency_key is not None:
            claimed = self._valkey.set_if_absent(
                self._idem_key(job_type, idempotency_key),
                job_id,
                expire_seconds=policy.failed_retention_seconds,
            )
            if not claimed:
                logger.info(f"Skipped duplicate {job_type.value} for {target_id} (key {idempotency_key})")
                return None

        self._save(record)
        self._valkey.zadd(self._key(job_type, "ready"), job_id, to_epoch(record.run_at))

        logger.info(f"Enqueued {job_type.value} job {job_id} for {target_id} (priority {record.priority})")
        return record

    def is_pending(self, job_type: JobType, idempotency_key: str) -> bool:
        """True while a job holding this idempotency key is outstanding."""
        return self._valkey.exists(self._idem_key(job_type, idempotency_key))

    def pending_count(self, job_type: JobType) -> int:
        return self._valkey.zcard(self._key(job_type, "ready"))

    def active_count(self, job_type: JobType) -> int:
        return self._valkey.zcard(self._key(job_type, "active"))

    # Consumer side

    def claim(self, job_type: JobType, now: datetime | None = None) -> JobRecord | None:
        """
        Lease the highest-priority due job, counting it as one attempt.

        Returns None when nothing is due.
        """
        now = now or now_utc()
        ready_key = self._key(job_type, "ready")
        due_ids = self._valkey.zrange_by_score(ready_key, "-inf", to_epoch(now), limit=self.CLAIM_SCAN)

        candidates = []
        for job_id in due_ids:
            record = self.get(job_type, job_id)
            if record is None:
                # Record expired or was removed; drop the dangling index entry
                self._valkey.zrem(ready_key, job_id)
                continue
            candidates.append(record)

        candidates.sort(key=lambda r: (r.priority, r.run_at))

        for record in candidates:
            if not self._valkey.zrem(ready_key, record.id):
                continue  # Another worker won it

            leased = record.model_copy(update={
                "state": JobState.ACTIVE,
                "attempts": record.attempts + 1,
                "updated_at": now,
            })
            self._save(leased)
            lease_until = now + timedelta(seconds=self._config.job_lease_seconds)
            self._valkey.zadd(self._key(job_type, "active"), record.id, to_epoch(lease_until))
            logger.info(f"Claimed {job_type.value} job {record.id} (attempt {leased.attempts}/{leased.max_attempts})")
            return leased

        return None

    def complete(self, record: JobRecord, now: datetime | None = None) -> JobRecord:
        now = now or now_utc()
        policy = self._config.policy(record.job_type)

        done = record.model_copy(update={
            "state": JobState.COMPLETED,
            "finished_at": now,
            "updated_at": now,
        })
        self._valkey.zrem(self._key(record.job_type, "active"), record.id)
        self._save(done, expire_seconds=policy.completed_retention_seconds)
        self._release_idempotency_key(done)

        logger.info(f"Completed {record.job_type.value} job {record.id}")
        return done

    def fail(self, record: JobRecord, error: str, now: datetime | None = None) -> JobRecord:
        """
        Record a failed attempt.

        Returns the record in PENDING state (retry scheduled per the queue's
        backoff policy) or FAILED state (attempts exhausted). The caller runs
        the terminal handling when FAILED comes back.
        """
        now = now or now_utc()
        policy = self._config.policy(record.job_type)
        self._valkey.zrem(self._key(record.job_type, "active"), record.id)

        if record.attempts >= record.max_attempts:
            dead = record.model_copy(update={
                "state": JobState.FAILED,
                "last_error": error,
                "finished_at": now,
                "updated_at": now,
            })
            self._save(dead, expire_seconds=policy.failed_retention_seconds)
            self._valkey.zadd(self._key(record.job_type, "dead"), record.id, to_epoch(now))
            self._release_idempotency_key(dead)
            logger.error(
                f"{record.job_type.value} job {record.id} for {record.target_id} "
                f"exhausted {record.attempts} attempts: {error}"
            )
            return dead

        delay = policy.retry_delay_seconds(record.attempts)
        retry = record.model_copy(update={
            "state": JobState.PENDING,
            "last_error": error,
            "run_at": now + timedelta(seconds=delay),
            "updated_at": now,
        })
        self._save(retry)
        self._valkey.zadd(self._key(record.job_type, "ready"), record.id, to_epoch(retry.run_at))
        logger.warning(
            f"{record.job_type.value} job {record.id} attempt {record.attempts} failed, "
            f"retrying in {delay}s: {error}"
        )
        return retry

    def release(self, record: JobRecord, delay_seconds: int = 0, now: datetime | None = None) -> JobRecord:
        """Hand a claimed job back without counting the attempt (e.g. throttled)."""
        now = now or now_utc()
        self._valkey.zrem(self._key(record.job_type, "active"), record.id)
        released = record.model_copy(update={
            "state": JobState.PENDING,
            "attempts": max(0, record.attempts - 1),
            "run_at": now + timedelta(seconds=delay_seconds),
            "updated_at": now,
        })
        self._save(released)
        self._valkey.zadd(self._key(record.job_type, "ready"), record.id, to_epoch(released.run_at))
        return released

    # Maintenance

    def requeue_expired_leases(self, job_type: JobType, now: datetime | None = None) -> list[JobRecord]:
        """
        Take back jobs whose worker stopped renewing the lease.

        Each reclaimed job is failed with "lease expired", which either
        schedules a retry or exhausts it. Returns the resulting records.
        """
        now = now or now_utc()
        active_key = self._key(job_type, "active")
        reclaimed = []

        for job_id in self._valkey.zrange_by_score(active_key, "-inf", to_epoch(now)):
            if not self._valkey.zrem(active_key, job_id):
                continue
            record = self.get(job_type, job_id)
            if record is None:
                continue
            reclaimed.append(self.fail(record, "lease expired", now=now))

        if reclaimed:
            logger.warning(f"Reclaimed {len(reclaimed)} expired {job_type.value} leases")
        return reclaimed

    def prune_dead(self, job_type: JobType, now: datetime | None = None) -> int:
        """Drop dead-letter index entries past failed-job retention."""
        now = now or now_utc()
        retention = self._config.policy(job_type).failed_retention_seconds
        return self._valkey.zrem_range_by_score(
            self._key(job_type, "dead"), "-inf", to_epoch(now) - retention
        )

    def dead_jobs(self, job_type: JobType, limit: int = 100) -> list[JobRecord]:
        ids = self._valkey.zrange_by_score(self._key(job_type, "dead"), "-inf", "+inf", limit=limit)
        return [record for record in (self.get(job_type, i) for i in ids) if record is not None]

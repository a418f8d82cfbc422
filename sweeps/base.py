"""
Sweep contract and the in-flight guard.

A sweep scans the ledger and applies time-based transitions. Each entity
is handled in its own ledger unit, so one bad entity is logged and counted
without stopping the rest. A Valkey lock keyed by sweep name makes a second
run skip while one is still in flight, across processes.
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Iterable
from uuid import uuid4

from clients.valkey_client import ValkeyClient
from utils.actor_context import SYSTEM_ACTOR, actor_context
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class Sweep(ABC):
    """One scheduled scan."""

    name: str

    @property
    @abstractmethod
    def interval_seconds(self) -> int: ...

    @abstractmethod
    def run(self, now: datetime) -> dict[str, int]:
        """Process everything due at `now`. Returns outcome counts."""

    def each(
        self,
        entities: Iterable[Any],
        process: Callable[[Any], str | None],
        label: Callable[[Any], str] = lambda e: str(e.id),
    ) -> dict[str, int]:
        """
        Run process() per entity, containing failures.

        process() returns an outcome name to count (or None to count nothing).
        """
        results: Counter = Counter()
        for entity in entities:
            try:
                outcome = process(entity)
            except Exception:
                logger.exception(f"{self.name} sweep failed for {label(entity)}")
                results["failed"] += 1
                continue
            if outcome:
                results[outcome] += 1
        return dict(results)


class SweepLock:
    """Per-sweep in-flight guard in Valkey. Expires on its own if a holder dies."""

    KEY_PREFIX = "sweeps:lock:"

    def __init__(self, valkey: ValkeyClient, ttl_seconds: int = 3600):
        self._valkey = valkey
        self._ttl = ttl_seconds

    def acquire(self, name: str) -> str | None:
        token = uuid4().hex
        if self._valkey.set_if_absent(f"{self.KEY_PREFIX}{name}", token, expire_seconds=self._ttl):
            return token
        return None

    def release(self, name: str, token: str) -> None:
        self._valkey.delete_if_equals(f"{self.KEY_PREFIX}{name}", token)


def run_sweep(sweep: Sweep, lock: SweepLock, now: datetime | None = None) -> dict[str, int] | None:
    """
    Run a sweep unless another run holds its lock.

    Returns:
        Outcome counts, or None if the run was skipped
    """
    token = lock.acquire(sweep.name)
    if token is None:
        logger.info(f"{sweep.name} sweep still in flight; skipped")
        return None

    try:
        with actor_context(SYSTEM_ACTOR):
            results = sweep.run(now or now_utc())
    finally:
        lock.release(sweep.name, token)

    logger.info(f"{sweep.name} sweep finished: {results}")
    return results

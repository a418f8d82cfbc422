"""
Interval scheduler for sweeps.

One thread per sweep: run, then wait the sweep's interval. The first run
happens after `first_delay` seconds. The Valkey lock in run_sweep keeps
schedulers in different processes from overlapping.
"""

import logging
import threading

from sweeps.base import Sweep, SweepLock, run_sweep

logger = logging.getLogger(__name__)


class SweepScheduler:
    def __init__(self, sweeps: list[Sweep], lock: SweepLock, first_delay: float = 10.0):
        self.sweeps = sweeps
        self.lock = lock
        self.first_delay = first_delay
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        for sweep in self.sweeps:
            thread = threading.Thread(target=self._loop, args=(sweep,), name=f"sweep-{sweep.name}", daemon=True)
            thread.start()
            self._threads.append(thread)
            logger.info(f"Scheduled {sweep.name} sweep every {sweep.interval_seconds}s")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        logger.info("Sweep scheduler stopped")

    def wait(self) -> None:
        self._stop_event.wait()

    def _loop(self, sweep: Sweep) -> None:
        delay = self.first_delay
        while not self._stop_event.wait(delay):
            try:
                run_sweep(sweep, self.lock)
            except Exception:
                logger.exception(f"{sweep.name} sweep run failed")
            delay = sweep.interval_seconds

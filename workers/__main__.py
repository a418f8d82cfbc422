"""Run every worker pool: python -m workers"""

import logging
import signal
import sys

from clients.postgres_client import PostgresClient
from core.bootstrap import connect
from workers import WorkerRunner, build_handlers

logger = logging.getLogger("workers")


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
    )

    try:
        services = connect()
    except (ValueError, PermissionError, KeyError) as e:
        logger.error(f"Startup failed: {e}")
        return 1

    runner = WorkerRunner(
        services["queue"],
        services["rate_limiter"],
        build_handlers(services, services["registrar"], services["notifier"]),
        services["config"],
    )

    def shutdown(signum, frame):
        logger.info(f"Shutdown signal received ({signum})")
        runner.stop(timeout=services["config"].job_lease_seconds)

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    runner.start()
    runner.wait()

    services["valkey"].close()
    PostgresClient.close_all_pools()
    return 0


if __name__ == "__main__":
    sys.exit(main())

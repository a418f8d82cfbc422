"""Run the sweep scheduler: python -m sweeps"""

import logging
import signal
import sys

from clients.postgres_client import PostgresClient
from core.bootstrap import connect
from sweeps import SweepLock, SweepScheduler, build_sweeps

logger = logging.getLogger("sweeps")


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

    scheduler = SweepScheduler(build_sweeps(services, services["registrar"]), SweepLock(services["valkey"]))

    def shutdown(signum, frame):
        logger.info(f"Shutdown signal received ({signum})")
        scheduler.stop(timeout=60)

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    scheduler.start()
    scheduler.wait()

    services["valkey"].close()
    PostgresClient.close_all_pools()
    return 0


if __name__ == "__main__":
    sys.exit(main())

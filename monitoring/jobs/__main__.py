"""Run the scheduler as a standalone process.

Usage::

    python -m monitoring.jobs

Useful when the HTTP adapter runs with SCHEDULER_ENABLED=false and the
periodic jobs live in a separate process.
"""

import asyncio
import signal

from monitoring.config import config
from monitoring.deps import close_clients
from monitoring.jobs.scheduler import (
    get_scheduler,
    setup_all_jobs,
    shutdown_scheduler,
    start_scheduler,
)
from monitoring.logging import get_logger, setup_logging
from monitoring.storage import close_engine, create_tables

setup_logging(config.log_level)
logger = get_logger(__name__)


async def _run() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    await create_tables()
    start_scheduler()
    setup_all_jobs()
    logger.info("Scheduler running standalone, press Ctrl+C to stop")

    try:
        while get_scheduler().running and not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=1)
            except asyncio.TimeoutError:
                pass
    finally:
        logger.info("Stopping scheduler")
        shutdown_scheduler()
        await close_clients()
        await close_engine()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()

"""
Headless monitoring worker: runs the probe scheduler without the HTTP API.
SIGINT/SIGTERM trigger a cooperative shutdown.
"""
import asyncio
import logging
import signal

from smokewatch.config import settings
from smokewatch.database import engine as db_engine, init_db

logger = logging.getLogger(__name__)


async def run_worker():
    from smokewatch.main import build_engine

    await init_db()
    monitor = build_engine()
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # Windows event loop
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))

    logger.info("Ping interval: %dms, count: %d", settings.PING_INTERVAL_MS, settings.PING_COUNT)
    logger.info("Route interval: %d minutes", settings.MTR_INTERVAL_SECONDS // 60)
    monitor.start()
    try:
        await stop.wait()
        logger.info("Termination signal received, shutting down")
    finally:
        await monitor.shutdown()
        await db_engine.dispose()


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()

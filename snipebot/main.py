"""Entry point for the snipebot pipeline."""

import asyncio
import signal

from loguru import logger

from config.settings import settings
from snipebot.app import SnipeBot
from snipebot.utils.logger import setup_logger


async def main() -> None:
    setup_logger(json_logs=settings.log_json, level=settings.log_level)
    logger.info("Starting snipebot...")

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    bot = SnipeBot(settings)
    tasks = bot.start()
    await bot.enable_auto_snipers()

    # Wait for either a loop to die or the shutdown signal
    waiter = asyncio.create_task(shutdown_event.wait())
    await asyncio.wait([*tasks, waiter], return_when=asyncio.FIRST_COMPLETED)
    waiter.cancel()

    await bot.stop()
    logger.info("Shutdown complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

"""
Relay Initialization - Shutdown Module.

Module: shutdown.py
Handles graceful shutdown of the relay.
Stops periodic jobs and the balance worker, closes provider sessions
and database connections.
"""

from aiohttp import web
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from relay.initialization.services import RelayServices


async def shutdown_handler(
    services: RelayServices | None,
    engine: AsyncEngine,
    health_runner: web.AppRunner | None = None,
) -> None:
    """Handle graceful shutdown."""
    logger.info("Graceful shutdown initiated...")

    # Stop periodic jobs first so nothing new is enqueued
    try:
        from jobs.scheduler import scheduler_instance
        if scheduler_instance and scheduler_instance.running:
            scheduler_instance.shutdown(wait=False)
            logger.info("Scheduler stopped")
    except Exception as e:
        logger.warning(f"Error stopping scheduler: {e}")

    if services is not None:
        # Waits out an in-flight check, including a limiter sleep
        await services.balance_scheduler.stop()
        await services.registry.close()
        logger.info("Provider sessions closed")

    if health_runner is not None:
        from jobs.health import stop_health_server
        await stop_health_server(health_runner)

    try:
        await engine.dispose()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")

    logger.info("Graceful shutdown complete")

"""
Relay main entry point.

Starts the balance synchronization engine: the balance check worker,
the periodic sweep jobs and the health check server. Initialization is
delegated to the modules in relay/initialization/.
"""

import asyncio
import signal
import sys
from pathlib import Path

from loguru import logger


# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from jobs.health import register_components, start_health_server  # noqa: E402
from jobs.scheduler import create_scheduler  # noqa: E402
from relay.config.database import async_session_maker, engine, init_db  # noqa: E402
from relay.config.settings import settings  # noqa: E402
from relay.initialization.logging import setup_logging  # noqa: E402
from relay.initialization.services import RelayServices, initialize_services  # noqa: E402
from relay.initialization.shutdown import shutdown_handler  # noqa: E402
from relay.utils.exceptions import RelayError, is_fatal  # noqa: E402


async def main() -> None:
    """Initialize and run the relay until SIGINT/SIGTERM."""
    setup_logging()

    services: RelayServices | None = None
    health_runner = None

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops
            pass

    try:
        await init_db(engine)

        try:
            services = await initialize_services(settings, async_session_maker)
        except RelayError as e:
            if is_fatal(e):
                logger.critical(f"Cannot start relay: {e}")
            raise

        services.balance_scheduler.start()

        scheduler = create_scheduler(
            settings,
            services.addresses,
            services.transactions,
            services.balance_scheduler,
        )
        scheduler.start()
        logger.info("Scheduler started")

        register_components(scheduler, services.balance_scheduler)
        try:
            health_runner = await start_health_server(
                port=settings.health_check_port or 8080,
            )
        except OSError as e:
            logger.warning(f"Failed to start health check server: {e}")

        logger.info("Relay started successfully")
        await stop_event.wait()
    finally:
        await shutdown_handler(services, engine, health_runner)


def run() -> None:
    """Console entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Relay stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Relay crashed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()

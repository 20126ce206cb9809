"""
Health check server.

aiohttp endpoints for orchestration probes:
- /health: periodic jobs plus balance worker counters
- /readiness: 200 once both jobs and worker run
- /liveness: process answers at all
"""

import asyncio

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from relay.config.constants import HEALTH_SERVER_STOP_TIMEOUT
from relay.services.balance_scheduler import BalanceScheduler

# Monitored components
_scheduler: AsyncIOScheduler | None = None
_balance_scheduler: BalanceScheduler | None = None


def register_components(
    scheduler: AsyncIOScheduler | None,
    balance_scheduler: BalanceScheduler | None,
) -> None:
    """
    Register the components reported by the health endpoints.

    Args:
        scheduler: Periodic job scheduler
        balance_scheduler: Balance check worker
    """
    global _scheduler, _balance_scheduler
    _scheduler = scheduler
    _balance_scheduler = balance_scheduler
    logger.info("Components registered for health checks")


def _jobs_running() -> bool:
    return _scheduler is not None and _scheduler.running


def _worker_running() -> bool:
    return _balance_scheduler is not None and _balance_scheduler.running


def _worker_snapshot() -> dict:
    if _balance_scheduler is None:
        return {"running": False}
    return {
        "running": _balance_scheduler.running,
        "queue_size": _balance_scheduler.queue_size,
        "processed": _balance_scheduler.processed,
        "failed": _balance_scheduler.failed,
    }


def _jobs_snapshot() -> list[dict]:
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
        }
        for job in _scheduler.get_jobs()
    ]


async def health_handler(request: web.Request) -> web.Response:
    """Report jobs and worker; 503 unless both run."""
    if _scheduler is None:
        return web.json_response(
            {"status": "unhealthy", "error": "Scheduler not initialized"},
            status=503,
        )

    healthy = _jobs_running() and _worker_running()
    return web.json_response(
        {
            "status": "healthy" if healthy else "degraded",
            "scheduler_running": _scheduler.running,
            "jobs": _jobs_snapshot(),
            "worker": _worker_snapshot(),
        },
        status=200 if healthy else 503,
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """Ready once balance checks are being processed."""
    ready = _jobs_running() and _worker_running()
    return web.json_response(
        {"status": "ready" if ready else "not_ready", "ready": ready},
        status=200 if ready else 503,
    )


async def liveness_handler(request: web.Request) -> web.Response:
    return web.json_response({"status": "alive", "alive": True})


def create_app() -> web.Application:
    """Build the health check application."""
    app = web.Application()
    app.add_routes([
        web.get("/health", health_handler),
        web.get("/readiness", readiness_handler),
        web.get("/liveness", liveness_handler),
    ])
    return app


async def start_health_server(
    host: str = "0.0.0.0",
    port: int = 8080,
) -> web.AppRunner:
    """
    Start health check server.

    Returns:
        AppRunner for cleanup
    """
    runner = web.AppRunner(create_app())
    await runner.setup()
    await web.TCPSite(runner, host, port).start()

    logger.info(f"Health check server listening on http://{host}:{port}/health")
    return runner


async def stop_health_server(
    runner: web.AppRunner,
    timeout: int = HEALTH_SERVER_STOP_TIMEOUT,
) -> None:
    """Stop health check server, giving up after `timeout` seconds."""
    logger.info("Stopping health check server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")

"""
Health check server for the retry scheduler.

Exposes /health, /readiness and /liveness over aiohttp.
"""

import asyncio
from datetime import datetime

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from app.utils.datetime_utils import utc_now

SCHEDULER_KEY = web.AppKey("scheduler", AsyncIOScheduler)
LAST_ENQUEUED_KEY = web.AppKey("last_enqueued", dict)


def record_enqueue(app: web.Application, job_id: str, at: datetime | None = None) -> None:
    """Remember when a retry cycle was last enqueued."""
    app[LAST_ENQUEUED_KEY][job_id] = at or utc_now()


async def health_handler(request: web.Request) -> web.Response:
    """Scheduler status and the retry jobs it runs."""
    scheduler = request.app[SCHEDULER_KEY]
    last_enqueued = request.app[LAST_ENQUEUED_KEY]

    try:
        jobs = scheduler.get_jobs()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return web.json_response({"status": "unhealthy", "error": str(e)}, status=503)

    return web.json_response(
        {
            "status": "healthy" if scheduler.running else "stopped",
            "scheduler_running": scheduler.running,
            "jobs": [
                {
                    "id": job.id,
                    "next_run_time": (
                        job.next_run_time.isoformat() if job.next_run_time else None
                    ),
                    "last_enqueued_at": (
                        last_enqueued[job.id].isoformat()
                        if job.id in last_enqueued
                        else None
                    ),
                }
                for job in jobs
            ],
        },
        status=200 if scheduler.running else 503,
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """Ready once the scheduler is running."""
    ready = request.app[SCHEDULER_KEY].running
    return web.json_response(
        {"status": "ready" if ready else "not_ready", "ready": ready},
        status=200 if ready else 503,
    )


async def liveness_handler(request: web.Request) -> web.Response:
    return web.json_response({"status": "alive", "alive": True})


def create_health_app(scheduler: AsyncIOScheduler) -> web.Application:
    """Build the health check application for a scheduler."""
    app = web.Application()
    app[SCHEDULER_KEY] = scheduler
    app[LAST_ENQUEUED_KEY] = {}
    app.router.add_get("/health", health_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)
    return app


async def start_health_server(
    app: web.Application,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """
    Start the health check server.

    Returns:
        AppRunner for cleanup
    """
    runner = web.AppRunner(app)
    await runner.setup()
    await web.TCPSite(runner, host, port).start()

    logger.info(f"Health check server started on {host}:{port}")
    return runner


async def stop_health_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """Stop the health check server, giving up after ``timeout`` seconds."""
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")

"""
Retry scheduler.

Enqueues the webhook retry cycle every 5 minutes and the payout retry
cycle every 15 minutes, and serves the health endpoints.

Usage:
    python -m jobs.scheduler
"""

import asyncio
import signal

import dramatiq
from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from app.config.constants import PAYOUT_RETRY_CRON, WEBHOOK_RETRY_CRON
from app.config.logging import setup_logging
from app.config.settings import settings
from jobs.broker import broker  # noqa: F401  (sets the dramatiq broker)
from jobs.health import (
    create_health_app,
    record_enqueue,
    start_health_server,
    stop_health_server,
)
from jobs.tasks.payout_retry import process_payout_retries
from jobs.tasks.webhook_retry import process_webhook_retries

WEBHOOK_RETRY_JOB_ID = "webhook_retry"
PAYOUT_RETRY_JOB_ID = "payout_retry"

RETRY_JOBS = (
    (WEBHOOK_RETRY_JOB_ID, WEBHOOK_RETRY_CRON, process_webhook_retries),
    (PAYOUT_RETRY_JOB_ID, PAYOUT_RETRY_CRON, process_payout_retries),
)


def _enqueue(actor: dramatiq.Actor, job_id: str, health_app: web.Application) -> None:
    actor.send()
    record_enqueue(health_app, job_id)
    logger.debug(f"Enqueued {actor.actor_name}")


def register_retry_jobs(scheduler: AsyncIOScheduler, health_app: web.Application) -> None:
    """
    Register both retry jobs on the scheduler.

    A job never runs twice at once on this scheduler and missed runs are
    collapsed into one. Overlap with another scheduler instance is not
    prevented.
    """
    for job_id, cron, actor in RETRY_JOBS:
        scheduler.add_job(
            _enqueue,
            CronTrigger.from_crontab(cron, timezone="UTC"),
            args=[actor, job_id, health_app],
            id=job_id,
            name=actor.actor_name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Scheduled {actor.actor_name} ({cron})")


async def main() -> None:
    """Run the scheduler until SIGINT or SIGTERM."""
    setup_logging(settings.log_level)

    scheduler = AsyncIOScheduler(timezone="UTC")
    health_app = create_health_app(scheduler)
    register_retry_jobs(scheduler, health_app)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    scheduler.start()
    runner = await start_health_server(health_app, port=settings.health_check_port)
    logger.info("Retry scheduler started")

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down retry scheduler...")
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)


if __name__ == "__main__":
    asyncio.run(main())

"""
Webhook retry task.

Retries failed Stripe webhook events whose next_retry_at has passed.
Enqueued by the scheduler every 5 minutes.
"""

import dramatiq
from loguru import logger

from app.config.constants import DRAMATIQ_TIME_LIMIT_STANDARD
from app.services.retry_service import RetryService, RetrySummary
from jobs.async_runner import run_async
from jobs.utils.database import create_local_session


@dramatiq.actor(max_retries=0, time_limit=DRAMATIQ_TIME_LIMIT_STANDARD)
def process_webhook_retries() -> None:
    """Run one webhook retry cycle."""
    logger.info("Starting webhook retry processing...")

    try:
        summary = run_async(_process_webhook_retries_async())
        logger.info(
            "Webhook retry processing complete",
            extra={"summary": summary.to_dict()},
        )
    except Exception as e:
        # Next tick retries whatever is still due
        logger.exception(f"Webhook retry processing failed: {e}")


async def _process_webhook_retries_async() -> RetrySummary:
    async with create_local_session() as session:
        return await RetryService.from_session(session).retry_failed_webhooks()

"""
Payout retry task.

Re-creates failed instructor payouts on Stripe with exponential backoff.
Enqueued by the scheduler every 15 minutes.
"""

import dramatiq
from loguru import logger

from app.config.constants import DRAMATIQ_TIME_LIMIT_STANDARD
from app.services.retry_service import RetryService, RetrySummary
from jobs.async_runner import run_async
from jobs.utils.database import create_local_session


@dramatiq.actor(max_retries=0, time_limit=DRAMATIQ_TIME_LIMIT_STANDARD)
def process_payout_retries() -> None:
    """Run one payout retry cycle."""
    logger.info("Starting payout retry processing...")

    try:
        summary = run_async(_process_payout_retries_async())
        logger.info(
            "Payout retry processing complete",
            extra={"summary": summary.to_dict()},
        )
    except Exception as e:
        logger.exception(f"Payout retry processing failed: {e}")


async def _process_payout_retries_async() -> RetrySummary:
    async with create_local_session() as session:
        return await RetryService.from_session(session).retry_failed_payouts()

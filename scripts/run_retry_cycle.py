#!/usr/bin/env python3
"""
Run retry cycles on demand.

Runs the same cycles the scheduled jobs run, in this process, and prints
their summaries. Useful after an outage to drain the retry backlog without
waiting for the next tick.

Usage:
    python scripts/run_retry_cycle.py --webhooks     # One webhook cycle
    python scripts/run_retry_cycle.py --payouts      # One payout cycle
    python scripts/run_retry_cycle.py --stats        # Print retry statistics
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from app.services.retry_service import RetryService
from jobs.utils.database import create_local_session


# Configure logger
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")


async def run(webhooks: bool, payouts: bool, stats: bool) -> None:
    async with create_local_session() as session:
        service = RetryService.from_session(session)

        if webhooks:
            summary = await service.retry_failed_webhooks()
            logger.info(f"Webhooks: {summary.to_dict()}")

        if payouts:
            summary = await service.retry_failed_payouts()
            logger.info(f"Payouts: {summary.to_dict()}")

        if stats:
            print(json.dumps(await service.get_retry_stats(), indent=2))


def main():
    parser = argparse.ArgumentParser(description="Run webhook and payout retry cycles")
    parser.add_argument("--webhooks", action="store_true", help="Run one webhook retry cycle")
    parser.add_argument("--payouts", action="store_true", help="Run one payout retry cycle")
    parser.add_argument("--stats", action="store_true", help="Print retry statistics")

    args = parser.parse_args()

    if not (args.webhooks or args.payouts or args.stats):
        parser.print_help()
        sys.exit(1)

    asyncio.run(run(args.webhooks, args.payouts, args.stats))


if __name__ == "__main__":
    main()

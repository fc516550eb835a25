"""
Retry Service - Statistics Module.

Module: stats.py
Counts of webhook events and payouts per status, and how many of each are
currently due for a retry.
"""

from datetime import datetime
from typing import Any

from app.repositories.payout_repository import PayoutRepository
from app.repositories.webhook_event_repository import WebhookEventRepository


class RetryStatsCollector:
    """Retry statistics."""

    def __init__(
        self,
        event_repo: WebhookEventRepository,
        payout_repo: PayoutRepository,
    ) -> None:
        """Initialize stats collector."""
        self.event_repo = event_repo
        self.payout_repo = payout_repo

    async def get_retry_stats(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Get retry statistics.

        Returns:
            Dict with per-status counts and due retries for both item kinds
        """
        # SQL COUNT only, nothing is loaded
        return {
            "webhooks": {
                "by_status": await self.event_repo.count_by_status(),
                "pending_retries": await self.event_repo.count_pending_retries(now),
            },
            "payouts": {
                "by_status": await self.payout_repo.count_by_status(),
                "pending_retries": await self.payout_repo.count_pending_retries(now),
            },
        }

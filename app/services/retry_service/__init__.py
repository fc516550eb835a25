"""
Retry Service - Main Module.

Retries failed Stripe webhook events and failed instructor payouts with
capped exponential backoff.

Module Structure:
- constants.py: Backoff defaults and failure categories
- backoff.py: RetryConfig and next-retry-time calculation
- classifier.py: Payout failure classification
- summary.py: Per-cycle outcome counts
- payout_gateway.py: Stripe payout re-creation
- webhook_processor.py: Webhook retry cycle
- payout_processor.py: Payout retry cycle
- stats.py: Retry statistics

Public Interface:
- RetryService: Facade used by the scheduled jobs
"""

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.payout_repository import PayoutRepository
from app.repositories.webhook_event_repository import WebhookEventRepository
from app.services.base_service import BaseService, log_operation

from .backoff import WEBHOOK_RETRY_CONFIG, RetryConfig, calculate_next_retry_time
from .classifier import categorize_payout_failure, should_retry_payout
from .payout_gateway import PayoutRetryResult, StripePayoutGateway
from .payout_processor import PayoutRetryProcessor
from .stats import RetryStatsCollector
from .summary import RetryOutcome, RetrySummary
from .webhook_processor import WebhookRetryProcessor


class RetryService(BaseService):
    """
    Webhook and payout retry facade.

    Components are wired once per session by ``from_session``; tests build
    the service directly with doubles.
    """

    def __init__(
        self,
        session: AsyncSession,
        webhook_processor: WebhookRetryProcessor,
        payout_processor: PayoutRetryProcessor,
        stats_collector: RetryStatsCollector,
    ) -> None:
        """Initialize retry service."""
        super().__init__(session)
        self.webhook_processor = webhook_processor
        self.payout_processor = payout_processor
        self.stats_collector = stats_collector

    @classmethod
    def from_session(
        cls,
        session: AsyncSession,
        gateway: StripePayoutGateway | None = None,
    ) -> "RetryService":
        """
        Build the service and all its collaborators on one session.

        Args:
            session: Async database session
            gateway: Payout gateway (Stripe with configured key by default)
        """
        # Local imports to avoid circular dependency
        from app.services.audit_log_service import AuditLogService
        from app.services.notification_service import NotificationService
        from app.services.webhook_dispatch import build_dispatcher
        from app.services.webhook_event_service import WebhookEventService

        audit_service = AuditLogService(session)
        notification_service = NotificationService(session)
        event_service = WebhookEventService(session, audit_service)
        payout_repo = PayoutRepository(session)

        return cls(
            session,
            webhook_processor=WebhookRetryProcessor(
                session,
                event_service,
                build_dispatcher(session, audit_service, notification_service),
                audit_service,
            ),
            payout_processor=PayoutRetryProcessor(
                session,
                payout_repo,
                gateway or StripePayoutGateway(),
                audit_service,
            ),
            stats_collector=RetryStatsCollector(
                WebhookEventRepository(session), payout_repo
            ),
        )

    @log_operation
    async def retry_failed_webhooks(self, now: datetime | None = None) -> RetrySummary:
        """Run one webhook retry cycle."""
        return await self.webhook_processor.process_pending_retries(now)

    @log_operation
    async def retry_failed_payouts(self, now: datetime | None = None) -> RetrySummary:
        """Run one payout retry cycle."""
        return await self.payout_processor.process_pending_retries(now)

    async def get_retry_stats(self, now: datetime | None = None) -> dict[str, Any]:
        """Get retry statistics."""
        return await self.stats_collector.get_retry_stats(now)


__all__ = [
    "WEBHOOK_RETRY_CONFIG",
    "PayoutRetryProcessor",
    "PayoutRetryResult",
    "RetryConfig",
    "RetryOutcome",
    "RetryService",
    "RetrySummary",
    "StripePayoutGateway",
    "WebhookRetryProcessor",
    "calculate_next_retry_time",
    "categorize_payout_failure",
    "should_retry_payout",
]

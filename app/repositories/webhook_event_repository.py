"""
Webhook Event Repository.

Database operations for WebhookEvent model.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import WebhookEventStatus
from app.models.webhook_event import WebhookEvent
from app.repositories.base import BaseRepository
from app.utils.datetime_utils import utc_now


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for webhook events."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        super().__init__(WebhookEvent, session)

    async def get_by_stripe_event_id(
        self, stripe_event_id: str
    ) -> WebhookEvent | None:
        """Get webhook event by Stripe event ID."""
        return await self.get_by(stripe_event_id=stripe_event_id)

    async def get_pending_retries(
        self, now: datetime | None = None
    ) -> list[WebhookEvent]:
        """
        Get webhook events that are due for a retry.

        An event is due when it failed, its next_retry_at has passed and it
        still has retry budget. Earliest-due events come first.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            List of due webhook events
        """
        now = now or utc_now()
        stmt = (
            select(WebhookEvent)
            .where(
                WebhookEvent.status == WebhookEventStatus.FAILED.value,
                WebhookEvent.next_retry_at.is_not(None),
                WebhookEvent.next_retry_at <= now,
                WebhookEvent.retry_count < WebhookEvent.max_retries,
            )
            .order_by(WebhookEvent.next_retry_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        """Count webhook events grouped by status."""
        stmt = select(WebhookEvent.status, func.count()).group_by(WebhookEvent.status)
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}

    async def count_pending_retries(self, now: datetime | None = None) -> int:
        """Count webhook events currently due for a retry."""
        now = now or utc_now()
        stmt = (
            select(func.count())
            .select_from(WebhookEvent)
            .where(
                WebhookEvent.status == WebhookEventStatus.FAILED.value,
                WebhookEvent.next_retry_at <= now,
                WebhookEvent.retry_count < WebhookEvent.max_retries,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

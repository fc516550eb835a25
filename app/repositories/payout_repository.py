"""
Payout Repository.

Database operations for Payout and PayoutAttempt models, including
the three retry state transitions used by the payout retry scheduler.
"""

from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import PayoutStatus
from app.models.payout import Payout, PayoutAttempt
from app.repositories.base import BaseRepository
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import PayoutNotFoundError


class PayoutRepository(BaseRepository[Payout]):
    """Repository for payouts and their attempt history."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        super().__init__(Payout, session)

    async def get_by_stripe_payout_id(self, stripe_payout_id: str) -> Payout | None:
        """Get payout by Stripe payout ID."""
        return await self.get_by(stripe_payout_id=stripe_payout_id)

    async def _get_or_raise(self, payout_id: int) -> Payout:
        payout = await self.get_by_id(payout_id)
        if not payout:
            raise PayoutNotFoundError(payout_id)
        return payout

    async def find_failed_due(self, now: datetime | None = None) -> list[Payout]:
        """
        Find failed payouts due for a retry, earliest-due first.

        Selection: status == FAILED AND next_retry_at <= now
        AND retry_count < max_retries.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            List of due payouts
        """
        now = now or utc_now()
        stmt = (
            select(Payout)
            .where(
                Payout.status == PayoutStatus.FAILED.value,
                Payout.next_retry_at <= now,
                Payout.retry_count < Payout.max_retries,
            )
            .order_by(Payout.next_retry_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def append_attempt(
        self,
        payout_id: int,
        attempt_number: int,
        status: PayoutStatus,
        failure_reason: str | None = None,
        failure_category: str | None = None,
        stripe_payout_id: str | None = None,
        processing_time: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> PayoutAttempt:
        """
        Append an attempt record. Attempts are never updated afterwards.

        Returns:
            Created PayoutAttempt
        """
        attempt = PayoutAttempt(
            payout_id=payout_id,
            attempt_number=attempt_number,
            attempted_at=utc_now(),
            status=status.value,
            failure_reason=failure_reason,
            failure_category=failure_category,
            stripe_payout_id=stripe_payout_id,
            processing_time=processing_time,
            details=details,
        )
        self.session.add(attempt)
        await self.session.flush()
        return attempt

    async def mark_retry_succeeded(
        self,
        payout_id: int,
        retry_count: int,
        stripe_payout_id: str | None = None,
        processing_time: int | None = None,
    ) -> Payout | None:
        """Terminal success of a retry: payout is scheduled with Stripe again."""
        data: dict[str, Any] = {
            "status": PayoutStatus.SCHEDULED.value,
            "retry_count": retry_count,
            "next_retry_at": None,
        }
        if stripe_payout_id:
            data["stripe_payout_id"] = stripe_payout_id

        payout = await self.update(payout_id, **data)
        await self.append_attempt(
            payout_id,
            attempt_number=retry_count,
            status=PayoutStatus.SCHEDULED,
            stripe_payout_id=stripe_payout_id,
            processing_time=processing_time,
            details={"retry_success": True},
        )
        return payout

    async def schedule_retry(
        self,
        payout_id: int,
        retry_count: int,
        next_retry_at: datetime,
        error: str,
        failure_category: str | None = None,
        processing_time: int | None = None,
    ) -> Payout | None:
        """Record a failed attempt and schedule the next one."""
        data: dict[str, Any] = {
            "retry_count": retry_count,
            "next_retry_at": next_retry_at,
        }
        if failure_category:
            data["failure_category"] = failure_category

        payout = await self.update(payout_id, **data)
        await self.append_attempt(
            payout_id,
            attempt_number=retry_count,
            status=PayoutStatus.FAILED,
            failure_reason=error,
            failure_category=failure_category,
            processing_time=processing_time,
        )

        logger.info(
            f"Payout {payout_id} retry {retry_count} failed, "
            f"next attempt at: {next_retry_at.isoformat()}"
        )
        return payout

    async def mark_failed(
        self,
        payout_id: int,
        retry_count: int,
        reason: str,
        failure_category: str | None = None,
        processing_time: int | None = None,
    ) -> Payout:
        """Terminal failure after the retry budget is spent."""
        payout = await self._get_or_raise(payout_id)

        payout.status = PayoutStatus.FAILED.value
        payout.retry_count = retry_count
        payout.next_retry_at = None
        payout.failed_at = utc_now()
        payout.failure_reason = reason
        if failure_category:
            payout.failure_category = failure_category
        payout.details = {**(payout.details or {}), "permanent_failure": True}
        await self.session.flush()

        await self.append_attempt(
            payout_id,
            attempt_number=retry_count,
            status=PayoutStatus.FAILED,
            failure_reason=reason,
            failure_category=failure_category,
            processing_time=processing_time,
        )
        return payout

    async def mark_permanently_failed(self, payout_id: int) -> Payout:
        """
        Terminal failure for a non-retryable failure category.

        Does not consume a retry attempt and does not add an attempt record.
        """
        payout = await self._get_or_raise(payout_id)

        payout.status = PayoutStatus.FAILED.value
        payout.next_retry_at = None
        payout.details = {**(payout.details or {}), "permanent_failure": True}
        await self.session.flush()
        return payout

    async def count_by_status(self) -> dict[str, int]:
        """Count payouts grouped by status."""
        stmt = select(Payout.status, func.count()).group_by(Payout.status)
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}

    async def count_pending_retries(self, now: datetime | None = None) -> int:
        """Count payouts currently due for a retry."""
        now = now or utc_now()
        stmt = (
            select(func.count())
            .select_from(Payout)
            .where(
                Payout.status == PayoutStatus.FAILED.value,
                Payout.next_retry_at <= now,
                Payout.retry_count < Payout.max_retries,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

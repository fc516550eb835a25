"""
Retry Service - Payout Processor Module.

Module: payout_processor.py
Drives every due payout through exactly one retry attempt against Stripe.

Selection: status == FAILED AND next_retry_at <= now AND
retry_count < max_retries, earliest-due first.
"""

import random
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import (
    AuditLogAction,
    AuditLogCategory,
    AuditLogLevel,
    PayoutFailureCategory,
)
from app.repositories.payout_repository import PayoutRepository
from app.utils.datetime_utils import elapsed_ms, monotonic_ms
from app.utils.exceptions import is_transient

from .backoff import calculate_next_retry_time
from .classifier import should_retry_payout
from .constants import MAX_RETRIES_EXCEEDED_PREFIX
from .payout_gateway import PayoutRetryResult, PayoutSnapshot, StripePayoutGateway
from .summary import RetryOutcome, RetrySummary


if TYPE_CHECKING:
    from app.services.audit_log_service import AuditLogService


INSTRUCTOR = "instructor"


class PayoutRetryProcessor:
    """Payout retry cycle."""

    def __init__(
        self,
        session: AsyncSession,
        payout_repo: PayoutRepository,
        gateway: StripePayoutGateway,
        audit_service: "AuditLogService",
        rand: Callable[[], float] = random.random,
    ) -> None:
        """Initialize processor with its collaborators."""
        self.session = session
        self.payout_repo = payout_repo
        self.gateway = gateway
        self.audit_service = audit_service
        self.rand = rand

    async def process_pending_retries(self, now: datetime | None = None) -> RetrySummary:
        """
        Process all payouts due for a retry.

        Called by the payout retry job every 15 minutes.

        Args:
            now: Reference time for selecting due payouts

        Returns:
            RetrySummary for the cycle
        """
        due = await self.payout_repo.find_failed_due(now)
        summary = RetrySummary()

        if not due:
            return summary

        snapshots = [PayoutSnapshot.from_model(payout) for payout in due]
        logger.info(f"Found {len(snapshots)} payouts pending retry")

        for snapshot in snapshots:
            outcome = await self._process_single_retry_safe(snapshot)
            summary.record(outcome)

        logger.info(
            f"Payout retry process completed: {summary.succeeded} succeeded, "
            f"{summary.failed} failed, {summary.rescheduled} rescheduled "
            f"out of {summary.processed} total"
        )
        return summary

    async def _process_single_retry_safe(self, snapshot: PayoutSnapshot) -> RetryOutcome:
        """Process one payout, converting any exception into a failed attempt."""
        try:
            return await self._process_retry(snapshot)
        except Exception as e:
            logger.opt(exception=True).error(f"Error retrying payout {snapshot.id}: {e}")
            await self._rollback_quietly()
            category = PayoutFailureCategory.TECHNICAL_ERROR if is_transient(e) else None
            return await self._record_failure_safe(snapshot, str(e), category)

    async def _record_failure_safe(
        self,
        snapshot: PayoutSnapshot,
        error: str,
        category: PayoutFailureCategory | None,
    ) -> RetryOutcome:
        try:
            outcome = await self._record_failure(snapshot, error, category)
            await self.session.commit()
            return outcome
        except Exception as bookkeeping_error:
            # Left as-is; picked up again on the next cycle
            logger.error(
                f"Could not record failed retry of payout {snapshot.id}: {bookkeeping_error}"
            )
            await self._rollback_quietly()
            return RetryOutcome.RESCHEDULED

    async def _process_retry(self, snapshot: PayoutSnapshot) -> RetryOutcome:
        """Classify, call Stripe and record the outcome."""
        attempt = snapshot.retry_count + 1
        logger.info(f"Retrying payout: {snapshot.id} (attempt {attempt})")

        if not should_retry_payout(snapshot.failure_category):
            return await self._short_circuit(snapshot)

        started = monotonic_ms()
        result = await self.gateway.retry_payout(snapshot, attempt)
        processing_time = elapsed_ms(started)

        if not result.success:
            outcome = await self._record_failure(
                snapshot,
                result.error or "Payout retry failed",
                result.failure_category,
                processing_time,
            )
            await self.session.commit()
            return outcome

        return await self._record_success_safe(snapshot, attempt, result, processing_time)

    async def _record_success_safe(
        self,
        snapshot: PayoutSnapshot,
        attempt: int,
        result: PayoutRetryResult,
        processing_time: int,
    ) -> RetryOutcome:
        """
        Record a payout Stripe has already accepted.

        If this fails the row is left untouched, so the next cycle repeats
        the same attempt number and Stripe answers the same idempotency key
        with the payout it already created.
        """
        try:
            return await self._record_success(snapshot, attempt, result, processing_time)
        except Exception as e:
            logger.opt(exception=True).error(
                f"Payout {snapshot.id} accepted by Stripe "
                f"({result.stripe_payout_id}) but not recorded: {e}"
            )
            await self._rollback_quietly()
            return RetryOutcome.RESCHEDULED

    async def _record_success(
        self,
        snapshot: PayoutSnapshot,
        attempt: int,
        result: PayoutRetryResult,
        processing_time: int,
    ) -> RetryOutcome:
        await self.payout_repo.mark_retry_succeeded(
            snapshot.id,
            retry_count=attempt,
            stripe_payout_id=result.stripe_payout_id,
            processing_time=processing_time,
        )
        await self.audit_service.create_audit_log(
            action=AuditLogAction.PAYOUT_RETRY_ATTEMPTED,
            category=AuditLogCategory.PAYOUT,
            level=AuditLogLevel.INFO,
            message=f"Payout retry succeeded: {snapshot.id}",
            user_id=snapshot.instructor_id,
            user_type=INSTRUCTOR,
            resource_type="payout",
            resource_id=snapshot.id,
            metadata={
                "retry_attempt": attempt,
                "processing_time": processing_time,
                "stripe_payout_id": result.stripe_payout_id,
            },
        )
        await self.session.commit()
        return RetryOutcome.SUCCEEDED

    async def _short_circuit(self, snapshot: PayoutSnapshot) -> RetryOutcome:
        """Non-retryable category: terminal without using an attempt."""
        await self.payout_repo.mark_permanently_failed(snapshot.id)
        await self._audit_terminal_failure(
            snapshot,
            f"Payout permanently failed: {snapshot.failure_category}",
            retry_count=snapshot.retry_count,
        )
        await self.session.commit()

        logger.warning(
            f"Payout {snapshot.id} not retryable ({snapshot.failure_category}), "
            f"marked permanently failed"
        )
        return RetryOutcome.FAILED

    async def _record_failure(
        self,
        snapshot: PayoutSnapshot,
        error: str,
        category: PayoutFailureCategory | None = None,
        processing_time: int | None = None,
    ) -> RetryOutcome:
        """
        Record a failed attempt.

        Terminal when Stripe reports a non-retryable category or when this
        was the last attempt of the budget; rescheduled otherwise.
        """
        attempt = snapshot.retry_count + 1
        category_value = category.value if category else None

        if category is not None and not should_retry_payout(category):
            reason = error
        elif attempt >= snapshot.max_retries:
            reason = f"{MAX_RETRIES_EXCEEDED_PREFIX}: {error}"
        else:
            next_retry_at = calculate_next_retry_time(
                attempt, snapshot.retry_config, rand=self.rand
            )
            await self.payout_repo.schedule_retry(
                snapshot.id,
                retry_count=attempt,
                next_retry_at=next_retry_at,
                error=error,
                failure_category=category_value,
                processing_time=processing_time,
            )
            return RetryOutcome.RESCHEDULED

        await self.payout_repo.mark_failed(
            snapshot.id,
            retry_count=attempt,
            reason=reason,
            failure_category=category_value,
            processing_time=processing_time,
        )
        await self._audit_terminal_failure(snapshot, reason, retry_count=attempt)
        return RetryOutcome.FAILED

    async def _audit_terminal_failure(
        self, snapshot: PayoutSnapshot, reason: str, retry_count: int
    ) -> None:
        await self.audit_service.create_audit_log(
            action=AuditLogAction.PAYOUT_FAILED,
            category=AuditLogCategory.PAYOUT,
            level=AuditLogLevel.ERROR,
            message=reason,
            user_id=snapshot.instructor_id,
            user_type=INSTRUCTOR,
            resource_type="payout",
            resource_id=snapshot.id,
            metadata={
                "retry_count": retry_count,
                "max_retries": snapshot.max_retries,
                "failure_category": snapshot.failure_category,
                "permanent_failure": True,
            },
        )

    async def _rollback_quietly(self) -> None:
        try:
            await self.session.rollback()
        except Exception as e:
            logger.error(f"Rollback failed: {e}")

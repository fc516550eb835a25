"""
Retry Service - Webhook Processor Module.

Module: webhook_processor.py
Drives every due webhook event through exactly one retry attempt.

Items are processed one after another, each in its own transaction.
An exception while processing one item never aborts the batch.
"""

import json
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import AuditLogAction, AuditLogCategory, AuditLogLevel
from app.models.webhook_event import WebhookEvent
from app.utils.datetime_utils import elapsed_ms, monotonic_ms

from .backoff import WEBHOOK_RETRY_CONFIG, RetryConfig
from .constants import MAX_RETRIES_EXCEEDED_PREFIX
from .summary import RetryOutcome, RetrySummary


if TYPE_CHECKING:
    from app.services.audit_log_service import AuditLogService
    from app.services.webhook_dispatch import WebhookDispatcher
    from app.services.webhook_event_service import WebhookEventService


@dataclass(frozen=True)
class WebhookRetrySnapshot:
    """Fields of a due webhook event, read before the attempt starts."""

    id: int
    stripe_event_id: str
    event_type: str
    source: str
    raw_payload: str
    retry_count: int
    max_retries: int

    @classmethod
    def from_model(cls, event: WebhookEvent) -> "WebhookRetrySnapshot":
        return cls(
            id=event.id,
            stripe_event_id=event.stripe_event_id,
            event_type=event.event_type,
            source=event.source,
            raw_payload=event.raw_payload,
            retry_count=event.retry_count,
            max_retries=event.max_retries,
        )


class WebhookRetryProcessor:
    """Webhook retry cycle."""

    def __init__(
        self,
        session: AsyncSession,
        event_service: "WebhookEventService",
        dispatcher: "WebhookDispatcher",
        audit_service: "AuditLogService",
        retry_config: RetryConfig = WEBHOOK_RETRY_CONFIG,
        rand: Callable[[], float] = random.random,
    ) -> None:
        """Initialize processor with its collaborators."""
        self.session = session
        self.event_service = event_service
        self.dispatcher = dispatcher
        self.audit_service = audit_service
        self.retry_config = retry_config
        self.rand = rand

    async def process_pending_retries(self, now: datetime | None = None) -> RetrySummary:
        """
        Process all webhook events due for a retry.

        Called by the webhook retry job every 5 minutes.

        Args:
            now: Reference time for selecting due events

        Returns:
            RetrySummary for the cycle
        """
        pending = await self.event_service.get_pending_retries(now)
        summary = RetrySummary()

        if not pending:
            return summary

        snapshots = [WebhookRetrySnapshot.from_model(event) for event in pending]
        logger.info(f"Found {len(snapshots)} webhooks pending retry")

        for snapshot in snapshots:
            outcome = await self._process_single_retry_safe(snapshot)
            summary.record(outcome)

        logger.info(
            f"Webhook retry process completed: {summary.succeeded} succeeded, "
            f"{summary.failed} failed, {summary.rescheduled} rescheduled "
            f"out of {summary.processed} total"
        )
        return summary

    async def _process_single_retry_safe(
        self, snapshot: WebhookRetrySnapshot
    ) -> RetryOutcome:
        """
        Process one event, converting any exception into a failed attempt.

        Returns:
            Outcome of the attempt
        """
        try:
            return await self._process_retry(snapshot)
        except Exception as e:
            logger.opt(exception=True).error(
                f"Error retrying webhook {snapshot.stripe_event_id}: {e}"
            )
            await self._rollback_quietly()
            return await self._record_failure_safe(snapshot, str(e))

    async def _record_failure_safe(
        self, snapshot: WebhookRetrySnapshot, error: str
    ) -> RetryOutcome:
        try:
            outcome = await self._record_failure(snapshot, error)
            await self.session.commit()
            return outcome
        except Exception as bookkeeping_error:
            # Left as-is; picked up again on the next cycle
            logger.error(
                f"Could not record failed retry of webhook {snapshot.stripe_event_id}: "
                f"{bookkeeping_error}"
            )
            await self._rollback_quietly()
            return RetryOutcome.RESCHEDULED

    async def _process_retry(self, snapshot: WebhookRetrySnapshot) -> RetryOutcome:
        """Re-parse the stored payload, dispatch it and record the outcome."""
        attempt = snapshot.retry_count + 1
        logger.info(f"Retrying webhook: {snapshot.stripe_event_id} (attempt {attempt})")

        event = json.loads(snapshot.raw_payload)
        started = monotonic_ms()
        result = await self.dispatcher.dispatch(event, snapshot.source)
        result.processing_time = elapsed_ms(started)

        if not result.success:
            # Discard whatever the failed handler wrote
            await self.session.rollback()
            outcome = await self._record_failure(snapshot, result.error or "Retry failed")
            await self.session.commit()
            return outcome

        await self.event_service.mark_processed(snapshot.id, result, retry_count=attempt)
        await self.audit_service.create_audit_log(
            action=AuditLogAction.WEBHOOK_RETRY_ATTEMPTED,
            category=AuditLogCategory.WEBHOOK,
            level=AuditLogLevel.INFO,
            message=f"Webhook retry succeeded: {snapshot.stripe_event_id}",
            resource_type="webhook_event",
            resource_id=snapshot.id,
            metadata={
                "webhook_event_id": snapshot.id,
                "stripe_event_id": snapshot.stripe_event_id,
                "retry_attempt": attempt,
                "processing_time": result.processing_time,
            },
        )
        await self.session.commit()
        return RetryOutcome.SUCCEEDED

    async def _record_failure(
        self, snapshot: WebhookRetrySnapshot, error: str
    ) -> RetryOutcome:
        """Terminal failure when this was the last attempt, otherwise reschedule."""
        attempt = snapshot.retry_count + 1

        if attempt >= snapshot.max_retries:
            await self.event_service.mark_failed(
                snapshot.id,
                f"{MAX_RETRIES_EXCEEDED_PREFIX}: {error}",
                retry_count=attempt,
            )
            return RetryOutcome.FAILED

        await self.event_service.schedule_retry(
            snapshot.id, error, self.retry_config, rand=self.rand
        )
        return RetryOutcome.RESCHEDULED

    async def _rollback_quietly(self) -> None:
        try:
            await self.session.rollback()
        except Exception as e:
            logger.error(f"Rollback failed: {e}")

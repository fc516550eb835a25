"""
Webhook event service.

Stores incoming Stripe webhook deliveries and owns the three retry state
transitions of a webhook event: processed, retry scheduled, failed.
"""

import json
import random
from collections.abc import Callable
from datetime import datetime
from typing import Any

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.models.enums import (
    AuditLogAction,
    AuditLogCategory,
    AuditLogLevel,
    WebhookEventSource,
    WebhookEventStatus,
)
from app.models.webhook_event import WebhookEvent
from app.repositories.webhook_event_repository import WebhookEventRepository
from app.services.audit_log_service import AuditLogService
from app.services.base_service import BaseService, transaction
from app.services.retry_service.backoff import (
    WEBHOOK_RETRY_CONFIG,
    RetryConfig,
    calculate_next_retry_time,
)
from app.services.retry_service.constants import (
    BACKOFF_MULTIPLIER,
    MAX_RETRIES_EXCEEDED_PREFIX,
)
from app.services.webhook_dispatch.result import WebhookProcessingResult
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import WebhookEventNotFoundError, WebhookSignatureError


class WebhookEventService(BaseService):
    """Webhook event store and retry bookkeeping."""

    def __init__(
        self,
        session: AsyncSession,
        audit_service: AuditLogService | None = None,
    ) -> None:
        """Initialize webhook event service."""
        super().__init__(session)
        self.event_repo = WebhookEventRepository(session)
        self.audit_service = audit_service or AuditLogService(session)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def _webhook_secret(self, source: WebhookEventSource) -> str | None:
        if source == WebhookEventSource.STRIPE_CONNECT:
            return settings.stripe_connect_webhook_secret
        return settings.stripe_webhook_secret

    def verify_signature(
        self,
        payload: bytes | str,
        signature: str | None,
        source: WebhookEventSource,
    ) -> dict[str, Any]:
        """
        Verify the Stripe-Signature header and decode the event.

        Raises:
            WebhookSignatureError: Missing header, missing secret or bad signature
        """
        if not signature:
            raise WebhookSignatureError("Missing Stripe signature header")

        secret = self._webhook_secret(source)
        if not secret:
            raise WebhookSignatureError(f"No webhook secret configured for {source.value}")

        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise WebhookSignatureError(
                f"Webhook signature verification failed for {source.value}: {e}"
            ) from e

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.loads(payload)

    @transaction
    async def record_incoming_event(
        self,
        payload: bytes | str,
        signature: str | None,
        source: WebhookEventSource,
        request_info: dict[str, Any] | None = None,
    ) -> tuple[WebhookEvent, bool]:
        """
        Verify and store one webhook delivery.

        A delivery whose Stripe event id is already stored is not stored
        again: the existing row records the duplicate delivery and keeps
        its status and retry bookkeeping.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header value
            source: Endpoint the delivery arrived on
            request_info: Optional ip_address / user_agent for auditing

        Returns:
            Tuple of (webhook event row, is_duplicate)

        Raises:
            WebhookSignatureError: If the signature cannot be verified
        """
        event = self.verify_signature(payload, signature, source)
        request_info = request_info or {}
        raw_payload = payload.decode("utf-8") if isinstance(payload, bytes) else payload

        existing = await self.event_repo.get_by_stripe_event_id(event["id"])
        if existing:
            details = dict(existing.details or {})
            details["duplicate_deliveries"] = details.get("duplicate_deliveries", 0) + 1
            details["last_duplicate_at"] = utc_now().isoformat()
            await self.event_repo.update(existing.id, details=details)

            await self.audit_service.create_audit_log(
                action=AuditLogAction.WEBHOOK_RECEIVED,
                category=AuditLogCategory.WEBHOOK,
                level=AuditLogLevel.WARNING,
                message=f"Duplicate webhook event received: {event.get('type')}",
                resource_type="webhook_event",
                resource_id=existing.id,
                metadata={
                    "stripe_event_id": event["id"],
                    "stripe_account_id": event.get("account"),
                    "duplicate_of_event_id": existing.id,
                    **request_info,
                },
            )
            return existing, True

        webhook_event = await self.event_repo.create(
            event_type=event.get("type"),
            source=source.value,
            status=WebhookEventStatus.PENDING.value,
            stripe_event_id=event["id"],
            stripe_account_id=event.get("account"),
            stripe_api_version=event.get("api_version"),
            event_data=event.get("data") or {},
            raw_payload=raw_payload,
            received_at=utc_now(),
            retry_count=0,
            max_retries=settings.webhook_max_retries,
            retry_backoff_multiplier=BACKOFF_MULTIPLIER,
            details={"api_version": event.get("api_version"), **request_info},
            tags=[event.get("type"), source.value],
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.WEBHOOK_RECEIVED,
            category=AuditLogCategory.WEBHOOK,
            level=AuditLogLevel.INFO,
            message=f"Webhook event received: {event.get('type')}",
            resource_type="webhook_event",
            resource_id=webhook_event.id,
            metadata={
                "stripe_event_id": event["id"],
                "stripe_account_id": event.get("account"),
                "event_type": event.get("type"),
                "source": source.value,
            },
        )
        return webhook_event, False

    # ------------------------------------------------------------------
    # Retry selection
    # ------------------------------------------------------------------

    async def get_pending_retries(self, now: datetime | None = None) -> list[WebhookEvent]:
        """Failed events due for a retry, earliest-due first."""
        return await self.event_repo.get_pending_retries(now)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def _get_or_raise(self, event_id: int) -> WebhookEvent:
        event = await self.event_repo.get_by_id(event_id)
        if not event:
            raise WebhookEventNotFoundError(event_id)
        return event

    async def mark_processed(
        self,
        event_id: int,
        result: WebhookProcessingResult,
        retry_count: int | None = None,
    ) -> WebhookEvent:
        """
        Terminal success.

        Args:
            event_id: Webhook event ID
            result: Successful handler result
            retry_count: New retry count when this was a retry attempt
        """
        event = await self._get_or_raise(event_id)

        details = {**(event.details or {}), **result.to_metadata()}
        details.pop("error_message", None)
        data: dict[str, Any] = {
            "status": WebhookEventStatus.PROCESSED.value,
            "processed_at": utc_now(),
            "next_retry_at": None,
            "details": details,
        }
        if retry_count is not None:
            data["retry_count"] = retry_count

        await self.event_repo.update(event_id, **data)

        await self.audit_service.create_audit_log(
            action=AuditLogAction.WEBHOOK_PROCESSED,
            category=AuditLogCategory.WEBHOOK,
            level=AuditLogLevel.INFO,
            message=f"Webhook processed: {event.event_type}",
            user_id=result.affected_user_id,
            user_type=result.affected_user_type,
            resource_type="webhook_event",
            resource_id=event_id,
            metadata={
                "stripe_event_id": event.stripe_event_id,
                "processing_time": result.processing_time,
                "related_resource_ids": list(result.related_resource_ids),
            },
        )
        return event

    async def schedule_retry(
        self,
        event_id: int,
        error: str,
        retry_config: RetryConfig = WEBHOOK_RETRY_CONFIG,
        now: datetime | None = None,
        rand: Callable[[], float] = random.random,
    ) -> WebhookEvent:
        """
        Record a failed attempt and schedule the next one.

        Backoff exponent is the current retry count; the multiplier is the
        event's own. When the budget is already spent the event is failed
        terminally instead.

        Args:
            event_id: Webhook event ID
            error: Error of the failed attempt
            retry_config: Backoff policy (webhook defaults)
            now: Reference time for next_retry_at
            rand: Jitter source
        """
        event = await self._get_or_raise(event_id)

        if event.retry_count >= event.max_retries:
            return await self.mark_failed(event_id, f"{MAX_RETRIES_EXCEEDED_PREFIX}: {error}")

        config = retry_config.with_multiplier(event.retry_backoff_multiplier)
        next_retry_at = calculate_next_retry_time(event.retry_count, config, now, rand)
        new_count = event.retry_count + 1

        await self.event_repo.update(
            event_id,
            status=WebhookEventStatus.FAILED.value,
            retry_count=new_count,
            next_retry_at=next_retry_at,
            details={
                **(event.details or {}),
                "error_message": error,
                "retry_attempts": new_count,
            },
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.WEBHOOK_FAILED,
            category=AuditLogCategory.WEBHOOK,
            level=AuditLogLevel.WARNING,
            message=f"Webhook retry scheduled: {event.stripe_event_id}",
            resource_type="webhook_event",
            resource_id=event_id,
            metadata={
                "error": error,
                "retry_count": new_count,
                "max_retries": event.max_retries,
                "next_retry_at": next_retry_at.isoformat(),
            },
        )
        return event

    async def mark_failed(
        self,
        event_id: int,
        reason: str,
        retry_count: int | None = None,
    ) -> WebhookEvent:
        """
        Terminal failure. The event is never selected for retry again.

        Args:
            event_id: Webhook event ID
            reason: Permanent failure reason
            retry_count: New retry count when this was a retry attempt
        """
        event = await self._get_or_raise(event_id)

        data: dict[str, Any] = {
            "status": WebhookEventStatus.FAILED.value,
            "failed_at": utc_now(),
            "next_retry_at": None,
            "details": {
                **(event.details or {}),
                "error_message": reason,
                "permanent_failure": True,
            },
        }
        if retry_count is not None:
            data["retry_count"] = retry_count

        await self.event_repo.update(event_id, **data)

        await self.audit_service.create_audit_log(
            action=AuditLogAction.WEBHOOK_FAILED,
            category=AuditLogCategory.WEBHOOK,
            level=AuditLogLevel.ERROR,
            message=f"Webhook permanently failed: {event.stripe_event_id}",
            resource_type="webhook_event",
            resource_id=event_id,
            metadata={
                "stripe_event_id": event.stripe_event_id,
                "event_type": event.event_type,
                "reason": reason,
                "retry_count": event.retry_count,
            },
        )
        return event

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def get_stats(self, now: datetime | None = None) -> dict[str, Any]:
        """Event counts per status plus the number currently due for retry."""
        return {
            "by_status": await self.event_repo.count_by_status(),
            "pending_retries": await self.event_repo.count_pending_retries(now),
        }

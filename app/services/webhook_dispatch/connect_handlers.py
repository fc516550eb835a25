"""
Webhook Dispatch - Stripe Connect Handlers Module.

Module: connect_handlers.py
Handlers for events delivered by the Connect endpoint: connected account
status changes and payouts to instructors.

Every handler reads current state before writing so that re-dispatching
the same payload leaves the database unchanged and sends nothing twice.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import (
    AuditLogAction,
    AuditLogCategory,
    AuditLogLevel,
    NotificationPriority,
    NotificationType,
    PayoutStatus,
)
from app.models.instructor import Instructor, StripeConnectStatus
from app.models.payout import default_payout_retry_config
from app.repositories.instructor_repository import InstructorRepository
from app.repositories.payout_repository import PayoutRepository
from app.services.audit_log_service import AuditLogService
from app.services.notification_service import NotificationService
from app.services.retry_service.backoff import calculate_next_retry_time
from app.services.retry_service.classifier import (
    categorize_payout_failure,
    should_retry_payout,
)
from app.utils.datetime_utils import utc_now

from .result import WebhookProcessingResult, guarded_handler


INSTRUCTOR = "instructor"

INSTRUCTOR_NOT_FOUND = "Instructor not found - skipping"
PAYOUT_NOT_FOUND = "Payout not found - skipping"


def _event_object(event: dict[str, Any]) -> dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


def _from_cents(amount: int | None) -> Decimal:
    return (Decimal(amount or 0) / 100).quantize(Decimal("0.01"))


def _from_timestamp(value: int | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(value, UTC)


def _account_status(account: dict[str, Any]) -> tuple[str, str, int]:
    """Derive (status, reason, health score) from a Stripe account object."""
    requirements = account.get("requirements") or {}
    errors = requirements.get("errors") or []
    currently_due = requirements.get("currently_due") or []

    if (
        account.get("details_submitted")
        and account.get("charges_enabled")
        and account.get("payouts_enabled")
    ):
        return StripeConnectStatus.CONNECTED, "Account fully verified and operational", 100
    if errors:
        reasons = ", ".join(str(e.get("reason")) for e in errors)
        return StripeConnectStatus.RESTRICTED, f"Account restricted: {reasons}", 25
    if currently_due:
        return (
            StripeConnectStatus.PENDING,
            f"Pending verification: {', '.join(currently_due)}",
            60,
        )
    if not account.get("details_submitted"):
        return StripeConnectStatus.PENDING, "Onboarding not completed", 30
    return StripeConnectStatus.PENDING, "", 0


_STATUS_NOTIFICATIONS = {
    StripeConnectStatus.CONNECTED: (
        NotificationType.STRIPE_ACCOUNT_CONNECTED,
        NotificationPriority.HIGH,
    ),
    StripeConnectStatus.RESTRICTED: (
        NotificationType.STRIPE_ACCOUNT_RESTRICTED,
        NotificationPriority.URGENT,
    ),
    StripeConnectStatus.PENDING: (
        NotificationType.STRIPE_ACCOUNT_PENDING,
        NotificationPriority.HIGH,
    ),
}


class ConnectWebhookHandlers:
    """Stripe Connect event handlers."""

    def __init__(
        self,
        session: AsyncSession,
        audit_service: AuditLogService,
        notification_service: NotificationService,
    ) -> None:
        """Initialize handlers with their collaborators."""
        self.session = session
        self.audit_service = audit_service
        self.notification_service = notification_service
        self.instructor_repo = InstructorRepository(session)
        self.payout_repo = PayoutRepository(session)

    def _instructor_result(
        self, instructor: Instructor, *resource_ids: str | None
    ) -> WebhookProcessingResult:
        return WebhookProcessingResult(
            success=True,
            affected_user_id=str(instructor.id),
            affected_user_type=INSTRUCTOR,
            related_resource_ids=[r for r in resource_ids if r],
        )

    # ------------------------------------------------------------------
    # Connected account events
    # ------------------------------------------------------------------

    @guarded_handler("account.updated")
    async def handle_account_updated(self, event: dict[str, Any]) -> WebhookProcessingResult:
        """Recompute connect status, health score and capabilities."""
        account = _event_object(event)
        instructor = await self.instructor_repo.get_by_stripe_account_id(account.get("id"))
        if not instructor:
            logger.info(f"Instructor not found for Stripe account: {account.get('id')}")
            return WebhookProcessingResult.skipped(INSTRUCTOR_NOT_FOUND)

        status, reason, health_score = _account_status(account)
        previous_status = instructor.stripe_connect_status
        now = utc_now()
        capabilities = account.get("capabilities") or {}

        await self.instructor_repo.update(
            instructor.id,
            stripe_connect_status=status,
            stripe_verified=bool(
                account.get("details_submitted") and account.get("charges_enabled")
            ),
            onboarding_complete=bool(account.get("details_submitted")),
            payouts_enabled=bool(account.get("payouts_enabled")),
            requirements=(account.get("requirements") or {}).get("currently_due") or [],
            capabilities={**(instructor.capabilities or {}), **capabilities},
            account_health_score=health_score,
            failure_reason=reason if status == StripeConnectStatus.RESTRICTED else None,
            last_status_update=now,
            last_webhook_received=now,
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.STRIPE_ACCOUNT_UPDATED,
            category=AuditLogCategory.STRIPE_CONNECT,
            level=AuditLogLevel.INFO,
            message=f"Stripe account updated: {status}",
            user_id=instructor.id,
            user_type=INSTRUCTOR,
            resource_type="stripe_account",
            resource_id=account.get("id"),
            metadata={
                "stripe_event_id": event.get("id"),
                "previous_status": previous_status,
                "new_status": status,
                "account_health_score": health_score,
                "status_reason": reason,
            },
        )

        if previous_status != status and status in _STATUS_NOTIFICATIONS:
            notification_type, priority = _STATUS_NOTIFICATIONS[status]
            await self.notification_service.notify_safe(
                user_id=instructor.id,
                user_type=INSTRUCTOR,
                type=notification_type,
                priority=priority,
                title=f"Stripe Account Status: {status.capitalize()}",
                body=reason,
                related_resource_type="stripe_account",
                related_resource_id=account.get("id"),
                metadata={"account_health_score": health_score},
            )

        return self._instructor_result(instructor, account.get("id"))

    @guarded_handler("account.application.deauthorized")
    async def handle_account_deauthorized(
        self, event: dict[str, Any]
    ) -> WebhookProcessingResult:
        """Mark the instructor's connected account as disconnected."""
        account_id = event.get("account") or _event_object(event).get("account")
        instructor = await self.instructor_repo.get_by_stripe_account_id(account_id)
        if not instructor:
            return WebhookProcessingResult.skipped(INSTRUCTOR_NOT_FOUND)

        if instructor.stripe_connect_status == StripeConnectStatus.DISCONNECTED:
            return self._instructor_result(instructor, account_id)

        now = utc_now()
        await self.instructor_repo.update(
            instructor.id,
            stripe_connect_status=StripeConnectStatus.DISCONNECTED,
            disconnected_at=now,
            last_status_update=now,
            failure_reason="Account deauthorized by user",
            account_health_score=0,
            capabilities=None,
            payouts_enabled=False,
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.STRIPE_ACCOUNT_DEAUTHORIZED,
            category=AuditLogCategory.STRIPE_CONNECT,
            level=AuditLogLevel.WARNING,
            message="Stripe account deauthorized",
            user_id=instructor.id,
            user_type=INSTRUCTOR,
            resource_type="stripe_account",
            resource_id=account_id,
            metadata={"stripe_event_id": event.get("id")},
        )

        await self.notification_service.notify_safe(
            user_id=instructor.id,
            user_type=INSTRUCTOR,
            type=NotificationType.STRIPE_ACCOUNT_DISCONNECTED,
            priority=NotificationPriority.URGENT,
            title="Stripe Account Disconnected",
            body=(
                "Your Stripe account has been disconnected. "
                "You will need to reconnect to receive payments."
            ),
            related_resource_type="stripe_account",
            related_resource_id=account_id,
        )

        return self._instructor_result(instructor, account_id)

    @guarded_handler("capability.updated")
    async def handle_capability_updated(
        self, event: dict[str, Any]
    ) -> WebhookProcessingResult:
        """Store the new status of a single capability."""
        capability = _event_object(event)
        account_id = capability.get("account")
        instructor = await self.instructor_repo.get_by_stripe_account_id(account_id)
        if not instructor:
            return WebhookProcessingResult.skipped(INSTRUCTOR_NOT_FOUND)

        capability_id = capability.get("id")
        capability_status = capability.get("status")
        capabilities = dict(instructor.capabilities or {})

        if capabilities.get(capability_id) != capability_status:
            capabilities[capability_id] = capability_status
            await self.instructor_repo.update(
                instructor.id,
                capabilities=capabilities,
                last_status_update=utc_now(),
            )

            await self.audit_service.create_audit_log(
                action=AuditLogAction.STRIPE_CAPABILITY_UPDATED,
                category=AuditLogCategory.STRIPE_CONNECT,
                level=AuditLogLevel.INFO,
                message=f"Capability {capability_id} updated to {capability_status}",
                user_id=instructor.id,
                user_type=INSTRUCTOR,
                resource_type="stripe_capability",
                resource_id=capability_id,
                metadata={
                    "stripe_event_id": event.get("id"),
                    "stripe_account_id": account_id,
                    "status": capability_status,
                },
            )

        return self._instructor_result(instructor, account_id, capability_id)

    @guarded_handler("person")
    async def handle_person_updated(self, event: dict[str, Any]) -> WebhookProcessingResult:
        """Record that account representative details changed."""
        person = _event_object(event)
        account_id = person.get("account")
        instructor = await self.instructor_repo.get_by_stripe_account_id(account_id)
        if not instructor:
            return WebhookProcessingResult.skipped(INSTRUCTOR_NOT_FOUND)

        await self.instructor_repo.update(instructor.id, last_webhook_received=utc_now())

        await self.audit_service.create_audit_log(
            action=AuditLogAction.STRIPE_PERSON_UPDATED,
            category=AuditLogCategory.STRIPE_CONNECT,
            level=AuditLogLevel.INFO,
            message=f"Person {event.get('type', '').rsplit('.', 1)[-1]} for account",
            user_id=instructor.id,
            user_type=INSTRUCTOR,
            resource_type="stripe_person",
            resource_id=person.get("id"),
            metadata={
                "stripe_event_id": event.get("id"),
                "stripe_account_id": account_id,
                "verification": person.get("verification"),
            },
        )

        return self._instructor_result(instructor, account_id, person.get("id"))

    @guarded_handler("account.external_account")
    async def handle_external_account_updated(
        self, event: dict[str, Any]
    ) -> WebhookProcessingResult:
        """Keep a summary of the instructor's payout bank account or card."""
        external = _event_object(event)
        account_id = external.get("account") or event.get("account")
        instructor = await self.instructor_repo.get_by_stripe_account_id(account_id)
        if not instructor:
            return WebhookProcessingResult.skipped(INSTRUCTOR_NOT_FOUND)

        event_type = event.get("type", "")
        summary = {
            "id": external.get("id"),
            "object": external.get("object"),
            "status": external.get("status"),
            "last4": external.get("last4"),
            "bank_name": external.get("bank_name"),
        }
        if event_type.endswith(".deleted"):
            summary = None

        if instructor.external_account == summary:
            return self._instructor_result(instructor, account_id, external.get("id"))

        await self.instructor_repo.update(
            instructor.id,
            external_account=summary,
            last_webhook_received=utc_now(),
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.STRIPE_EXTERNAL_ACCOUNT_UPDATED,
            category=AuditLogCategory.STRIPE_CONNECT,
            level=AuditLogLevel.INFO,
            message=f"External account {event_type.rsplit('.', 1)[-1]}",
            user_id=instructor.id,
            user_type=INSTRUCTOR,
            resource_type="stripe_external_account",
            resource_id=external.get("id"),
            metadata={
                "stripe_event_id": event.get("id"),
                "stripe_account_id": account_id,
                "account_type": external.get("object"),
            },
        )

        return self._instructor_result(instructor, account_id, external.get("id"))

    # ------------------------------------------------------------------
    # Payout events
    # ------------------------------------------------------------------

    @guarded_handler("payout.created")
    async def handle_payout_created(self, event: dict[str, Any]) -> WebhookProcessingResult:
        """Create the local payout record unless it already exists."""
        stripe_payout = _event_object(event)
        account_id = event.get("account") or stripe_payout.get("destination")
        instructor = await self.instructor_repo.get_by_stripe_account_id(account_id)
        if not instructor:
            return WebhookProcessingResult.skipped(INSTRUCTOR_NOT_FOUND)

        stripe_payout_id = stripe_payout.get("id")
        existing = await self.payout_repo.get_by_stripe_payout_id(stripe_payout_id)
        if existing:
            return self._instructor_result(instructor, stripe_payout_id)

        amount = _from_cents(stripe_payout.get("amount"))
        currency = stripe_payout.get("currency") or "usd"
        arrival = _from_timestamp(stripe_payout.get("arrival_date"))

        await self.payout_repo.create(
            instructor_id=instructor.id,
            amount=amount,
            currency=currency,
            status=PayoutStatus.SCHEDULED.value,
            stripe_payout_id=stripe_payout_id,
            stripe_account_id=account_id,
            description=stripe_payout.get("description") or "Automatic payout",
            scheduled_at=arrival,
            requested_at=_from_timestamp(stripe_payout.get("created")),
            retry_config=default_payout_retry_config(),
            details={
                "stripe_event_id": event.get("id"),
                "method": stripe_payout.get("method"),
                "type": stripe_payout.get("type"),
            },
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.PAYOUT_CREATED,
            category=AuditLogCategory.PAYOUT,
            level=AuditLogLevel.INFO,
            message=f"Payout created: {amount} {currency}",
            user_id=instructor.id,
            user_type=INSTRUCTOR,
            resource_type="payout",
            resource_id=stripe_payout_id,
            metadata={
                "stripe_event_id": event.get("id"),
                "amount": str(amount),
                "currency": currency,
                "arrival_date": arrival.isoformat() if arrival else None,
            },
        )

        arrival_text = f" and will arrive on {arrival.date().isoformat()}" if arrival else ""
        await self.notification_service.notify_safe(
            user_id=instructor.id,
            user_type=INSTRUCTOR,
            type=NotificationType.PAYOUT_SCHEDULED,
            title="Payout Scheduled",
            body=f"Your payout of {amount} {currency.upper()} has been scheduled{arrival_text}.",
            related_resource_type="payout",
            related_resource_id=stripe_payout_id,
        )

        return self._instructor_result(instructor, stripe_payout_id)

    @guarded_handler("payout.paid")
    async def handle_payout_paid(self, event: dict[str, Any]) -> WebhookProcessingResult:
        """Mark the payout completed."""
        stripe_payout_id = _event_object(event).get("id")
        payout = await self.payout_repo.get_by_stripe_payout_id(stripe_payout_id)
        if not payout:
            return WebhookProcessingResult.skipped(PAYOUT_NOT_FOUND)

        result = WebhookProcessingResult(
            success=True,
            affected_user_id=str(payout.instructor_id),
            affected_user_type=INSTRUCTOR,
            related_resource_ids=[stripe_payout_id],
        )
        if payout.status == PayoutStatus.COMPLETED.value:
            return result

        await self.payout_repo.update(
            payout.id,
            status=PayoutStatus.COMPLETED.value,
            completed_at=utc_now(),
            next_retry_at=None,
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.PAYOUT_COMPLETED,
            category=AuditLogCategory.PAYOUT,
            level=AuditLogLevel.INFO,
            message=f"Payout completed: {payout.amount} {payout.currency}",
            user_id=payout.instructor_id,
            user_type=INSTRUCTOR,
            resource_type="payout",
            resource_id=stripe_payout_id,
            metadata={"stripe_event_id": event.get("id"), "amount": str(payout.amount)},
        )

        await self.notification_service.notify_safe(
            user_id=payout.instructor_id,
            user_type=INSTRUCTOR,
            type=NotificationType.PAYOUT_COMPLETED,
            title="Payout Completed",
            body=(
                f"Your payout of {payout.amount} {payout.currency.upper()} has been "
                f"successfully transferred to your bank account."
            ),
            related_resource_type="payout",
            related_resource_id=stripe_payout_id,
        )

        return result

    @guarded_handler("payout.failed")
    async def handle_payout_failed(self, event: dict[str, Any]) -> WebhookProcessingResult:
        """
        Record a payout failure and hand it to the payout retry scheduler.

        Retryable categories get next_retry_at from the payout's own retry
        config; non-retryable ones are flagged as permanent failures.
        """
        stripe_payout = _event_object(event)
        stripe_payout_id = stripe_payout.get("id")
        payout = await self.payout_repo.get_by_stripe_payout_id(stripe_payout_id)
        if not payout:
            return WebhookProcessingResult.skipped(PAYOUT_NOT_FOUND)

        result = WebhookProcessingResult(
            success=True,
            affected_user_id=str(payout.instructor_id),
            affected_user_type=INSTRUCTOR,
            related_resource_ids=[stripe_payout_id],
        )
        if payout.status == PayoutStatus.FAILED.value:
            return result

        category = categorize_payout_failure(stripe_payout.get("failure_code"))
        reason = stripe_payout.get("failure_message") or "Payout failed"
        retryable = should_retry_payout(category)

        data: dict[str, Any] = {
            "status": PayoutStatus.FAILED.value,
            "failed_at": utc_now(),
            "failure_reason": reason,
            "failure_category": category.value,
        }
        if retryable and payout.retry_count < payout.max_retries:
            data["next_retry_at"] = calculate_next_retry_time(
                payout.retry_count, payout.retry_config
            )
        else:
            data["next_retry_at"] = None
            data["details"] = {**(payout.details or {}), "permanent_failure": True}

        await self.payout_repo.update(payout.id, **data)
        await self.payout_repo.append_attempt(
            payout.id,
            attempt_number=payout.retry_count,
            status=PayoutStatus.FAILED,
            failure_reason=reason,
            failure_category=category.value,
            stripe_payout_id=stripe_payout_id,
            details={
                "stripe_event_id": event.get("id"),
                "failure_code": stripe_payout.get("failure_code"),
            },
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.PAYOUT_FAILED,
            category=AuditLogCategory.PAYOUT,
            level=AuditLogLevel.ERROR,
            message=f"Payout failed: {reason}",
            user_id=payout.instructor_id,
            user_type=INSTRUCTOR,
            resource_type="payout",
            resource_id=stripe_payout_id,
            metadata={
                "stripe_event_id": event.get("id"),
                "failure_code": stripe_payout.get("failure_code"),
                "failure_category": category.value,
                "retry_scheduled": data["next_retry_at"] is not None,
            },
        )

        await self.notification_service.notify_safe(
            user_id=payout.instructor_id,
            user_type=INSTRUCTOR,
            type=NotificationType.PAYOUT_FAILED,
            priority=NotificationPriority.URGENT,
            title="Payout Failed",
            body=(
                f"Your payout of {payout.amount} {payout.currency.upper()} failed: "
                f"{reason}. Please check your bank account details."
            ),
            related_resource_type="payout",
            related_resource_id=stripe_payout_id,
            metadata={"failure_category": category.value},
        )

        return result

    @guarded_handler("payout.canceled")
    async def handle_payout_canceled(self, event: dict[str, Any]) -> WebhookProcessingResult:
        """Mark the payout cancelled. Unknown payouts are a successful no-op."""
        stripe_payout_id = _event_object(event).get("id")
        payout = await self.payout_repo.get_by_stripe_payout_id(stripe_payout_id)

        result = WebhookProcessingResult(
            success=True,
            affected_user_type=INSTRUCTOR,
            related_resource_ids=[stripe_payout_id] if stripe_payout_id else [],
        )
        if not payout:
            return result

        result.affected_user_id = str(payout.instructor_id)
        if payout.status == PayoutStatus.CANCELLED.value:
            return result

        await self.payout_repo.update(
            payout.id,
            status=PayoutStatus.CANCELLED.value,
            cancelled_at=utc_now(),
            next_retry_at=None,
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.PAYOUT_CANCELLED,
            category=AuditLogCategory.PAYOUT,
            level=AuditLogLevel.WARNING,
            message=f"Payout cancelled: {payout.amount} {payout.currency}",
            user_id=payout.instructor_id,
            user_type=INSTRUCTOR,
            resource_type="payout",
            resource_id=stripe_payout_id,
            metadata={"stripe_event_id": event.get("id")},
        )

        return result

"""
Webhook Dispatch - Payment Handlers Module.

Module: payment_handlers.py
Handlers for events delivered by the main account endpoint: course
purchases through Stripe Checkout and their payment intents.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.constants import INSTRUCTOR_SHARE
from app.models.enums import (
    AuditLogAction,
    AuditLogCategory,
    AuditLogLevel,
    NotificationPriority,
    NotificationType,
)
from app.models.payment import PaymentStatus
from app.repositories.instructor_repository import InstructorRepository
from app.repositories.payment_repository import PaymentRepository, TransactionRepository
from app.services.audit_log_service import AuditLogService
from app.services.notification_service import NotificationService

from .result import WebhookProcessingResult, guarded_handler


STUDENT = "student"
INSTRUCTOR = "instructor"

PAYMENT_INTENT_MISSING = "Checkout session has no payment intent - skipping"

_CENT = Decimal("0.01")


def _event_object(event: dict[str, Any]) -> dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


def split_amount(amount_cents: int) -> tuple[Decimal, Decimal, Decimal]:
    """
    Split a sale between instructor and platform.

    Returns:
        (total, instructor_share, platform_share) in currency units.
        The platform share absorbs rounding so the parts add up.
    """
    total = (Decimal(amount_cents) / 100).quantize(_CENT)
    instructor_share = (total * Decimal(str(INSTRUCTOR_SHARE))).quantize(
        _CENT, rounding=ROUND_HALF_UP
    )
    return total, instructor_share, total - instructor_share


class PaymentWebhookHandlers:
    """Main account (course purchase) event handlers."""

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
        self.payment_repo = PaymentRepository(session)
        self.transaction_repo = TransactionRepository(session)

    @guarded_handler("checkout.session.completed")
    async def handle_checkout_session_completed(
        self, event: dict[str, Any]
    ) -> WebhookProcessingResult:
        """Create the payment and ledger transaction for a course purchase."""
        checkout = _event_object(event)
        metadata = checkout.get("metadata") or {}
        course_id = metadata.get("courseId") or metadata.get("course_id")
        student_id = metadata.get("studentId") or metadata.get("student_id")
        instructor_id = (
            metadata.get("instructorId")
            or metadata.get("instructor_id")
            or metadata.get("teacherId")
        )

        if not course_id or not student_id or not instructor_id:
            return WebhookProcessingResult(
                success=False, error="Missing required metadata in checkout session"
            )

        # Payments and transactions are keyed by the payment intent id
        payment_intent_id = checkout.get("payment_intent")
        if not payment_intent_id:
            return WebhookProcessingResult.skipped(PAYMENT_INTENT_MISSING)

        instructor = await self.instructor_repo.get_by_id(int(instructor_id))
        if not instructor:
            return WebhookProcessingResult(success=False, error="Related entities not found")

        currency = checkout.get("currency") or "usd"
        total, instructor_share, platform_share = split_amount(
            checkout.get("amount_total") or 0
        )
        customer_email = (checkout.get("customer_details") or {}).get("email")

        created = False
        if not await self.payment_repo.get_by_stripe_payment_id(payment_intent_id):
            await self.payment_repo.create(
                student_id=int(student_id),
                course_id=int(course_id),
                instructor_id=instructor.id,
                amount=total,
                instructor_share=instructor_share,
                platform_share=platform_share,
                currency=currency,
                stripe_payment_id=payment_intent_id,
                stripe_account_id=instructor.stripe_account_id,
                stripe_email=customer_email,
                receipt_url=checkout.get("receipt_url"),
                status=PaymentStatus.COMPLETED,
            )
            created = True

        if not await self.transaction_repo.get_by_stripe_transaction_id(payment_intent_id):
            await self.transaction_repo.create(
                student_id=int(student_id),
                course_id=int(course_id),
                instructor_id=instructor.id,
                total_amount=total,
                instructor_earning=instructor_share,
                platform_earning=platform_share,
                currency=currency,
                payment_method=(checkout.get("payment_method_types") or ["card"])[0],
                stripe_transaction_id=payment_intent_id,
                stripe_transfer_status="pending",
                details={
                    "checkout_session_id": checkout.get("id"),
                    "customer_email": customer_email,
                    "payment_status": checkout.get("payment_status"),
                },
            )

        result = WebhookProcessingResult(
            success=True,
            affected_user_id=str(student_id),
            affected_user_type=STUDENT,
            related_resource_ids=[str(course_id), str(instructor_id), payment_intent_id],
        )
        if not created:
            return result

        await self.audit_service.create_audit_log(
            action=AuditLogAction.PAYMENT_COMPLETED,
            category=AuditLogCategory.PAYMENT,
            level=AuditLogLevel.INFO,
            message=f"Payment completed for course: {course_id}",
            user_id=student_id,
            user_type=STUDENT,
            resource_type="payment",
            resource_id=payment_intent_id,
            metadata={
                "stripe_event_id": event.get("id"),
                "checkout_session_id": checkout.get("id"),
                "amount": str(total),
                "currency": currency,
                "instructor_id": instructor.id,
            },
        )

        await self.notification_service.notify_safe(
            user_id=student_id,
            user_type=STUDENT,
            type=NotificationType.PAYMENT_RECEIVED,
            title="Payment Successful",
            body=(
                "Your payment has been processed successfully. "
                "You now have access to the course."
            ),
            related_resource_type="course",
            related_resource_id=course_id,
            action_url=f"/courses/{course_id}",
        )
        await self.notification_service.notify_safe(
            user_id=instructor.id,
            user_type=INSTRUCTOR,
            type=NotificationType.PAYMENT_RECEIVED,
            title="New Sale",
            body=(
                f"You've received a new sale. "
                f"Your earnings: {instructor_share} {currency.upper()}."
            ),
            related_resource_type="course",
            related_resource_id=course_id,
            action_url="/instructor/earnings",
            metadata={
                "amount": str(total),
                "instructor_earning": str(instructor_share),
                "platform_share": str(platform_share),
            },
        )

        return result

    @guarded_handler("payment_intent.succeeded")
    async def handle_payment_intent_succeeded(
        self, event: dict[str, Any]
    ) -> WebhookProcessingResult:
        """Mark an existing payment as successful."""
        intent = _event_object(event)
        payment = await self.payment_repo.get_by_stripe_payment_id(intent.get("id"))

        result = WebhookProcessingResult(
            success=True,
            affected_user_id=str(payment.student_id) if payment else None,
            affected_user_type=STUDENT,
            related_resource_ids=[intent.get("id")],
        )
        if not payment or payment.status == PaymentStatus.SUCCESS:
            return result

        charges = (intent.get("charges") or {}).get("data") or []
        receipt_url = charges[0].get("receipt_url") if charges else None

        await self.payment_repo.update(
            payment.id,
            status=PaymentStatus.SUCCESS,
            receipt_url=receipt_url or payment.receipt_url,
        )

        await self.audit_service.create_audit_log(
            action=AuditLogAction.PAYMENT_COMPLETED,
            category=AuditLogCategory.PAYMENT,
            level=AuditLogLevel.INFO,
            message=(
                f"Payment intent succeeded: "
                f"{Decimal(intent.get('amount') or 0) / 100} {intent.get('currency')}"
            ),
            user_id=payment.student_id,
            user_type=STUDENT,
            resource_type="payment_intent",
            resource_id=intent.get("id"),
            metadata={
                "stripe_event_id": event.get("id"),
                "payment_method": intent.get("payment_method"),
            },
        )

        return result

    @guarded_handler("payment_intent.payment_failed")
    async def handle_payment_intent_failed(
        self, event: dict[str, Any]
    ) -> WebhookProcessingResult:
        """Mark an existing payment as failed and tell the student."""
        intent = _event_object(event)
        payment = await self.payment_repo.get_by_stripe_payment_id(intent.get("id"))

        result = WebhookProcessingResult(
            success=True,
            affected_user_id=str(payment.student_id) if payment else None,
            affected_user_type=STUDENT,
            related_resource_ids=[intent.get("id")],
        )
        if not payment or payment.status == PaymentStatus.FAILED:
            return result

        last_error = intent.get("last_payment_error") or {}
        await self.payment_repo.update(payment.id, status=PaymentStatus.FAILED)

        await self.audit_service.create_audit_log(
            action=AuditLogAction.PAYMENT_FAILED,
            category=AuditLogCategory.PAYMENT,
            level=AuditLogLevel.ERROR,
            message=f"Payment intent failed: {last_error.get('message')}",
            user_id=payment.student_id,
            user_type=STUDENT,
            resource_type="payment_intent",
            resource_id=intent.get("id"),
            metadata={
                "stripe_event_id": event.get("id"),
                "error_code": last_error.get("code"),
                "error_message": last_error.get("message"),
            },
        )

        await self.notification_service.notify_safe(
            user_id=payment.student_id,
            user_type=STUDENT,
            type=NotificationType.PAYMENT_FAILED,
            priority=NotificationPriority.HIGH,
            title="Payment Failed",
            body=(
                f"Your payment failed: {last_error.get('message')}. "
                f"Please try again with a different payment method."
            ),
            related_resource_type="payment",
            related_resource_id=intent.get("id"),
        )

        return result

    # Charges are tracked through their checkout session and payment intent
    async def handle_charge_succeeded(self, event: dict[str, Any]) -> WebhookProcessingResult:
        return WebhookProcessingResult.noop()

    async def handle_charge_failed(self, event: dict[str, Any]) -> WebhookProcessingResult:
        return WebhookProcessingResult.noop()

    async def handle_charge_dispute_created(
        self, event: dict[str, Any]
    ) -> WebhookProcessingResult:
        return WebhookProcessingResult.noop()

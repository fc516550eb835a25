"""
Tests for main account (course purchase) webhook handlers.

Covers:
- Instructor/platform split
- Checkout completion creates payment and transaction once
- Payment intent status changes are applied once
"""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.models.payment import PaymentStatus
from app.services.webhook_dispatch.payment_handlers import (
    PAYMENT_INTENT_MISSING,
    PaymentWebhookHandlers,
    split_amount,
)


@pytest.fixture
def handlers(mock_session, mock_audit_service, mock_notification_service):
    handlers = PaymentWebhookHandlers(
        mock_session, mock_audit_service, mock_notification_service
    )
    handlers.instructor_repo = AsyncMock()
    handlers.payment_repo = AsyncMock()
    handlers.transaction_repo = AsyncMock()
    return handlers


def _checkout_event(metadata=None, payment_intent="pi_1"):
    return {
        "id": "evt_checkout",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_1",
                "payment_intent": payment_intent,
                "amount_total": 4999,
                "currency": "usd",
                "metadata": metadata
                if metadata is not None
                else {"courseId": "3", "studentId": "11", "instructorId": "7"},
                "customer_details": {"email": "student@example.com"},
            }
        },
    }


class TestSplitAmount:
    """80/20 split in currency units."""

    def test_even_split(self):
        assert split_amount(10000) == (Decimal("100.00"), Decimal("80.00"), Decimal("20.00"))

    def test_parts_add_up_with_rounding(self):
        total, instructor_share, platform_share = split_amount(4999)

        assert total == Decimal("49.99")
        assert instructor_share == Decimal("39.99")
        assert instructor_share + platform_share == total


class TestCheckoutSessionCompleted:
    """checkout.session.completed"""

    @pytest.mark.asyncio
    async def test_missing_metadata_fails(self, handlers):
        result = await handlers.handle_checkout_session_completed(_checkout_event(metadata={}))

        assert result.success is False
        assert "metadata" in result.error

    @pytest.mark.asyncio
    async def test_missing_payment_intent_is_skipped(self, handlers):
        """Without a payment intent id the lookups would match other null-keyed rows."""
        result = await handlers.handle_checkout_session_completed(
            _checkout_event(payment_intent=None)
        )

        assert result.success is True
        assert result.error == PAYMENT_INTENT_MISSING
        handlers.payment_repo.get_by_stripe_payment_id.assert_not_called()
        handlers.transaction_repo.get_by_stripe_transaction_id.assert_not_called()
        handlers.payment_repo.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_instructor_fails(self, handlers):
        handlers.instructor_repo.get_by_id.return_value = None

        result = await handlers.handle_checkout_session_completed(_checkout_event())

        assert result.success is False
        assert result.error == "Related entities not found"

    @pytest.mark.asyncio
    async def test_creates_payment_and_transaction(
        self, handlers, mock_notification_service
    ):
        handlers.instructor_repo.get_by_id.return_value = SimpleNamespace(
            id=7, stripe_account_id="acct_1"
        )
        handlers.payment_repo.get_by_stripe_payment_id.return_value = None
        handlers.transaction_repo.get_by_stripe_transaction_id.return_value = None

        result = await handlers.handle_checkout_session_completed(_checkout_event())

        assert result.success is True
        assert result.affected_user_id == "11"
        payment = handlers.payment_repo.create.await_args.kwargs
        assert payment["amount"] == Decimal("49.99")
        assert payment["instructor_share"] == Decimal("39.99")
        handlers.transaction_repo.create.assert_awaited_once()
        assert mock_notification_service.notify_safe.await_count == 2

    @pytest.mark.asyncio
    async def test_redelivery_creates_nothing(
        self, handlers, mock_audit_service, mock_notification_service
    ):
        handlers.instructor_repo.get_by_id.return_value = SimpleNamespace(
            id=7, stripe_account_id="acct_1"
        )
        handlers.payment_repo.get_by_stripe_payment_id.return_value = SimpleNamespace(id=1)
        handlers.transaction_repo.get_by_stripe_transaction_id.return_value = SimpleNamespace(id=1)

        result = await handlers.handle_checkout_session_completed(_checkout_event())

        assert result.success is True
        handlers.payment_repo.create.assert_not_called()
        handlers.transaction_repo.create.assert_not_called()
        mock_audit_service.create_audit_log.assert_not_called()
        mock_notification_service.notify_safe.assert_not_called()


class TestPaymentIntent:
    """payment_intent.*"""

    @pytest.mark.asyncio
    async def test_succeeded_updates_once(self, handlers):
        payment = SimpleNamespace(
            id=1, student_id=11, status=PaymentStatus.COMPLETED, receipt_url=None
        )
        handlers.payment_repo.get_by_stripe_payment_id.return_value = payment
        event = {
            "id": "evt_pi",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "amount": 4999, "currency": "usd"}},
        }

        await handlers.handle_payment_intent_succeeded(event)
        payment.status = PaymentStatus.SUCCESS
        result = await handlers.handle_payment_intent_succeeded(event)

        assert result.success is True
        handlers.payment_repo.update.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_for_unknown_payment_succeeds(self, handlers):
        handlers.payment_repo.get_by_stripe_payment_id.return_value = None

        result = await handlers.handle_payment_intent_failed(
            {"id": "evt_pf", "data": {"object": {"id": "pi_unknown"}}}
        )

        assert result.success is True
        handlers.payment_repo.update.assert_not_called()

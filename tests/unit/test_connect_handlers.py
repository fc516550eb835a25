"""
Tests for Stripe Connect webhook handlers.

Handlers read current state before writing, so dispatching the same
payload twice changes nothing the second time.
"""

from datetime import UTC, datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from app.models.enums import PayoutStatus
from app.models.instructor import StripeConnectStatus
from app.services.webhook_dispatch.connect_handlers import (
    INSTRUCTOR_NOT_FOUND,
    ConnectWebhookHandlers,
)


@pytest.fixture
def handlers(mock_session, mock_audit_service, mock_notification_service):
    handlers = ConnectWebhookHandlers(
        mock_session, mock_audit_service, mock_notification_service
    )
    handlers.instructor_repo = AsyncMock()
    handlers.payout_repo = AsyncMock()
    return handlers


@pytest.fixture
def instructor():
    return SimpleNamespace(
        id=7,
        stripe_account_id="acct_1",
        stripe_connect_status=StripeConnectStatus.PENDING,
        capabilities={},
        external_account=None,
    )


def _verified_account_event():
    return {
        "id": "evt_acct",
        "type": "account.updated",
        "account": "acct_1",
        "data": {
            "object": {
                "id": "acct_1",
                "details_submitted": True,
                "charges_enabled": True,
                "payouts_enabled": True,
                "capabilities": {"transfers": "active"},
                "requirements": {"currently_due": [], "errors": []},
            }
        },
    }


def _payout_event(event_type, **payout_fields):
    return {
        "id": f"evt_{event_type}",
        "type": event_type,
        "account": "acct_1",
        "data": {"object": {"id": "po_1", **payout_fields}},
    }


class TestAccountUpdated:
    """account.updated"""

    @pytest.mark.asyncio
    async def test_unknown_account_is_skipped(self, handlers):
        handlers.instructor_repo.get_by_stripe_account_id.return_value = None

        result = await handlers.handle_account_updated(_verified_account_event())

        assert result.success is True
        assert result.error == INSTRUCTOR_NOT_FOUND
        handlers.instructor_repo.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_verified_account_connects(
        self, handlers, instructor, mock_notification_service
    ):
        handlers.instructor_repo.get_by_stripe_account_id.return_value = instructor

        result = await handlers.handle_account_updated(_verified_account_event())

        assert result.success is True
        assert result.affected_user_id == "7"
        update = handlers.instructor_repo.update.await_args.kwargs
        assert update["stripe_connect_status"] == StripeConnectStatus.CONNECTED
        assert update["account_health_score"] == 100
        assert update["capabilities"] == {"transfers": "active"}
        mock_notification_service.notify_safe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unchanged_status_sends_no_notification(
        self, handlers, instructor, mock_notification_service
    ):
        """Re-dispatch after the status was applied notifies nobody."""
        instructor.stripe_connect_status = StripeConnectStatus.CONNECTED
        handlers.instructor_repo.get_by_stripe_account_id.return_value = instructor

        result = await handlers.handle_account_updated(_verified_account_event())

        assert result.success is True
        mock_notification_service.notify_safe.assert_not_called()

    @pytest.mark.asyncio
    async def test_repository_error_is_failed_result(self, handlers):
        handlers.instructor_repo.get_by_stripe_account_id.side_effect = RuntimeError("boom")

        result = await handlers.handle_account_updated(_verified_account_event())

        assert result.success is False
        assert result.error == "boom"


class TestAccountDeauthorized:
    """account.application.deauthorized"""

    @pytest.mark.asyncio
    async def test_disconnects_once(self, handlers, instructor, mock_audit_service):
        handlers.instructor_repo.get_by_stripe_account_id.return_value = instructor
        event = {"id": "evt_d", "type": "account.application.deauthorized", "account": "acct_1"}

        await handlers.handle_account_deauthorized(event)
        instructor.stripe_connect_status = StripeConnectStatus.DISCONNECTED
        result = await handlers.handle_account_deauthorized(event)

        assert result.success is True
        handlers.instructor_repo.update.assert_awaited_once()
        mock_audit_service.create_audit_log.assert_awaited_once()


class TestCapabilityUpdated:
    """capability.updated"""

    @pytest.mark.asyncio
    async def test_same_status_writes_nothing(self, handlers, instructor):
        instructor.capabilities = {"transfers": "active"}
        handlers.instructor_repo.get_by_stripe_account_id.return_value = instructor
        event = {
            "id": "evt_c",
            "type": "capability.updated",
            "data": {"object": {"id": "transfers", "account": "acct_1", "status": "active"}},
        }

        result = await handlers.handle_capability_updated(event)

        assert result.success is True
        handlers.instructor_repo.update.assert_not_called()


class TestExternalAccount:
    """account.external_account.*"""

    @pytest.mark.asyncio
    async def test_deleted_clears_summary(self, handlers, instructor):
        instructor.external_account = {"id": "ba_1"}
        handlers.instructor_repo.get_by_stripe_account_id.return_value = instructor
        event = {
            "id": "evt_e",
            "type": "account.external_account.deleted",
            "account": "acct_1",
            "data": {"object": {"id": "ba_1", "object": "bank_account"}},
        }

        await handlers.handle_external_account_updated(event)

        assert handlers.instructor_repo.update.await_args.kwargs["external_account"] is None


class TestPayoutCreated:
    """payout.created"""

    @pytest.mark.asyncio
    async def test_creates_scheduled_payout(self, handlers, instructor):
        handlers.instructor_repo.get_by_stripe_account_id.return_value = instructor
        handlers.payout_repo.get_by_stripe_payout_id.return_value = None

        result = await handlers.handle_payout_created(
            _payout_event("payout.created", amount=12550, currency="usd", arrival_date=1760000000)
        )

        assert result.success is True
        created = handlers.payout_repo.create.await_args.kwargs
        assert created["amount"] == Decimal("125.50")
        assert created["status"] == PayoutStatus.SCHEDULED.value
        assert created["stripe_account_id"] == "acct_1"
        assert created["scheduled_at"] == datetime.fromtimestamp(1760000000, UTC)

    @pytest.mark.asyncio
    async def test_existing_payout_is_not_duplicated(
        self, handlers, instructor, make_payout, mock_notification_service
    ):
        handlers.instructor_repo.get_by_stripe_account_id.return_value = instructor
        handlers.payout_repo.get_by_stripe_payout_id.return_value = make_payout()

        result = await handlers.handle_payout_created(_payout_event("payout.created", amount=100))

        assert result.success is True
        handlers.payout_repo.create.assert_not_called()
        mock_notification_service.notify_safe.assert_not_called()


class TestPayoutPaid:
    """payout.paid"""

    @pytest.mark.asyncio
    async def test_already_completed_is_noop(self, handlers, make_payout):
        handlers.payout_repo.get_by_stripe_payout_id.return_value = make_payout(
            status=PayoutStatus.COMPLETED.value
        )

        result = await handlers.handle_payout_paid(_payout_event("payout.paid"))

        assert result.success is True
        handlers.payout_repo.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_marks_completed(self, handlers, make_payout):
        handlers.payout_repo.get_by_stripe_payout_id.return_value = make_payout(
            status=PayoutStatus.SCHEDULED.value
        )

        await handlers.handle_payout_paid(_payout_event("payout.paid"))

        update = handlers.payout_repo.update.await_args.kwargs
        assert update["status"] == PayoutStatus.COMPLETED.value
        assert update["next_retry_at"] is None


class TestPayoutFailed:
    """payout.failed"""

    @pytest.mark.asyncio
    async def test_retryable_failure_schedules_retry(self, handlers, make_payout, now):
        handlers.payout_repo.get_by_stripe_payout_id.return_value = make_payout(
            status=PayoutStatus.SCHEDULED.value, retry_count=1
        )

        with patch(
            "app.services.webhook_dispatch.connect_handlers.calculate_next_retry_time",
            return_value=now,
        ) as next_retry:
            result = await handlers.handle_payout_failed(
                _payout_event(
                    "payout.failed",
                    failure_code="insufficient_funds",
                    failure_message="Insufficient funds",
                )
            )

        assert result.success is True
        next_retry.assert_called_once()
        assert next_retry.call_args.args[0] == 1
        update = handlers.payout_repo.update.await_args.kwargs
        assert update["status"] == PayoutStatus.FAILED.value
        assert update["failure_category"] == "insufficient_funds"
        assert update["next_retry_at"] == now
        handlers.payout_repo.append_attempt.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closed_account_is_permanent(self, handlers, make_payout):
        handlers.payout_repo.get_by_stripe_payout_id.return_value = make_payout(
            status=PayoutStatus.SCHEDULED.value
        )

        await handlers.handle_payout_failed(
            _payout_event("payout.failed", failure_code="account_closed")
        )

        update = handlers.payout_repo.update.await_args.kwargs
        assert update["next_retry_at"] is None
        assert update["details"]["permanent_failure"] is True

    @pytest.mark.asyncio
    async def test_already_failed_is_noop(self, handlers, make_payout):
        handlers.payout_repo.get_by_stripe_payout_id.return_value = make_payout()

        result = await handlers.handle_payout_failed(
            _payout_event("payout.failed", failure_code="insufficient_funds")
        )

        assert result.success is True
        handlers.payout_repo.update.assert_not_called()
        handlers.payout_repo.append_attempt.assert_not_called()


class TestPayoutCanceled:
    """payout.canceled"""

    @pytest.mark.asyncio
    async def test_unknown_payout_succeeds(self, handlers):
        handlers.payout_repo.get_by_stripe_payout_id.return_value = None

        result = await handlers.handle_payout_canceled(_payout_event("payout.canceled"))

        assert result.success is True
        handlers.payout_repo.update.assert_not_called()

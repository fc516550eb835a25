"""
Tests for the payout retry cycle.

Covers:
- Non-retryable category short-circuits without calling Stripe
- retry_count=2, max_retries=3 technical error fails terminally
- Success schedules the payout again
- Fresh non-retryable failure from Stripe is terminal
- Exceptions are recorded as failed attempts
- A payout Stripe accepted but the database did not record is retried with the same attempt number
"""

from unittest.mock import AsyncMock, patch

import pytest

from app.models.enums import PayoutFailureCategory
from app.services.retry_service.payout_gateway import PayoutRetryResult
from app.services.retry_service.payout_processor import PayoutRetryProcessor


NEXT_RETRY = "app.services.retry_service.payout_processor.calculate_next_retry_time"


@pytest.fixture
def payout_repo():
    repo = AsyncMock()
    repo.find_failed_due = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def gateway():
    gateway = AsyncMock()
    gateway.retry_payout = AsyncMock(
        return_value=PayoutRetryResult(success=True, stripe_payout_id="po_new")
    )
    return gateway


@pytest.fixture
def processor(mock_session, payout_repo, gateway, mock_audit_service, no_jitter):
    return PayoutRetryProcessor(
        mock_session, payout_repo, gateway, mock_audit_service, rand=no_jitter
    )


class TestNonRetryableShortCircuit:
    """Stored category can never succeed."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("category", ["account_closed", "invalid_account", "compliance_issue"])
    async def test_short_circuit(
        self, processor, payout_repo, gateway, mock_audit_service, make_payout, category
    ):
        payout_repo.find_failed_due.return_value = [
            make_payout(retry_count=1, failure_category=category)
        ]

        with patch(NEXT_RETRY) as next_retry:
            summary = await processor.process_pending_retries()

        assert summary.failed == 1
        gateway.retry_payout.assert_not_called()
        next_retry.assert_not_called()
        payout_repo.mark_permanently_failed.assert_awaited_once_with(10)
        payout_repo.schedule_retry.assert_not_called()
        payout_repo.mark_failed.assert_not_called()
        mock_audit_service.create_audit_log.assert_awaited_once()


class TestRetryBudget:
    """Budget accounting."""

    @pytest.mark.asyncio
    async def test_last_attempt_technical_error(
        self, processor, payout_repo, gateway, make_payout
    ):
        """retry_count=2, max_retries=3: attempt 3 fails, no more retries."""
        payout_repo.find_failed_due.return_value = [
            make_payout(retry_count=2, max_retries=3, failure_category="technical_error")
        ]
        gateway.retry_payout.return_value = PayoutRetryResult(
            success=False,
            error="Stripe unavailable",
            failure_category=PayoutFailureCategory.TECHNICAL_ERROR,
        )

        with patch(NEXT_RETRY) as next_retry:
            summary = await processor.process_pending_retries()

        assert summary.failed == 1
        gateway.retry_payout.assert_awaited_once()
        assert gateway.retry_payout.await_args.args[1] == 3
        next_retry.assert_not_called()
        payout_repo.schedule_retry.assert_not_called()
        kwargs = payout_repo.mark_failed.await_args.kwargs
        assert kwargs["retry_count"] == 3
        assert kwargs["reason"].startswith("Max retries exceeded")

    @pytest.mark.asyncio
    async def test_failure_with_budget_reschedules(
        self, processor, payout_repo, gateway, make_payout, now
    ):
        payout_repo.find_failed_due.return_value = [make_payout(retry_count=0)]
        gateway.retry_payout.return_value = PayoutRetryResult(
            success=False,
            error="Insufficient funds",
            failure_category=PayoutFailureCategory.INSUFFICIENT_FUNDS,
        )

        with patch(NEXT_RETRY, return_value=now) as next_retry:
            summary = await processor.process_pending_retries()

        assert summary.rescheduled == 1
        assert next_retry.call_args.args[0] == 1
        kwargs = payout_repo.schedule_retry.await_args.kwargs
        assert kwargs["retry_count"] == 1
        assert kwargs["next_retry_at"] == now
        assert kwargs["failure_category"] == "insufficient_funds"

    @pytest.mark.asyncio
    async def test_fresh_non_retryable_failure_is_terminal(
        self, processor, payout_repo, gateway, make_payout
    ):
        payout_repo.find_failed_due.return_value = [make_payout(retry_count=0)]
        gateway.retry_payout.return_value = PayoutRetryResult(
            success=False,
            error="The bank account has been closed",
            failure_category=PayoutFailureCategory.ACCOUNT_CLOSED,
        )

        summary = await processor.process_pending_retries()

        assert summary.failed == 1
        kwargs = payout_repo.mark_failed.await_args.kwargs
        assert kwargs["retry_count"] == 1
        assert kwargs["reason"] == "The bank account has been closed"
        assert kwargs["failure_category"] == "account_closed"


class TestSuccess:
    """Stripe accepted the payout."""

    @pytest.mark.asyncio
    async def test_success(self, processor, payout_repo, gateway, mock_session, make_payout):
        payout_repo.find_failed_due.return_value = [make_payout(retry_count=1)]

        summary = await processor.process_pending_retries()

        assert summary.succeeded == 1
        kwargs = payout_repo.mark_retry_succeeded.await_args.kwargs
        assert kwargs["retry_count"] == 2
        assert kwargs["stripe_payout_id"] == "po_new"
        mock_session.commit.assert_awaited()


class TestExceptions:
    """Per-item exceptions."""

    @pytest.mark.asyncio
    async def test_gateway_exception_reschedules_and_batch_continues(
        self, processor, payout_repo, gateway, mock_session, make_payout, now
    ):
        payout_repo.find_failed_due.return_value = [
            make_payout(id=1),
            make_payout(id=2),
        ]
        gateway.retry_payout.side_effect = [
            RuntimeError("unexpected"),
            PayoutRetryResult(success=True, stripe_payout_id="po_2"),
        ]

        with patch(NEXT_RETRY, return_value=now):
            summary = await processor.process_pending_retries()

        assert summary.processed == 2
        assert summary.rescheduled == 1
        assert summary.succeeded == 1
        mock_session.rollback.assert_awaited()
        assert payout_repo.schedule_retry.await_args.kwargs["error"] == "unexpected"


class TestAcceptedButNotRecorded:
    """Stripe accepted the payout but the database write failed."""

    @pytest.mark.asyncio
    async def test_row_left_for_same_attempt(
        self, processor, payout_repo, gateway, mock_session, make_payout
    ):
        payout_repo.find_failed_due.return_value = [make_payout(retry_count=0)]
        payout_repo.mark_retry_succeeded.side_effect = RuntimeError("db write failed")

        summary = await processor.process_pending_retries()

        assert summary.rescheduled == 1
        payout_repo.schedule_retry.assert_not_called()
        payout_repo.mark_failed.assert_not_called()
        mock_session.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_next_cycle_repeats_attempt_number(
        self, processor, payout_repo, gateway, mock_session, make_payout
    ):
        payout_repo.find_failed_due.return_value = [make_payout(retry_count=0)]
        mock_session.commit.side_effect = [RuntimeError("connection lost"), None]

        first = await processor.process_pending_retries()
        second = await processor.process_pending_retries()

        assert first.rescheduled == 1
        assert second.succeeded == 1
        attempts = [call.args[1] for call in gateway.retry_payout.await_args_list]
        assert attempts == [1, 1]
        payout_repo.schedule_retry.assert_not_called()

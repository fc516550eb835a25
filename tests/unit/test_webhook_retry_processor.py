"""
Tests for the webhook retry cycle.

Covers:
- Success marks the event processed with the new retry count
- Failure with budget left reschedules
- Last attempt fails terminally with "Max retries exceeded"
- One failing item never aborts the batch
"""

from unittest.mock import AsyncMock

import pytest

from app.services.retry_service.summary import RetryOutcome, RetrySummary
from app.services.retry_service.webhook_processor import WebhookRetryProcessor
from app.services.webhook_dispatch.result import WebhookProcessingResult


@pytest.fixture
def event_service():
    service = AsyncMock()
    service.get_pending_retries = AsyncMock(return_value=[])
    return service


@pytest.fixture
def dispatcher():
    dispatcher = AsyncMock()
    dispatcher.dispatch = AsyncMock(return_value=WebhookProcessingResult(success=True))
    return dispatcher


@pytest.fixture
def processor(mock_session, event_service, dispatcher, mock_audit_service, no_jitter):
    return WebhookRetryProcessor(
        mock_session, event_service, dispatcher, mock_audit_service, rand=no_jitter
    )


class TestProcessPendingRetries:
    """Batch behaviour."""

    @pytest.mark.asyncio
    async def test_empty_batch(self, processor):
        summary = await processor.process_pending_retries()

        assert summary == RetrySummary()

    @pytest.mark.asyncio
    async def test_success(
        self, processor, event_service, dispatcher, mock_session, make_webhook_event
    ):
        event_service.get_pending_retries.return_value = [make_webhook_event(retry_count=1)]

        summary = await processor.process_pending_retries()

        assert summary.to_dict() == {
            "processed": 1, "succeeded": 1, "failed": 0, "rescheduled": 0
        }
        dispatcher.dispatch.assert_awaited_once()
        dispatched_event, source = dispatcher.dispatch.await_args.args
        assert dispatched_event["id"] == "evt_1"
        assert source == "stripe_connect"
        event_service.mark_processed.assert_awaited_once()
        assert event_service.mark_processed.await_args.kwargs["retry_count"] == 2
        mock_session.commit.assert_awaited()

    @pytest.mark.asyncio
    async def test_failure_with_budget_reschedules(
        self, processor, event_service, dispatcher, mock_session, make_webhook_event
    ):
        event_service.get_pending_retries.return_value = [make_webhook_event(retry_count=0)]
        dispatcher.dispatch.return_value = WebhookProcessingResult(
            success=False, error="Instructor locked"
        )

        summary = await processor.process_pending_retries()

        assert summary.rescheduled == 1
        event_service.schedule_retry.assert_awaited_once()
        assert event_service.schedule_retry.await_args.args[:2] == (1, "Instructor locked")
        event_service.mark_failed.assert_not_called()
        event_service.mark_processed.assert_not_called()
        mock_session.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_last_attempt_fails_terminally(
        self, processor, event_service, dispatcher, make_webhook_event
    ):
        event_service.get_pending_retries.return_value = [
            make_webhook_event(retry_count=2, max_retries=3)
        ]
        dispatcher.dispatch.return_value = WebhookProcessingResult(
            success=False, error="still broken"
        )

        summary = await processor.process_pending_retries()

        assert summary.failed == 1
        event_service.mark_failed.assert_awaited_once_with(
            1, "Max retries exceeded: still broken", retry_count=3
        )
        event_service.schedule_retry.assert_not_called()

    @pytest.mark.asyncio
    async def test_batch_isolation(
        self, processor, event_service, dispatcher, make_webhook_event
    ):
        """One throwing item out of five: all five are processed."""
        event_service.get_pending_retries.return_value = [
            make_webhook_event(id=i) for i in range(1, 6)
        ]

        async def dispatch(event, source):
            if event["id"] == "evt_3":
                raise RuntimeError("handler crashed")
            return WebhookProcessingResult(success=True)

        dispatcher.dispatch.side_effect = dispatch

        summary = await processor.process_pending_retries()

        assert summary.processed == 5
        assert summary.succeeded == 4
        assert summary.rescheduled == 1
        assert event_service.mark_processed.await_count == 4
        event_service.schedule_retry.assert_awaited_once()
        assert event_service.schedule_retry.await_args.args[0] == 3

    @pytest.mark.asyncio
    async def test_malformed_payload_goes_through_failure_path(
        self, processor, event_service, dispatcher, make_webhook_event
    ):
        event_service.get_pending_retries.return_value = [
            make_webhook_event(raw_payload="{not json")
        ]

        summary = await processor.process_pending_retries()

        assert summary.rescheduled == 1
        dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_bookkeeping_failure_counts_as_rescheduled(
        self, processor, event_service, dispatcher, mock_session, make_webhook_event
    ):
        """Item is left for the next cycle when even the failure cannot be recorded."""
        event_service.get_pending_retries.return_value = [
            make_webhook_event(id=1),
            make_webhook_event(id=2),
        ]
        dispatcher.dispatch.side_effect = RuntimeError("handler crashed")
        event_service.schedule_retry.side_effect = [RuntimeError("db down"), None]

        summary = await processor.process_pending_retries()

        assert summary.processed == 2
        assert summary.rescheduled == 2


class TestRetrySummary:
    """Outcome counting."""

    def test_record(self):
        summary = RetrySummary()

        for outcome in (RetryOutcome.SUCCEEDED, RetryOutcome.FAILED, RetryOutcome.RESCHEDULED):
            summary.record(outcome)

        assert summary.processed == summary.succeeded + summary.failed + summary.rescheduled == 3

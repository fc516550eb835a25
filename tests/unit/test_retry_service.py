"""Tests for the RetryService facade."""

from unittest.mock import AsyncMock

import pytest

from app.services.retry_service import (
    PayoutRetryProcessor,
    RetryService,
    RetrySummary,
    StripePayoutGateway,
    WebhookRetryProcessor,
)


class TestFromSession:
    """Wiring."""

    def test_builds_all_components(self, mock_session):
        gateway = StripePayoutGateway(api_key="sk_test_wiring")

        service = RetryService.from_session(mock_session, gateway=gateway)

        assert isinstance(service.webhook_processor, WebhookRetryProcessor)
        assert isinstance(service.payout_processor, PayoutRetryProcessor)
        assert service.payout_processor.gateway is gateway
        assert service.webhook_processor.session is mock_session


class TestDelegation:
    """Cycle entry points."""

    @pytest.fixture
    def service(self, mock_session):
        webhook_processor = AsyncMock()
        webhook_processor.process_pending_retries.return_value = RetrySummary(processed=2, succeeded=2)
        payout_processor = AsyncMock()
        payout_processor.process_pending_retries.return_value = RetrySummary(processed=1, failed=1)
        stats_collector = AsyncMock()
        stats_collector.get_retry_stats.return_value = {"webhooks": {}, "payouts": {}}
        return RetryService(mock_session, webhook_processor, payout_processor, stats_collector)

    @pytest.mark.asyncio
    async def test_retry_failed_webhooks(self, service, now):
        summary = await service.retry_failed_webhooks(now)

        assert summary.succeeded == 2
        service.webhook_processor.process_pending_retries.assert_awaited_once_with(now)

    @pytest.mark.asyncio
    async def test_retry_failed_payouts(self, service):
        summary = await service.retry_failed_payouts()

        assert summary.failed == 1

    @pytest.mark.asyncio
    async def test_cycle_failure_propagates(self, service):
        service.payout_processor.process_pending_retries.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await service.retry_failed_payouts()

    @pytest.mark.asyncio
    async def test_get_retry_stats(self, service):
        assert await service.get_retry_stats() == {"webhooks": {}, "payouts": {}}

"""
Tests for webhook dispatch routing.

Covers:
- Routing by (source, event type)
- Unknown types are successful no-ops
- Every handled type has a handler on its source only
- Handler exceptions become failed results
"""

from unittest.mock import AsyncMock

import pytest

from app.models.enums import WebhookEventSource, WebhookEventType
from app.services.webhook_dispatch import build_dispatcher
from app.services.webhook_dispatch.result import WebhookProcessingResult, guarded_handler


CONNECT_TYPES = {
    WebhookEventType.ACCOUNT_UPDATED,
    WebhookEventType.ACCOUNT_APPLICATION_DEAUTHORIZED,
    WebhookEventType.CAPABILITY_UPDATED,
    WebhookEventType.PERSON_CREATED,
    WebhookEventType.PERSON_UPDATED,
    WebhookEventType.EXTERNAL_ACCOUNT_CREATED,
    WebhookEventType.EXTERNAL_ACCOUNT_UPDATED,
    WebhookEventType.EXTERNAL_ACCOUNT_DELETED,
    WebhookEventType.PAYOUT_CREATED,
    WebhookEventType.PAYOUT_PAID,
    WebhookEventType.PAYOUT_FAILED,
    WebhookEventType.PAYOUT_CANCELED,
}

MAIN_TYPES = {
    WebhookEventType.CHECKOUT_SESSION_COMPLETED,
    WebhookEventType.PAYMENT_INTENT_SUCCEEDED,
    WebhookEventType.PAYMENT_INTENT_PAYMENT_FAILED,
    WebhookEventType.CHARGE_SUCCEEDED,
    WebhookEventType.CHARGE_FAILED,
    WebhookEventType.CHARGE_DISPUTE_CREATED,
}


@pytest.fixture
def dispatcher(mock_session, mock_audit_service, mock_notification_service):
    return build_dispatcher(mock_session, mock_audit_service, mock_notification_service)


class TestRoutingTables:
    """Registered event types per source."""

    def test_connect_types(self, dispatcher):
        assert dispatcher.handled_event_types(WebhookEventSource.STRIPE_CONNECT) == CONNECT_TYPES

    def test_main_types(self, dispatcher):
        assert dispatcher.handled_event_types(WebhookEventSource.STRIPE_MAIN) == MAIN_TYPES

    def test_raw_source_string(self, dispatcher):
        """Stored rows carry the source as a plain string."""
        assert dispatcher.handled_event_types("stripe_connect") == CONNECT_TYPES


class TestDispatch:
    """Dispatching single events."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type", ["topup.created", "brand.new.type", None])
    async def test_unknown_type_is_noop(self, dispatcher, mock_session, event_type):
        """Unknown or missing types succeed without touching anything."""
        result = await dispatcher.dispatch(
            {"id": "evt_x", "type": event_type}, WebhookEventSource.STRIPE_CONNECT
        )

        assert result.success is True
        assert result.error is None
        assert result.processing_time == 0
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_payment_type_on_connect_source_is_noop(self, dispatcher):
        """Main-account types are not handled on the Connect endpoint."""
        result = await dispatcher.dispatch(
            {"id": "evt_x", "type": "checkout.session.completed"},
            WebhookEventSource.STRIPE_CONNECT,
        )

        assert result.success is True
        assert result.processing_time == 0

    @pytest.mark.asyncio
    async def test_routes_to_handler(self, dispatcher):
        """Known type reaches its handler."""
        expected = WebhookProcessingResult(success=True, affected_user_id="7")
        handler = AsyncMock(return_value=expected)
        dispatcher.routes_for("stripe_connect")[WebhookEventType.PAYOUT_PAID] = handler
        event = {"id": "evt_1", "type": "payout.paid"}

        result = await dispatcher.dispatch(event, "stripe_connect")

        assert result is expected
        handler.assert_awaited_once_with(event)


class TestGuardedHandler:
    """Handler exception guard."""

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_result(self):
        class Handlers:
            @guarded_handler("payout.paid")
            async def handle(self, event):
                raise RuntimeError("database went away")

        result = await Handlers().handle({"id": "evt_1"})

        assert result.success is False
        assert result.error == "database went away"
        assert result.processing_time is not None

    @pytest.mark.asyncio
    async def test_fills_processing_time(self):
        class Handlers:
            @guarded_handler("payout.paid")
            async def handle(self, event):
                return WebhookProcessingResult(success=True)

        result = await Handlers().handle({"id": "evt_1"})

        assert result.success is True
        assert result.processing_time >= 0

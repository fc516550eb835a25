"""
Webhook Dispatch - Dispatcher Module.

Module: dispatcher.py
Routes a parsed Stripe event to its handler by (source, event type).

Routing is an explicit table per source. Connect-source events use the
Connect table; every other source uses the main account table. Types
without an entry are successful no-ops so new Stripe event types never
cause retry storms.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from app.models.enums import WebhookEventSource, WebhookEventType

from .connect_handlers import ConnectWebhookHandlers
from .payment_handlers import PaymentWebhookHandlers
from .result import WebhookProcessingResult


HandlerFunc = Callable[[dict[str, Any]], Awaitable[WebhookProcessingResult]]
RoutingTable = dict[WebhookEventType, HandlerFunc]


def _connect_routes(handlers: ConnectWebhookHandlers) -> RoutingTable:
    return {
        WebhookEventType.ACCOUNT_UPDATED: handlers.handle_account_updated,
        WebhookEventType.ACCOUNT_APPLICATION_DEAUTHORIZED: handlers.handle_account_deauthorized,
        WebhookEventType.CAPABILITY_UPDATED: handlers.handle_capability_updated,
        WebhookEventType.PERSON_CREATED: handlers.handle_person_updated,
        WebhookEventType.PERSON_UPDATED: handlers.handle_person_updated,
        WebhookEventType.EXTERNAL_ACCOUNT_CREATED: handlers.handle_external_account_updated,
        WebhookEventType.EXTERNAL_ACCOUNT_UPDATED: handlers.handle_external_account_updated,
        WebhookEventType.EXTERNAL_ACCOUNT_DELETED: handlers.handle_external_account_updated,
        WebhookEventType.PAYOUT_CREATED: handlers.handle_payout_created,
        WebhookEventType.PAYOUT_PAID: handlers.handle_payout_paid,
        WebhookEventType.PAYOUT_FAILED: handlers.handle_payout_failed,
        WebhookEventType.PAYOUT_CANCELED: handlers.handle_payout_canceled,
    }


def _main_routes(handlers: PaymentWebhookHandlers) -> RoutingTable:
    return {
        WebhookEventType.CHECKOUT_SESSION_COMPLETED: handlers.handle_checkout_session_completed,
        WebhookEventType.PAYMENT_INTENT_SUCCEEDED: handlers.handle_payment_intent_succeeded,
        WebhookEventType.PAYMENT_INTENT_PAYMENT_FAILED: handlers.handle_payment_intent_failed,
        WebhookEventType.CHARGE_SUCCEEDED: handlers.handle_charge_succeeded,
        WebhookEventType.CHARGE_FAILED: handlers.handle_charge_failed,
        WebhookEventType.CHARGE_DISPUTE_CREATED: handlers.handle_charge_dispute_created,
    }


class WebhookDispatcher:
    """Maps (source, event type) to a handler."""

    def __init__(
        self,
        connect_handlers: ConnectWebhookHandlers,
        payment_handlers: PaymentWebhookHandlers,
    ) -> None:
        """Initialize dispatcher with both handler groups."""
        self._routes: dict[WebhookEventSource, RoutingTable] = {
            WebhookEventSource.STRIPE_CONNECT: _connect_routes(connect_handlers),
            WebhookEventSource.STRIPE_MAIN: _main_routes(payment_handlers),
        }

    def routes_for(self, source: WebhookEventSource | str | None) -> RoutingTable:
        """Routing table for a source."""
        if source == WebhookEventSource.STRIPE_CONNECT:
            return self._routes[WebhookEventSource.STRIPE_CONNECT]
        return self._routes[WebhookEventSource.STRIPE_MAIN]

    def handled_event_types(self, source: WebhookEventSource | str | None) -> frozenset:
        """Event types that have a handler for this source."""
        return frozenset(self.routes_for(source))

    async def dispatch(
        self,
        event: dict[str, Any],
        source: WebhookEventSource | str | None,
    ) -> WebhookProcessingResult:
        """
        Apply one event.

        Args:
            event: Deserialized Stripe event (must carry a "type")
            source: Endpoint the event was delivered to

        Returns:
            Handler result, or a no-op success for unknown types
        """
        event_type = WebhookEventType.parse(event.get("type"))
        handler = self.routes_for(source).get(event_type) if event_type else None

        if handler is None:
            logger.debug(
                f"No handler for {event.get('type')} from {source}, skipping",
                extra={"stripe_event_id": event.get("id")},
            )
            return WebhookProcessingResult.noop()

        return await handler(event)

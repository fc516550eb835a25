"""
Webhook Dispatch - Main Module.

Routes Stripe events to the domain handlers that apply them.

Module Structure:
- result.py: WebhookProcessingResult and the handler exception guard
- connect_handlers.py: Connect account and payout events
- payment_handlers.py: Course purchase events
- dispatcher.py: (source, event type) routing

Public Interface:
- build_dispatcher(session, audit_service, notification_service)
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.audit_log_service import AuditLogService
from app.services.notification_service import NotificationService

from .connect_handlers import ConnectWebhookHandlers
from .dispatcher import WebhookDispatcher
from .payment_handlers import PaymentWebhookHandlers
from .result import WebhookProcessingResult


def build_dispatcher(
    session: AsyncSession,
    audit_service: AuditLogService,
    notification_service: NotificationService,
) -> WebhookDispatcher:
    """Wire both handler groups into a dispatcher for one session."""
    return WebhookDispatcher(
        ConnectWebhookHandlers(session, audit_service, notification_service),
        PaymentWebhookHandlers(session, audit_service, notification_service),
    )


__all__ = [
    "ConnectWebhookHandlers",
    "PaymentWebhookHandlers",
    "WebhookDispatcher",
    "WebhookProcessingResult",
    "build_dispatcher",
]

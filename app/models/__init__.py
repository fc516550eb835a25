"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.audit_log import AuditLog
from app.models.base import Base
from app.models.enums import (
    AuditLogAction,
    AuditLogCategory,
    AuditLogLevel,
    NotificationPriority,
    NotificationType,
    PayoutFailureCategory,
    PayoutStatus,
    WebhookEventSource,
    WebhookEventStatus,
    WebhookEventType,
)
from app.models.instructor import Instructor, StripeConnectStatus
from app.models.notification import Notification
from app.models.payment import Payment, PaymentStatus, Transaction

# Retry-tracked entities
from app.models.payout import Payout, PayoutAttempt
from app.models.webhook_event import WebhookEvent


__all__ = [
    "AuditLog",
    "AuditLogAction",
    "AuditLogCategory",
    "AuditLogLevel",
    "Base",
    "Instructor",
    "Notification",
    "NotificationPriority",
    "NotificationType",
    "Payment",
    "PaymentStatus",
    "Payout",
    "PayoutAttempt",
    "PayoutFailureCategory",
    "PayoutStatus",
    "StripeConnectStatus",
    "Transaction",
    "WebhookEvent",
    "WebhookEventSource",
    "WebhookEventStatus",
    "WebhookEventType",
]

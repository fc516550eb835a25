"""
Enumerations shared by models and services.

Values are stored as plain strings in the database.
"""

from enum import Enum


class WebhookEventStatus(str, Enum):
    """Webhook event processing status."""

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"


class WebhookEventSource(str, Enum):
    """Which Stripe endpoint delivered the event."""

    STRIPE_MAIN = "stripe_main"
    STRIPE_CONNECT = "stripe_connect"


class WebhookEventType(str, Enum):
    """Stripe event types known to the platform."""

    # Connect account events
    ACCOUNT_UPDATED = "account.updated"
    ACCOUNT_APPLICATION_DEAUTHORIZED = "account.application.deauthorized"
    CAPABILITY_UPDATED = "capability.updated"
    PERSON_CREATED = "person.created"
    PERSON_UPDATED = "person.updated"
    EXTERNAL_ACCOUNT_CREATED = "account.external_account.created"
    EXTERNAL_ACCOUNT_UPDATED = "account.external_account.updated"
    EXTERNAL_ACCOUNT_DELETED = "account.external_account.deleted"

    # Payout events
    PAYOUT_CREATED = "payout.created"
    PAYOUT_PAID = "payout.paid"
    PAYOUT_FAILED = "payout.failed"
    PAYOUT_CANCELED = "payout.canceled"
    PAYOUT_UPDATED = "payout.updated"

    # Transfer events
    TRANSFER_CREATED = "transfer.created"
    TRANSFER_PAID = "transfer.paid"
    TRANSFER_FAILED = "transfer.failed"
    TRANSFER_REVERSED = "transfer.reversed"
    TRANSFER_UPDATED = "transfer.updated"

    # Payment events
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_PAYMENT_FAILED = "payment_intent.payment_failed"
    CHARGE_SUCCEEDED = "charge.succeeded"
    CHARGE_FAILED = "charge.failed"
    CHARGE_DISPUTE_CREATED = "charge.dispute.created"

    # Checkout events
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    CHECKOUT_SESSION_EXPIRED = "checkout.session.expired"

    # Application fee events
    APPLICATION_FEE_CREATED = "application_fee.created"
    APPLICATION_FEE_REFUNDED = "application_fee.refunded"

    # Balance / review / topup events
    BALANCE_AVAILABLE = "balance.available"
    REVIEW_OPENED = "review.opened"
    REVIEW_CLOSED = "review.closed"
    TOPUP_CREATED = "topup.created"
    TOPUP_SUCCEEDED = "topup.succeeded"
    TOPUP_FAILED = "topup.failed"

    @classmethod
    def parse(cls, value: str | None) -> "WebhookEventType | None":
        """Return the member for a raw type string, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


class PayoutStatus(str, Enum):
    """Payout lifecycle status."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PayoutFailureCategory(str, Enum):
    """Why a payout failed."""

    INSUFFICIENT_FUNDS = "insufficient_funds"
    ACCOUNT_CLOSED = "account_closed"
    INVALID_ACCOUNT = "invalid_account"
    BANK_DECLINED = "bank_declined"
    COMPLIANCE_ISSUE = "compliance_issue"
    TECHNICAL_ERROR = "technical_error"
    UNKNOWN = "unknown"


class AuditLogAction(str, Enum):
    """Audited actions."""

    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"

    PAYOUT_CREATED = "payout_created"
    PAYOUT_COMPLETED = "payout_completed"
    PAYOUT_FAILED = "payout_failed"
    PAYOUT_CANCELLED = "payout_cancelled"
    PAYOUT_RETRY_ATTEMPTED = "payout_retry_attempted"

    STRIPE_ACCOUNT_UPDATED = "stripe_account_updated"
    STRIPE_ACCOUNT_DEAUTHORIZED = "stripe_account_deauthorized"
    STRIPE_CAPABILITY_UPDATED = "stripe_capability_updated"
    STRIPE_PERSON_UPDATED = "stripe_person_updated"
    STRIPE_EXTERNAL_ACCOUNT_UPDATED = "stripe_external_account_updated"

    WEBHOOK_RECEIVED = "webhook_received"
    WEBHOOK_PROCESSED = "webhook_processed"
    WEBHOOK_FAILED = "webhook_failed"
    WEBHOOK_RETRY_ATTEMPTED = "webhook_retry_attempted"


class AuditLogLevel(str, Enum):
    """Audit record severity."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLogCategory(str, Enum):
    """Audit record category."""

    PAYMENT = "payment"
    PAYOUT = "payout"
    STRIPE_CONNECT = "stripe_connect"
    TRANSFER = "transfer"
    WEBHOOK = "webhook"
    SYSTEM = "system"


class NotificationType(str, Enum):
    """In-app notification types written by webhook handlers."""

    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_FAILED = "payment_failed"
    PAYOUT_SCHEDULED = "payout_scheduled"
    PAYOUT_COMPLETED = "payout_completed"
    PAYOUT_FAILED = "payout_failed"
    STRIPE_ACCOUNT_CONNECTED = "stripe_account_connected"
    STRIPE_ACCOUNT_RESTRICTED = "stripe_account_restricted"
    STRIPE_ACCOUNT_PENDING = "stripe_account_pending"
    STRIPE_ACCOUNT_DISCONNECTED = "stripe_account_disconnected"


class NotificationPriority(str, Enum):
    """Notification priority."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

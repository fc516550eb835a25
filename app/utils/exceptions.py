"""
Exception handling utilities.

Domain exceptions for the retry worker plus the categories used to
decide how a failure is recorded.
"""

import stripe
from sqlalchemy.exc import OperationalError


class RetryWorkerError(Exception):
    """Base class for retry worker errors."""
    pass


class WebhookSignatureError(RetryWorkerError):
    """Raised when a Stripe webhook signature cannot be verified."""
    pass


class WebhookEventNotFoundError(RetryWorkerError):
    """Raised when a webhook event row does not exist."""

    def __init__(self, event_id: int) -> None:
        super().__init__(f"Webhook event {event_id} not found")
        self.event_id = event_id


class PayoutNotFoundError(RetryWorkerError):
    """Raised when a payout row does not exist."""

    def __init__(self, payout_id: int) -> None:
        super().__init__(f"Payout {payout_id} not found")
        self.payout_id = payout_id


# Exception categories based on handling strategy

# Transient - infrastructure hiccups, the next attempt may succeed
TRANSIENT_ERRORS = (
    OperationalError,             # Database connectivity
    stripe.APIConnectionError,    # Network to Stripe
    stripe.RateLimitError,        # Stripe throttling
)


def is_transient(exc: BaseException) -> bool:
    """
    Check if exception is a transient infrastructure failure.

    Args:
        exc: Exception to check

    Returns:
        True if a later retry may succeed without any change
    """
    return isinstance(exc, TRANSIENT_ERRORS)

"""
Retry Service Constants.

Module: constants.py
Backoff defaults and the non-retryable failure categories.
"""

from app.config.constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_WEBHOOK_MAX_RETRIES,
    JITTER_FRACTION,
    WEBHOOK_BASE_DELAY_MS,
    WEBHOOK_MAX_DELAY_MS,
)
from app.models.enums import PayoutFailureCategory

# Exponential backoff: base * multiplier^n, capped at max
BASE_DELAY_MS = DEFAULT_BASE_DELAY_MS
MAX_DELAY_MS = DEFAULT_MAX_DELAY_MS
BACKOFF_MULTIPLIER = DEFAULT_BACKOFF_MULTIPLIER
MAX_JITTER_FRACTION = JITTER_FRACTION

WEBHOOK_MAX_RETRIES = DEFAULT_WEBHOOK_MAX_RETRIES

# A retry can never succeed for these
NON_RETRYABLE_CATEGORIES = frozenset(
    {
        PayoutFailureCategory.ACCOUNT_CLOSED,
        PayoutFailureCategory.INVALID_ACCOUNT,
        PayoutFailureCategory.COMPLIANCE_ISSUE,
    }
)

# Stripe payout failure_code -> category
STRIPE_FAILURE_CODE_CATEGORIES = {
    "insufficient_funds": PayoutFailureCategory.INSUFFICIENT_FUNDS,
    "account_closed": PayoutFailureCategory.ACCOUNT_CLOSED,
    "invalid_account_number": PayoutFailureCategory.INVALID_ACCOUNT,
    "invalid_routing_number": PayoutFailureCategory.INVALID_ACCOUNT,
    "debit_not_authorized": PayoutFailureCategory.BANK_DECLINED,
}

MAX_RETRIES_EXCEEDED_PREFIX = "Max retries exceeded"

__all__ = [
    "BACKOFF_MULTIPLIER",
    "BASE_DELAY_MS",
    "MAX_DELAY_MS",
    "MAX_JITTER_FRACTION",
    "MAX_RETRIES_EXCEEDED_PREFIX",
    "NON_RETRYABLE_CATEGORIES",
    "STRIPE_FAILURE_CODE_CATEGORIES",
    "WEBHOOK_BASE_DELAY_MS",
    "WEBHOOK_MAX_DELAY_MS",
    "WEBHOOK_MAX_RETRIES",
]

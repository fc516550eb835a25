"""
Retry Service - Failure Classifier Module.

Module: classifier.py
Decides whether a payout failure category allows another attempt.
Unknown or missing categories are retryable.
"""

from app.models.enums import PayoutFailureCategory

from .constants import NON_RETRYABLE_CATEGORIES, STRIPE_FAILURE_CODE_CATEGORIES


def _as_category(category: PayoutFailureCategory | str | None) -> PayoutFailureCategory | None:
    if category is None or isinstance(category, PayoutFailureCategory):
        return category
    try:
        return PayoutFailureCategory(category)
    except ValueError:
        return None


def should_retry_payout(category: PayoutFailureCategory | str | None) -> bool:
    """
    Check if a payout with this failure category may be retried.

    Args:
        category: Stored failure category (enum, raw string or None)

    Returns:
        False only for closed accounts, invalid account details and
        compliance blocks
    """
    return _as_category(category) not in NON_RETRYABLE_CATEGORIES


def categorize_payout_failure(failure_code: str | None) -> PayoutFailureCategory:
    """
    Map a Stripe payout failure_code to a failure category.

    Args:
        failure_code: Stripe failure code, may be None

    Returns:
        UNKNOWN when no code is given, TECHNICAL_ERROR for unmapped codes
    """
    if not failure_code:
        return PayoutFailureCategory.UNKNOWN
    return STRIPE_FAILURE_CODE_CATEGORIES.get(
        failure_code, PayoutFailureCategory.TECHNICAL_ERROR
    )

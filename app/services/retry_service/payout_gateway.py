"""
Retry Service - Payout Gateway Module.

Module: payout_gateway.py
Re-creates a failed payout on the instructor's connected account.
The Stripe SDK is synchronous, so calls run in a worker thread.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import stripe
from loguru import logger

from app.config.settings import settings
from app.models.enums import PayoutFailureCategory
from app.models.payout import Payout
from app.utils.exceptions import is_transient

from .classifier import categorize_payout_failure


@dataclass(frozen=True)
class PayoutSnapshot:
    """
    Plain copy of the payout fields a retry needs.

    Taken before the attempt so that a session rollback, which expires
    ORM instances, cannot break the failure bookkeeping.
    """

    id: int
    instructor_id: int
    amount: Decimal
    currency: str
    stripe_account_id: str | None
    stripe_payout_id: str | None
    description: str | None
    failure_category: str | None
    retry_count: int
    max_retries: int
    retry_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, payout: Payout) -> "PayoutSnapshot":
        """Copy the retry-relevant fields of a loaded payout."""
        return cls(
            id=payout.id,
            instructor_id=payout.instructor_id,
            amount=payout.amount,
            currency=payout.currency,
            stripe_account_id=payout.stripe_account_id,
            stripe_payout_id=payout.stripe_payout_id,
            description=payout.description,
            failure_category=payout.failure_category,
            retry_count=payout.retry_count,
            max_retries=payout.max_retries,
            retry_config=dict(payout.retry_config or {}),
        )


@dataclass
class PayoutRetryResult:
    """Outcome of one provider call."""

    success: bool
    error: str | None = None
    failure_category: PayoutFailureCategory | None = None
    stripe_payout_id: str | None = None


def idempotency_key(payout_id: int, attempt_number: int) -> str:
    """Stable key so a repeated attempt never creates a second payout."""
    return f"payout-retry-{payout_id}-{attempt_number}"


class StripePayoutGateway:
    """Creates payouts on connected accounts."""

    def __init__(self, api_key: str | None = None) -> None:
        """
        Initialize gateway.

        Args:
            api_key: Stripe secret key (defaults to settings)
        """
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key

    async def retry_payout(
        self, payout: PayoutSnapshot, attempt_number: int
    ) -> PayoutRetryResult:
        """
        Re-create a payout on the connected account.

        Args:
            payout: Snapshot of the payout being retried
            attempt_number: Attempt number, part of the idempotency key

        Returns:
            PayoutRetryResult; Stripe errors never propagate
        """
        if not self.api_key:
            return PayoutRetryResult(
                success=False,
                error="Stripe secret key is not configured",
                failure_category=PayoutFailureCategory.TECHNICAL_ERROR,
            )
        if not payout.stripe_account_id:
            return PayoutRetryResult(
                success=False,
                error="Payout has no connected Stripe account",
                failure_category=PayoutFailureCategory.INVALID_ACCOUNT,
            )

        try:
            created = await asyncio.to_thread(
                stripe.Payout.create,
                amount=int((Decimal(payout.amount) * 100).to_integral_value()),
                currency=payout.currency.lower(),
                description=payout.description or "Payout retry",
                metadata={"payout_id": str(payout.id), "attempt": str(attempt_number)},
                api_key=self.api_key,
                stripe_account=payout.stripe_account_id,
                idempotency_key=idempotency_key(payout.id, attempt_number),
            )
        except stripe.StripeError as e:
            return self._failure_from_error(payout, e)

        logger.info(
            f"Payout {payout.id} re-created on Stripe as {created.id}",
            extra={"payout_id": payout.id, "attempt": attempt_number},
        )
        return PayoutRetryResult(success=True, stripe_payout_id=created.id)

    def _failure_from_error(
        self, payout: PayoutSnapshot, error: stripe.StripeError
    ) -> PayoutRetryResult:
        if is_transient(error):
            category = PayoutFailureCategory.TECHNICAL_ERROR
        else:
            category = categorize_payout_failure(getattr(error, "code", None))

        message = getattr(error, "user_message", None) or str(error)
        logger.warning(
            f"Stripe rejected payout {payout.id} retry: {message}",
            extra={"payout_id": payout.id, "failure_category": category.value},
        )
        return PayoutRetryResult(success=False, error=message, failure_category=category)

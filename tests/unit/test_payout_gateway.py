"""Tests for the Stripe payout gateway."""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from app.models.enums import PayoutFailureCategory
from app.services.retry_service.payout_gateway import (
    PayoutSnapshot,
    StripePayoutGateway,
    idempotency_key,
)


PAYOUT_CREATE = "app.services.retry_service.payout_gateway.stripe.Payout.create"


@pytest.fixture
def snapshot(make_payout):
    return PayoutSnapshot.from_model(make_payout())


@pytest.fixture
def gateway():
    return StripePayoutGateway(api_key="sk_test_gateway")


class TestRetryPayout:
    """Provider call and error mapping."""

    @pytest.mark.asyncio
    async def test_success(self, gateway, snapshot):
        with patch(PAYOUT_CREATE, MagicMock(return_value=SimpleNamespace(id="po_new"))) as create:
            result = await gateway.retry_payout(snapshot, 2)

        assert result.success is True
        assert result.stripe_payout_id == "po_new"
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 12550
        assert kwargs["currency"] == "usd"
        assert kwargs["stripe_account"] == "acct_1"
        assert kwargs["idempotency_key"] == "payout-retry-10-2"

    @pytest.mark.asyncio
    async def test_closed_account(self, gateway, snapshot):
        error = stripe.InvalidRequestError("Account closed", None, code="account_closed")

        with patch(PAYOUT_CREATE, MagicMock(side_effect=error)):
            result = await gateway.retry_payout(snapshot, 1)

        assert result.success is False
        assert result.failure_category is PayoutFailureCategory.ACCOUNT_CLOSED
        assert "Account closed" in result.error

    @pytest.mark.asyncio
    async def test_connection_error_is_technical(self, gateway, snapshot):
        with patch(PAYOUT_CREATE, MagicMock(side_effect=stripe.APIConnectionError("timeout"))):
            result = await gateway.retry_payout(snapshot, 1)

        assert result.success is False
        assert result.failure_category is PayoutFailureCategory.TECHNICAL_ERROR

    @pytest.mark.asyncio
    async def test_missing_connected_account(self, gateway, make_payout):
        snapshot = PayoutSnapshot.from_model(make_payout(stripe_account_id=None))

        with patch(PAYOUT_CREATE) as create:
            result = await gateway.retry_payout(snapshot, 1)

        assert result.failure_category is PayoutFailureCategory.INVALID_ACCOUNT
        create.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_api_key(self, snapshot):
        result = await StripePayoutGateway(api_key="").retry_payout(snapshot, 1)

        assert result.success is False
        assert result.failure_category is PayoutFailureCategory.TECHNICAL_ERROR


def test_idempotency_key_is_stable():
    assert idempotency_key(10, 3) == idempotency_key(10, 3) == "payout-retry-10-3"


def test_snapshot_copies_retry_config(make_payout):
    payout = make_payout(amount=Decimal("1.00"))

    snapshot = PayoutSnapshot.from_model(payout)
    payout.retry_config["base_delay"] = 1

    assert snapshot.retry_config["base_delay"] == 60_000

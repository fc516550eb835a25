"""
Shared fixtures for unit tests.

Provides:
- Mock audit and notification services
- Factories for webhook event and payout rows
"""

import json
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.models.enums import PayoutStatus, WebhookEventSource, WebhookEventStatus
from app.models.payout import default_payout_retry_config


@pytest.fixture
def mock_audit_service():
    """AuditLogService double."""
    service = AsyncMock()
    service.create_audit_log = AsyncMock()
    return service


@pytest.fixture
def mock_notification_service():
    """NotificationService double; notify_safe never raises."""
    service = AsyncMock()
    service.notify_safe = AsyncMock(return_value=None)
    return service


@pytest.fixture
def make_webhook_event():
    """
    Factory for webhook event rows.

    Default: failed connect event, first retry pending.
    """
    def _make(
        id: int = 1,
        event_type: str = "account.updated",
        source: str = WebhookEventSource.STRIPE_CONNECT.value,
        retry_count: int = 0,
        max_retries: int = 3,
        status: str = WebhookEventStatus.FAILED.value,
        **overrides,
    ):
        payload = {
            "id": f"evt_{id}",
            "type": event_type,
            "account": "acct_1",
            "data": {"object": {"id": "acct_1"}},
        }
        fields = dict(
            id=id,
            stripe_event_id=f"evt_{id}",
            event_type=event_type,
            source=source,
            status=status,
            raw_payload=json.dumps(payload),
            retry_count=retry_count,
            max_retries=max_retries,
            retry_backoff_multiplier=2.0,
            next_retry_at=None,
            details={},
        )
        fields.update(overrides)
        return SimpleNamespace(**fields)

    return _make


@pytest.fixture
def make_payout():
    """
    Factory for payout rows.

    Default: failed technical error, retry_count 0 of 3.
    """
    def _make(
        id: int = 10,
        retry_count: int = 0,
        max_retries: int = 3,
        failure_category: str | None = "technical_error",
        **overrides,
    ):
        fields = dict(
            id=id,
            instructor_id=7,
            amount=Decimal("125.50"),
            currency="USD",
            status=PayoutStatus.FAILED.value,
            stripe_account_id="acct_1",
            stripe_payout_id=f"po_{id}",
            description="Weekly payout",
            failure_category=failure_category,
            retry_count=retry_count,
            max_retries=max_retries,
            retry_config=default_payout_retry_config(),
            next_retry_at=None,
            details={},
        )
        fields.update(overrides)
        return SimpleNamespace(**fields)

    return _make

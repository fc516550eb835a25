"""
Tests for table constraints on retry state.

Covers:
- A retry budget must be positive on webhook events and payouts
"""

import pytest
from sqlalchemy import CheckConstraint

from app.models.payout import Payout
from app.models.webhook_event import WebhookEvent


def _check_texts(model):
    return {
        str(constraint.sqltext)
        for constraint in model.__table__.constraints
        if isinstance(constraint, CheckConstraint)
    }


@pytest.mark.parametrize("model", [WebhookEvent, Payout])
def test_max_retries_must_be_positive(model):
    checks = _check_texts(model)

    assert "max_retries > 0" in checks
    assert "max_retries >= 0" not in checks
    assert "retry_count >= 0" in checks

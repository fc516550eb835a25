"""
Webhook Event model.

Stores every Stripe webhook delivery together with its retry bookkeeping.
The raw payload is kept verbatim and re-parsed on every retry attempt.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.config.constants import DEFAULT_BACKOFF_MULTIPLIER, DEFAULT_WEBHOOK_MAX_RETRIES
from app.models.base import Base
from app.models.enums import WebhookEventStatus


class WebhookEvent(Base):
    """
    Stripe webhook event.

    Retry lifecycle:
    - PENDING: received, not processed yet
    - FAILED + next_retry_at set + retry_count < max_retries: waiting for retry
    - PROCESSED: terminal success
    - FAILED + permanent_failure: terminal failure
    """

    __tablename__ = "webhook_events"
    __table_args__ = (
        CheckConstraint("retry_count >= 0", name="check_webhook_retry_count_non_negative"),
        CheckConstraint("max_retries > 0", name="check_webhook_max_retries_positive"),
        Index("ix_webhook_events_status_next_retry", "status", "next_retry_at"),
        Index("ix_webhook_events_type_received", "event_type", "received_at"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Core event information
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=WebhookEventStatus.PENDING.value,
        index=True,
    )

    # Stripe information
    stripe_event_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    stripe_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    stripe_api_version: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Event data
    event_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    raw_payload: Mapped[str] = mapped_column(Text, nullable=False)

    # Processing timestamps
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        index=True,
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_retry_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    # Retry bookkeeping
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_WEBHOOK_MAX_RETRIES
    )
    retry_backoff_multiplier: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_BACKOFF_MULTIPLIER
    )

    # Processing metadata (error message, duration, affected user, ...)
    details: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)
    tags: Mapped[list[str] | None] = mapped_column(ARRAY(String(100)), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<WebhookEvent(id={self.id}, stripe_event_id={self.stripe_event_id}, "
            f"type={self.event_type}, status={self.status}, "
            f"retry={self.retry_count}/{self.max_retries})>"
        )

    @property
    def is_terminal(self) -> bool:
        """True once the event will never be retried again."""
        if self.status == WebhookEventStatus.PROCESSED.value:
            return True
        return self.status == WebhookEventStatus.FAILED.value and bool(
            (self.details or {}).get("permanent_failure")
        )

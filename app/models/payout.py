"""
Payout models.

Payout tracks a transfer of funds to an instructor's connected account.
PayoutAttempt is the append-only audit trail of every attempt made for it.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    DECIMAL,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.config.constants import DEFAULT_PAYOUT_MAX_RETRIES
from app.models.base import Base
from app.models.enums import PayoutStatus


if TYPE_CHECKING:
    from app.models.instructor import Instructor


def default_payout_retry_config() -> dict:
    """Retry configuration stored on new payouts."""
    return {
        "max_retries": DEFAULT_PAYOUT_MAX_RETRIES,
        "base_delay": 60_000,
        "max_delay": 3_600_000,
        "backoff_multiplier": 2,
        "jitter_enabled": True,
    }


class Payout(Base):
    """Payout to an instructor's Stripe connected account."""

    __tablename__ = "payouts"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_payout_amount_non_negative"),
        CheckConstraint("retry_count >= 0", name="check_payout_retry_count_non_negative"),
        CheckConstraint("max_retries > 0", name="check_payout_max_retries_positive"),
        Index("ix_payouts_status_next_retry", "status", "next_retry_at"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Instructor reference
    instructor_id: Mapped[int] = mapped_column(
        ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Amount
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayoutStatus.PENDING.value, index=True
    )

    # Stripe information
    stripe_payout_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True, index=True
    )
    stripe_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Scheduling
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Failure handling
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_category: Mapped[str | None] = mapped_column(String(32), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_PAYOUT_MAX_RETRIES
    )
    next_retry_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    retry_config: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=default_payout_retry_config
    )

    details: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)

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

    # Relationships
    instructor: Mapped["Instructor"] = relationship("Instructor", back_populates="payouts")
    attempts: Mapped[list["PayoutAttempt"]] = relationship(
        "PayoutAttempt",
        back_populates="payout",
        order_by="PayoutAttempt.attempt_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Payout(id={self.id}, instructor_id={self.instructor_id}, "
            f"amount={self.amount} {self.currency}, status={self.status}, "
            f"retry={self.retry_count}/{self.max_retries})>"
        )


class PayoutAttempt(Base):
    """Single payout attempt. Rows are inserted once and never modified."""

    __tablename__ = "payout_attempts"
    __table_args__ = (
        Index("ix_payout_attempts_payout_attempt", "payout_id", "attempt_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payout_id: Mapped[int] = mapped_column(
        ForeignKey("payouts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    stripe_payout_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_category: Mapped[str | None] = mapped_column(String(32), nullable=True)
    processing_time: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Attempt duration in milliseconds"
    )
    details: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    payout: Mapped["Payout"] = relationship("Payout", back_populates="attempts")

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PayoutAttempt(payout_id={self.payout_id}, "
            f"attempt={self.attempt_number}, status={self.status})>"
        )

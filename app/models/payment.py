"""
Payment and Transaction models.

Payment is the student's course purchase; Transaction is the ledger
entry splitting it between instructor and platform.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class PaymentStatus:
    """Payment status constants."""

    PENDING = "pending"
    COMPLETED = "completed"
    SUCCESS = "success"
    FAILED = "failed"


class Payment(Base):
    """Course purchase paid through Stripe Checkout."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    course_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    instructor_id: Mapped[int] = mapped_column(
        ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False, index=True
    )

    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    instructor_share: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    platform_share: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")

    stripe_payment_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    stripe_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    receipt_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Payment(id={self.id}, stripe_payment_id={self.stripe_payment_id}, "
            f"amount={self.amount}, status={self.status})>"
        )


class Transaction(Base):
    """Ledger entry for a completed course sale."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    course_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    instructor_id: Mapped[int] = mapped_column(
        ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False, index=True
    )

    total_amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    instructor_earning: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    platform_earning: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default="card")

    stripe_transaction_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    stripe_transfer_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )
    details: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

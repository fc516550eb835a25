"""
Instructor model.

Course authors who sell on the platform and receive payouts through
a Stripe Connect account.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base


if TYPE_CHECKING:
    from app.models.payout import Payout


class StripeConnectStatus:
    """Stripe Connect account status constants."""

    NOT_CONNECTED = "not_connected"
    PENDING = "pending"
    CONNECTED = "connected"
    RESTRICTED = "restricted"
    DISCONNECTED = "disconnected"


class Instructor(Base):
    """Instructor profile with Stripe Connect state."""

    __tablename__ = "instructors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Stripe Connect
    stripe_account_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True, index=True
    )
    stripe_connect_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=StripeConnectStatus.NOT_CONNECTED
    )
    stripe_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    onboarding_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requirements: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    capabilities: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    account_health_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_account: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    last_status_update: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_webhook_received: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    disconnected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    payouts: Mapped[list["Payout"]] = relationship("Payout", back_populates="instructor")

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Instructor(id={self.id}, stripe_account_id={self.stripe_account_id}, "
            f"status={self.stripe_connect_status})>"
        )

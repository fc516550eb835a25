"""
Payment Repository.

Database operations for Payment and Transaction models.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment, Transaction
from app.repositories.base import BaseRepository


class PaymentRepository(BaseRepository[Payment]):
    """Repository for course payments."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        super().__init__(Payment, session)

    async def get_by_stripe_payment_id(self, stripe_payment_id: str) -> Payment | None:
        """Get payment by Stripe checkout session or payment intent ID."""
        return await self.get_by(stripe_payment_id=stripe_payment_id)


class TransactionRepository(BaseRepository[Transaction]):
    """Repository for sale ledger entries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        super().__init__(Transaction, session)

    async def get_by_stripe_transaction_id(
        self, stripe_transaction_id: str
    ) -> Transaction | None:
        """Get transaction by Stripe ID."""
        return await self.get_by(stripe_transaction_id=stripe_transaction_id)

"""
Instructor Repository.

Database operations for Instructor model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.instructor import Instructor
from app.repositories.base import BaseRepository


class InstructorRepository(BaseRepository[Instructor]):
    """Repository for instructors."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        super().__init__(Instructor, session)

    async def get_by_stripe_account_id(self, stripe_account_id: str) -> Instructor | None:
        """Get instructor by connected Stripe account ID."""
        if not stripe_account_id:
            return None
        return await self.get_by(stripe_account_id=stripe_account_id)

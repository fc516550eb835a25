"""
Notification Repository.

Database operations for Notification model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification
from app.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """Repository for in-app notifications."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        super().__init__(Notification, session)

"""
Notification service.

Creates in-app notification rows for instructors and students.
Delivery transports are handled elsewhere; this service only persists.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import NotificationPriority, NotificationType
from app.models.notification import Notification
from app.repositories.notification_repository import NotificationRepository
from app.services.base_service import BaseService


class NotificationService(BaseService):
    """In-app notification writer."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize notification service."""
        super().__init__(session)
        self.notification_repo = NotificationRepository(session)

    async def create_notification(
        self,
        user_id: str | int,
        user_type: str,
        type: NotificationType,
        title: str,
        body: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        related_resource_type: str | None = None,
        related_resource_id: str | int | None = None,
        action_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        """Persist a notification."""
        return await self.notification_repo.create(
            user_id=str(user_id),
            user_type=user_type,
            type=type.value,
            priority=priority.value,
            title=title,
            body=body,
            related_resource_type=related_resource_type,
            related_resource_id=(
                str(related_resource_id) if related_resource_id is not None else None
            ),
            action_url=action_url,
            details=metadata,
        )

    async def notify_safe(self, **kwargs: Any) -> Notification | None:
        """
        Create a notification, logging instead of raising on failure.

        Webhook handlers use this so a notification problem never turns a
        successfully applied event into a failed one. The insert runs in a
        SAVEPOINT so a failed insert does not poison the outer transaction.
        """
        try:
            async with self.session.begin_nested():
                return await self.create_notification(**kwargs)
        except Exception as e:
            self.logger.warning(
                f"Failed to create notification for {kwargs.get('user_type')} "
                f"{kwargs.get('user_id')}: {e}"
            )
            return None

"""
Audit Log Repository.

Database operations for AuditLog model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog
from app.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[AuditLog]):
    """Repository for audit records. Records are only ever inserted."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        super().__init__(AuditLog, session)

    async def find_for_resource(
        self, resource_type: str, resource_id: str, limit: int = 50
    ) -> list[AuditLog]:
        """Latest audit records for a resource, newest first."""
        stmt = (
            select(AuditLog)
            .where(
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == resource_id,
            )
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

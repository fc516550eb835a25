"""
Audit log service.

Writes structured audit records for webhook, payout and payment activity
and mirrors each record to loguru.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog
from app.models.enums import AuditLogAction, AuditLogCategory, AuditLogLevel
from app.repositories.audit_log_repository import AuditLogRepository
from app.services.base_service import BaseService
from app.utils.datetime_utils import utc_now


# loguru level used when mirroring an audit record
_LOGURU_LEVELS = {
    AuditLogLevel.INFO: "INFO",
    AuditLogLevel.WARNING: "WARNING",
    AuditLogLevel.ERROR: "ERROR",
    AuditLogLevel.CRITICAL: "CRITICAL",
}


class AuditLogService(BaseService):
    """Audit record sink."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize audit log service."""
        super().__init__(session)
        self.audit_repo = AuditLogRepository(session)

    async def create_audit_log(
        self,
        action: AuditLogAction,
        category: AuditLogCategory,
        level: AuditLogLevel,
        message: str,
        metadata: dict[str, Any] | None = None,
        user_id: str | int | None = None,
        user_type: str | None = None,
        resource_type: str | None = None,
        resource_id: str | int | None = None,
    ) -> AuditLog:
        """
        Insert one audit record.

        The record is flushed, not committed: it belongs to the caller's
        unit of work.

        Args:
            action: Audited action
            category: Record category
            level: Severity
            message: Human-readable message
            metadata: Structured details (attempt count, timings, ids)
            user_id: Affected user
            user_type: "instructor" or "student"
            resource_type: Kind of resource the record is about
            resource_id: Resource identifier

        Returns:
            Created AuditLog
        """
        record = await self.audit_repo.create(
            action=action.value,
            category=category.value,
            level=level.value,
            message=message,
            user_id=str(user_id) if user_id is not None else None,
            user_type=user_type,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=metadata or {},
            timestamp=utc_now(),
        )

        self.logger.log(
            _LOGURU_LEVELS[level],
            message,
            extra={
                "audit_action": action.value,
                "audit_category": category.value,
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        return record

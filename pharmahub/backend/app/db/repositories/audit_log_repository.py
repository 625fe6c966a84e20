# backend/app/db/repositories/audit_log_repository.py
from typing import Optional, Dict, Any, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models.audit_log import AuditLog
from app.db.repositories.base import BaseRepository

audit_logger = get_logger("audit")


class AuditLogRepository(BaseRepository[AuditLog]):
    """Persists state transitions next to the structured log line"""

    def __init__(self, session: AsyncSession):
        super().__init__(AuditLog, session)

    def record(
        self,
        action: str,
        tenant_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Stage an audit entry; committed with the caller's transaction"""
        entry = AuditLog(
            tenant_id=tenant_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
        )
        self.session.add(entry)
        audit_logger.info(
            action,
            extra={
                "tenant_id": tenant_id,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "details": details or {},
            },
        )
        return entry

    async def list_for_resource(self, resource_type: str, resource_id: str) -> List[AuditLog]:
        result = await self.session.execute(
            select(AuditLog)
            .where(AuditLog.resource_type == resource_type)
            .where(AuditLog.resource_id == resource_id)
            .order_by(AuditLog.created_at)
        )
        return list(result.scalars().all())

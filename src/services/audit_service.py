# src/services/audit_service.py
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from models.audit_log import AuditAction, AuditLog
from utils.clock import Clock, utcnow
from utils.logger import setup_logger

logger = setup_logger("AUDIT_SERVICE")


class AuditService:
    """Append-only trail of consent decisions and record mutations.

    Entries are added to the caller's session and commit together with the
    mutation they describe.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock: Clock = clock or utcnow

    def record(
        self,
        db: AsyncSession,
        principal: str,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        details: Optional[Dict[str, Any]] = None,
        at: Optional[datetime] = None,
    ) -> AuditLog:
        entry = AuditLog(
            principal=principal,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            created_at=at or self.clock(),
        )
        db.add(entry)
        logger.debug(f"{action.value} on {entity_type} {entity_id} by {principal}")
        return entry

    async def get_entity_log(
        self,
        db: AsyncSession,
        entity_type: str,
        entity_id: str,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditLog]:
        result = await db.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at, AuditLog.id)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())


audit_service = AuditService()

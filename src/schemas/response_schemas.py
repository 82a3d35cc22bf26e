# src/schemas/response_schemas.py
from pydantic import BaseModel
from typing import Optional, Dict, Any
from models.audit_log import AuditAction
from .base_schemas import BaseSchema, UTCDateTime


class SystemStats(BaseModel):
    """Operator-facing aggregate counts"""

    total_records: int
    total_patients: int
    total_providers: int
    pending_share_requests: int
    active_grants: int


class AuditLogPublic(BaseSchema):
    """One entry of a record's access audit trail"""

    id: str
    principal: str
    action: AuditAction
    entity_type: str
    entity_id: str
    details: Optional[Dict[str, Any]] = None
    created_at: UTCDateTime

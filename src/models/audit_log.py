# src/models/audit_log.py
from sqlalchemy import Column, String, DateTime, JSON, Enum, Index
from enum import Enum as PyEnum
from db.database import Base
from .health_record import generate_id


class AuditAction(str, PyEnum):
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    SHARE_REQUESTED = "share_requested"
    SHARE_APPROVED = "share_approved"
    SHARE_REJECTED = "share_rejected"
    SHARE_EXPIRED = "share_expired"
    ACCESS_GRANTED = "access_granted"
    ACCESS_REVOKED = "access_revoked"
    ACCESS_DENIED = "access_denied"


class AuditLog(Base):
    __tablename__ = "access_audit_logs"

    id = Column(String(36), primary_key=True, default=generate_id)
    principal = Column(String(128), nullable=False)

    action = Column(Enum(AuditAction), nullable=False)
    entity_type = Column(String(50), nullable=False)  # "health_record", "share_request"
    entity_id = Column(String(36), nullable=False)

    details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)

    # Index for performance
    __table_args__ = (
        Index("ix_access_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_access_audit_logs_created_at", "created_at"),
        Index("ix_access_audit_logs_principal", "principal"),
    )

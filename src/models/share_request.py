# src/models/share_request.py
from sqlalchemy import Column, ForeignKey, DateTime, Text, String, Enum
from enum import Enum as PyEnum
from db.database import Base
from .health_record import generate_id


class ShareStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ShareRequest(Base):
    __tablename__ = "share_requests"

    id = Column(String(36), primary_key=True, default=generate_id)

    # Parties
    patient_id = Column(
        String(128), ForeignKey("patients.id"), nullable=False, index=True
    )
    provider_id = Column(
        String(128), ForeignKey("healthcare_providers.id"), nullable=False, index=True
    )

    message = Column(Text, nullable=False, default="")
    status = Column(Enum(ShareStatus), nullable=False, default=ShareStatus.PENDING)

    # Timestamps
    requested_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)


class ShareRequestRecord(Base):
    """Membership of one record id in a share request's record_ids"""

    __tablename__ = "share_request_records"

    share_request_id = Column(
        String(36), ForeignKey("share_requests.id"), primary_key=True
    )
    # No foreign key: ids are detached explicitly when a record is deleted
    record_id = Column(String(36), primary_key=True, index=True)

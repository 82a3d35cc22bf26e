# src/models/record_grant.py
from sqlalchemy import Column, ForeignKey, DateTime, String, UniqueConstraint
from db.database import Base
from .health_record import generate_id


class RecordGrant(Base):
    """A provider's time-bounded read access to one record.

    The live rows of this table (expires_at not yet passed) are the record's
    shared_with set.
    """

    __tablename__ = "record_grants"

    id = Column(String(36), primary_key=True, default=generate_id)
    record_id = Column(
        String(36), ForeignKey("health_records.id"), nullable=False, index=True
    )
    provider_id = Column(
        String(128), ForeignKey("healthcare_providers.id"), nullable=False, index=True
    )
    # Approved request the grant was derived from
    share_request_id = Column(
        String(36), ForeignKey("share_requests.id"), nullable=True
    )

    granted_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("record_id", "provider_id", name="uq_record_grant_provider"),
    )


# src/models/health_record.py
import uuid
from sqlalchemy import Column, ForeignKey, DateTime, Text, JSON, String, Enum, Boolean
from enum import Enum as PyEnum
from db.database import Base


class RecordType(str, PyEnum):
    MEDICAL_HISTORY = "medical_history"
    PRESCRIPTION = "prescription"
    LAB_RESULT = "lab_result"
    VACCINATION = "vaccination"
    ALLERGY = "allergy"
    SURGERY = "surgery"
    CONSULTATION = "consultation"
    APPOINTMENT = "appointment"
    INSURANCE = "insurance"
    MEDICATION = "medication"
    OTHER = "other"


def generate_id() -> str:
    return str(uuid.uuid4())


class HealthRecord(Base):
    __tablename__ = "health_records"

    id = Column(String(36), primary_key=True, default=generate_id)
    patient_id = Column(
        String(128), ForeignKey("patients.id"), nullable=False, index=True
    )

    # Record details
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    record_type = Column(Enum(RecordType), nullable=False)

    # Opaque payload: medical_data, attachments, vital_signs, medications, notes
    data = Column(JSON, nullable=False, default=dict)

    is_public = Column(Boolean, nullable=False, default=False)

    # Timestamps, stamped by the record store
    date_created = Column(DateTime(timezone=True), nullable=False)
    date_updated = Column(DateTime(timezone=True), nullable=False)

# src/models/healthcare_provider.py
from sqlalchemy import Column, String, DateTime, Boolean
from db.database import Base


class HealthcareProvider(Base):
    __tablename__ = "healthcare_providers"

    id = Column(String(128), primary_key=True)

    # Professional information
    name = Column(String(100), nullable=False)
    specialty = Column(String(100), nullable=True)
    license_number = Column(String(50), nullable=True)
    hospital_affiliation = Column(String(200), nullable=True)

    # Contact information
    email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)

    # Trust signal; informational, no operation is gated on it
    verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False)

# src/models/patient.py
from sqlalchemy import Column, String, Text, DateTime, Date, JSON, Enum
from enum import Enum as PyEnum
from db.database import Base


class GenderEnum(str, PyEnum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNDISCLOSED = "undisclosed"


class Patient(Base):
    __tablename__ = "patients"

    # Caller principal; owner key of every record the patient creates
    id = Column(String(128), primary_key=True)

    # Personal information
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(Enum(GenderEnum), nullable=True)

    # Contact information
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    emergency_contact = Column(JSON, nullable=True)  # name, relationship, phone, email

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

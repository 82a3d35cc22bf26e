from pydantic import EmailStr, Field, ConfigDict
from typing import Optional
from datetime import date
from models.patient import GenderEnum
from .base_schemas import BaseSchema, UTCDateTime


class EmergencyContact(BaseSchema):
    """Emergency contact stored with the patient profile"""

    name: str = Field("", max_length=100)
    relationship: str = Field("", max_length=50)
    phone: str = Field("", max_length=20)
    email: Optional[EmailStr] = None


class PatientBase(BaseSchema):
    """Base patient schema"""

    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    date_of_birth: Optional[date] = None
    gender: Optional[GenderEnum] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None


class PatientRegister(PatientBase):
    """Self-registration profile; the id is the caller principal"""

    pass


class PatientUpdate(BaseSchema):
    """Schema for updating the caller's own patient profile"""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    date_of_birth: Optional[date] = None
    gender: Optional[GenderEnum] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None


class PatientPublic(PatientBase):
    """Public patient schema"""

    id: str
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None

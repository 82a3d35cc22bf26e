from pydantic import ConfigDict, Field
from typing import Optional, Dict, List
from datetime import date
from models.health_record import RecordType
from .base_schemas import BaseSchema, UTCDateTime


class VitalSigns(BaseSchema):
    """Vital signs captured with a record"""

    blood_pressure: Optional[str] = None
    heart_rate: Optional[int] = Field(None, ge=0)
    temperature: Optional[float] = None
    weight: Optional[float] = Field(None, ge=0)
    height: Optional[float] = Field(None, ge=0)
    oxygen_saturation: Optional[int] = Field(None, ge=0, le=100)


class Medication(BaseSchema):
    name: str
    dosage: str = ""
    frequency: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    prescribed_by: str = ""


class RecordData(BaseSchema):
    """Record payload; opaque to the consent engine"""

    medical_data: Dict[str, str] = Field(default_factory=dict)
    attachments: List[str] = Field(default_factory=list)  # URLs or file hashes
    vital_signs: Optional[VitalSigns] = None
    medications: List[Medication] = Field(default_factory=list)
    notes: str = ""


class HealthRecordCreate(BaseSchema):
    """Schema for creating a health record; the owner is the caller"""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    record_type: RecordType
    data: RecordData = Field(default_factory=RecordData)
    is_public: bool = False


class HealthRecordUpdate(BaseSchema):
    """Partial update; only title, description and data are mutable"""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    data: Optional[RecordData] = None


class HealthRecordPublic(BaseSchema):
    """Health record as returned to an authorized reader"""

    id: str
    patient_id: str
    title: str
    description: str
    record_type: RecordType
    data: RecordData
    is_public: bool
    shared_with: List[str] = Field(default_factory=list)
    date_created: UTCDateTime
    date_updated: UTCDateTime


class RecordGrantPublic(BaseSchema):
    """A live grant on a record"""

    record_id: str
    provider_id: str
    share_request_id: Optional[str] = None
    granted_at: UTCDateTime
    expires_at: UTCDateTime

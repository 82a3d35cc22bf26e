from pydantic import EmailStr, Field
from typing import Optional
from .base_schemas import BaseSchema, UTCDateTime


class ProviderBase(BaseSchema):
    """Base healthcare provider schema"""

    name: str = Field(..., min_length=1, max_length=100)
    specialty: Optional[str] = Field(None, max_length=100)
    license_number: Optional[str] = Field(None, max_length=50)
    hospital_affiliation: Optional[str] = Field(None, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)


class ProviderRegister(ProviderBase):
    """Self-registration profile; the id is the caller principal"""

    pass


class ProviderPublic(ProviderBase):
    """Public provider schema"""

    id: str
    verified: bool = False
    created_at: UTCDateTime

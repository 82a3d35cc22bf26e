from pydantic import Field
from typing import Optional, List
from models.share_request import ShareStatus
from .base_schemas import BaseSchema, UTCDateTime


class ShareRequestCreate(BaseSchema):
    """Provider asks a patient for read access to some of their records"""

    patient_id: str = Field(..., min_length=1, max_length=128)
    record_ids: List[str] = Field(..., min_length=1)
    message: str = Field("", max_length=1000)
    ttl_seconds: Optional[int] = Field(
        None, gt=0, description="Lifetime of the request and of the grants it yields"
    )


class DirectShareCreate(BaseSchema):
    """Patient shares one record with a provider without a prior request"""

    provider_id: str = Field(..., min_length=1, max_length=128)
    ttl_seconds: Optional[int] = Field(None, gt=0)


class ShareRequestPublic(BaseSchema):
    """Share request with its status as observed now"""

    id: str
    patient_id: str
    provider_id: str
    record_ids: List[str]
    message: str
    status: ShareStatus
    requested_at: UTCDateTime
    expires_at: UTCDateTime
    resolved_at: Optional[UTCDateTime] = None
